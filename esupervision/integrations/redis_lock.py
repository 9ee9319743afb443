"""
Lease-based distributed lock on Redis.
"""
import threading
from datetime import timedelta
from typing import Dict, Optional

import redis
from redis.exceptions import LockError

from esupervision.integrations.base import LockProvider
from esupervision.utils.logging import get_logger

logger = get_logger(__name__)


class RedisLockProvider(LockProvider):
    """
    Non-blocking lease locks. A lock not released before its lease ends
    expires on its own, so a crashed holder never blocks later runs.
    """
    
    def __init__(self, client: redis.Redis, namespace: str = "esupervision:lock:"):
        self.client = client
        self.namespace = namespace
        self._held: Dict[str, object] = {}
        self._guard = threading.Lock()
    
    def try_acquire(self, lock_name: str, lease: timedelta) -> bool:
        """Take the lock without waiting. Returns False if it is held or Redis is unavailable."""
        try:
            lock = self.client.lock(
                self.namespace + lock_name,
                timeout=lease.total_seconds(),
                thread_local=False,
            )
            if not lock.acquire(blocking=False):
                return False
        except redis.RedisError as e:
            logger.warning("Lock backend unavailable", lock_name=lock_name, error_type=type(e).__name__)
            return False
        with self._guard:
            self._held[lock_name] = lock
        return True
    
    def release(self, lock_name: str, hold_for: Optional[timedelta] = None):
        with self._guard:
            lock = self._held.pop(lock_name, None)
        if lock is None:
            return
        try:
            if hold_for is not None and hold_for.total_seconds() > 0:
                lock.extend(hold_for.total_seconds(), replace_ttl=True)
            else:
                lock.release()
        except LockError:
            logger.warning("Lock lease ended before release", lock_name=lock_name)
        except redis.RedisError as e:
            logger.warning("Lock release failed", lock_name=lock_name, error_type=type(e).__name__)
