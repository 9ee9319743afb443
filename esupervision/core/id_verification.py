"""
Identity verification engine.

Compares an offender's reference photo with the snapshots taken during a
check-in and reduces the per-snapshot outcomes to a single result:

1. any MATCH                  -> MATCH
2. any service error          -> ERROR
3. every snapshot had no face -> NO_FACE_DETECTED
4. otherwise, or no snapshots -> NO_MATCH
"""
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional, Sequence

from config.settings import get_resilience_config
from esupervision.core.enums import AutomatedIdVerificationResult
from esupervision.core.exceptions import CallTimedOut, CircuitOpenError, NoFaceDetected
from esupervision.integrations.base import FaceComparator, ImageRef
from esupervision.utils.logging import get_logger
from esupervision.utils.metrics import record_id_verification
from esupervision.utils.pii import sanitize_exception
from esupervision.utils.resilience import Deadline, build_resilient_call

logger = get_logger(__name__)

Result = AutomatedIdVerificationResult


def classify_similarity(similarity: Optional[float], required_confidence: float) -> AutomatedIdVerificationResult:
    if similarity is not None and similarity >= required_confidence:
        return Result.MATCH
    return Result.NO_MATCH


def aggregate_results(results: Sequence[AutomatedIdVerificationResult]) -> AutomatedIdVerificationResult:
    """Reduce per-snapshot outcomes to the overall verification result."""
    if not results:
        return Result.NO_MATCH
    if Result.MATCH in results:
        return Result.MATCH
    if Result.ERROR in results:
        return Result.ERROR
    if all(r == Result.NO_FACE_DETECTED for r in results):
        return Result.NO_FACE_DETECTED
    return Result.NO_MATCH


class IdentityVerifier(ABC):
    
    @abstractmethod
    def verify(self, reference: ImageRef, snapshots: Sequence[ImageRef],
               required_confidence: float) -> AutomatedIdVerificationResult:
        pass


class StubIdVerifier(IdentityVerifier):
    """Always matches. For local development without a comparison service."""
    
    def verify(self, reference, snapshots, required_confidence):
        logger.warning("Stub identity verifier in use", snapshots=len(snapshots))
        return Result.MATCH


class FaceComparisonVerifier(IdentityVerifier):
    """
    Runs one comparison per snapshot on a thread pool.
    
    Each comparison goes through bounded retry and the shared circuit
    breaker. All snapshots share one deadline, call_timeout from the start
    of verify. A comparison still running at the deadline is classified as
    ERROR; the worker records it as a breaker failure when it finishes.
    
    Args:
        comparator: Raw face comparison client
        resilience_config: resilience.yaml section; defaults to the rekognition section
    """
    
    def __init__(self, comparator: FaceComparator, resilience_config: dict = None):
        config = resilience_config or get_resilience_config()['rekognition']
        self.comparator = comparator
        self._call = build_resilient_call(
            comparator.compare, config, ignored_exceptions=(NoFaceDetected,)
        )
        self.breaker = self._call.breaker
        executor_cfg = config.get('executor', {})
        self.max_workers = int(executor_cfg.get('max_workers', 4))
        self.call_timeout = float(executor_cfg.get('call_timeout_seconds', 30))
    
    def verify(self, reference: ImageRef, snapshots: Sequence[ImageRef],
               required_confidence: float) -> AutomatedIdVerificationResult:
        if not snapshots:
            logger.warning("No snapshots to verify", reference=reference.key)
            record_id_verification(Result.NO_MATCH.value)
            return Result.NO_MATCH
        
        deadline = Deadline.after(self.call_timeout)
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(snapshots)))
        try:
            futures = [
                executor.submit(self._compare_one, reference, snapshot, required_confidence, deadline)
                for snapshot in snapshots
            ]
            results = [
                self._collect(future, snapshot, deadline) for future, snapshot in zip(futures, snapshots)
            ]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        
        overall = aggregate_results(results)
        record_id_verification(overall.value)
        logger.info(
            "Identity verification complete",
            reference=reference.key,
            snapshots=len(snapshots),
            outcomes=[r.value for r in results],
            result=overall.value,
        )
        return overall
    
    def _collect(self, future, snapshot: ImageRef, deadline: Deadline) -> AutomatedIdVerificationResult:
        try:
            return future.result(timeout=deadline.remaining())
        except FutureTimeoutError:
            # not started yet: dropped; running: the worker records the failure
            future.cancel()
            logger.error("Face comparison timed out", snapshot=snapshot.key, timeout=self.call_timeout)
            return Result.ERROR

    def _compare_one(self, reference: ImageRef, snapshot: ImageRef,
                     required_confidence: float, deadline: Optional[Deadline] = None) -> AutomatedIdVerificationResult:
        try:
            similarity = self._call(reference, snapshot, required_confidence, deadline=deadline)
        except NoFaceDetected:
            logger.warning("No face detected", snapshot=snapshot.key)
            return Result.NO_FACE_DETECTED
        except CallTimedOut:
            logger.warning("Face comparison skipped after deadline", snapshot=snapshot.key)
            return Result.ERROR
        except CircuitOpenError as e:
            logger.warning("Face comparison rejected", snapshot=snapshot.key, breaker=e.breaker_name)
            return Result.ERROR
        except Exception as e:
            logger.error("Face comparison failed", snapshot=snapshot.key, error=sanitize_exception(e))
            return Result.ERROR
        return classify_similarity(similarity, required_confidence)
