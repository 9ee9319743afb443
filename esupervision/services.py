"""
Process-wide service wiring.

Clients and topics are resolved once when the process starts; a missing
external dependency fails init_services() instead of the first request.
"""
from dataclasses import dataclass
from typing import Callable, Optional

import boto3
import redis

from config.settings import Settings, get_settings
from esupervision.core.audit import EventAuditRecorder
from esupervision.core.checkin_manager import CheckinLifecycleManager
from esupervision.core.domain_events import DomainEventPublisher
from esupervision.core.id_verification import FaceComparisonVerifier, IdentityVerifier, StubIdVerifier
from esupervision.core.notifications import Notifier
from esupervision.core.setup_workflow import OffenderSetupWorkflow
from esupervision.integrations.base import CaseDataProvider, DomainEventBus, LockProvider, NotificationChannel, ObjectStorage
from esupervision.integrations.ndelius import NdeliusCaseDataClient
from esupervision.integrations.notify import HttpNotificationChannel
from esupervision.integrations.redis_lock import RedisLockProvider
from esupervision.integrations.rekognition import RekognitionFaceComparator
from esupervision.integrations.s3_storage import S3ObjectStorage
from esupervision.integrations.sns_events import SnsDomainEventBus
from esupervision.models.base import SessionLocal
from esupervision.scheduler.sweeps import SweepRunner
from esupervision.utils.clock import utc_now
from esupervision.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    setup: OffenderSetupWorkflow
    checkins: CheckinLifecycleManager
    audit: EventAuditRecorder
    sweep_runner: SweepRunner
    clock: Callable = utc_now


def assemble_services(
    settings: Settings,
    storage: ObjectStorage,
    case_data: CaseDataProvider,
    channel: NotificationChannel,
    event_bus: Optional[DomainEventBus],
    lock_provider: LockProvider,
    verifier: IdentityVerifier,
    session_factory=SessionLocal,
    clock=utc_now,
) -> Services:
    """Wire workflow services around already-built collaborators."""
    notifier = Notifier(channel)
    audit = EventAuditRecorder(session_factory=session_factory, clock=clock)
    events = DomainEventPublisher(event_bus, settings.HOSTED_AT, clock=clock)
    setup = OffenderSetupWorkflow(
        storage, case_data, notifier, audit, events,
        session_factory=session_factory, clock=clock,
    )
    checkins = CheckinLifecycleManager(
        storage, case_data, verifier, notifier, audit, events,
        session_factory=session_factory, clock=clock,
        similarity_threshold=settings.FACE_SIMILARITY_THRESHOLD,
    )
    sweep_runner = SweepRunner(lock_provider, session_factory=session_factory, clock=clock)
    return Services(
        settings=settings,
        setup=setup,
        checkins=checkins,
        audit=audit,
        sweep_runner=sweep_runner,
        clock=clock,
    )


def build_services(settings: Settings = None) -> Services:
    """Build production collaborators from settings."""
    settings = settings or get_settings()
    session = boto3.Session(region_name=settings.AWS_REGION)

    storage = S3ObjectStorage(
        session.client("s3"),
        settings.IMAGE_UPLOAD_BUCKET,
        settings.VIDEO_UPLOAD_BUCKET,
        url_ttl_seconds=settings.PRESIGNED_URL_TTL_MINUTES * 60,
    )
    if settings.ID_VERIFIER == "stub":
        verifier = StubIdVerifier()
    else:
        verifier = FaceComparisonVerifier(RekognitionFaceComparator(session.client("rekognition")))

    event_bus = None
    if settings.DOMAIN_EVENTS_TOPIC_ARN:
        event_bus = SnsDomainEventBus(session.client("sns"), settings.DOMAIN_EVENTS_TOPIC_ARN)
    else:
        logger.warning("No domain events topic configured; events will not be published")

    redis_client = redis.Redis(host=settings.REDIS_HOST, port=settings.REDIS_PORT, db=1)
    redis_client.ping()

    return assemble_services(
        settings,
        storage=storage,
        case_data=NdeliusCaseDataClient(settings.NDELIUS_API_URL, timeout=settings.NDELIUS_API_TIMEOUT),
        channel=HttpNotificationChannel(settings.NOTIFY_API_URL, settings.NOTIFY_API_KEY),
        event_bus=event_bus,
        lock_provider=RedisLockProvider(redis_client),
        verifier=verifier,
    )


_services: Optional[Services] = None


def init_services(services: Services = None) -> Services:
    """Resolve services for this process. Call once at startup."""
    global _services
    _services = services or build_services()
    logger.info("Services initialised", env=_services.settings.ENV)
    return _services


def get_services() -> Services:
    if _services is None:
        raise RuntimeError("Services not initialised; call init_services() at process start")
    return _services
