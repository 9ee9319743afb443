import os
import pathlib
import sys
from datetime import date, datetime, timedelta

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from config.settings import get_settings
from esupervision.core.enums import AutomatedIdVerificationResult, CheckinInterval
from esupervision.core.id_verification import IdentityVerifier
from esupervision.core.states import CheckinStatus, OffenderStatus
from esupervision.integrations.base import (
    CaseDataProvider,
    ContactDetails,
    DomainEventBus,
    FaceComparator,
    ImageRef,
    LockProvider,
    Name,
    NotificationChannel,
    ObjectStorage,
    OrganisationalUnit,
    PractitionerDetails,
)
from esupervision.models import Base
from esupervision.models.base import make_engine, make_session_factory
from esupervision.models.checkins import OffenderCheckin
from esupervision.models.offenders import Offender
from esupervision.services import assemble_services
from esupervision.utils.circuit_breaker import clear_circuit_breakers

NOW = datetime(2025, 6, 2, 9, 0, 0)
TODAY = NOW.date()


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeStorage(ObjectStorage):
    def __init__(self):
        self.photos = set()

    def photo_exists(self, setup) -> bool:
        return setup.offender.uuid in self.photos

    def get_offender_photo(self, offender):
        if offender.uuid not in self.photos:
            return None
        return f"https://images.test/setup-{offender.uuid}?signed"

    def setup_photo_ref(self, offender_uuid: str) -> ImageRef:
        return ImageRef("images", f"setup-{offender_uuid}")

    def checkin_snapshot_ref(self, checkin_uuid: str, index: int) -> ImageRef:
        return ImageRef("images", f"checkin-{checkin_uuid}/{index}")


def make_contact(crn: str, with_practitioner: bool = True) -> ContactDetails:
    practitioner = None
    if with_practitioner:
        practitioner = PractitionerDetails(
            name=Name("Pat", "Officer"),
            email="pat.officer@probation.test",
            local_admin_unit=OrganisationalUnit("LAU1", "North Team"),
            probation_delivery_unit=OrganisationalUnit("PDU1", "North PDU"),
            provider=OrganisationalUnit("N07", "London"),
        )
    return ContactDetails(
        crn=crn,
        name=Name("John", "Smith"),
        mobile="07700900123",
        email="john.smith@example.test",
        practitioner=practitioner,
    )


class FakeCaseData(CaseDataProvider):
    def __init__(self):
        self.contacts = {}

    def add(self, crn: str, with_practitioner: bool = True) -> ContactDetails:
        contact = make_contact(crn, with_practitioner)
        self.contacts[crn] = contact
        return contact

    def get_contact_details(self, crn: str):
        return self.contacts.get(crn)


class RecordingChannel(NotificationChannel):
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, notification_type, recipient, reference_context):
        if self.fail:
            raise RuntimeError("gateway unavailable for email=john.smith@example.test")
        self.sent.append((notification_type, recipient, dict(reference_context)))

    def types(self):
        return [t for t, _, _ in self.sent]


class RecordingEventBus(DomainEventBus):
    def __init__(self):
        self.published = []
        self.fail = False

    def publish(self, event_type, payload):
        if self.fail:
            raise RuntimeError("topic unavailable")
        self.published.append((event_type, payload))

    def types(self):
        return [t for t, _ in self.published]


class FakeLockProvider(LockProvider):
    def __init__(self):
        self.held = set()
        self.released = []

    def try_acquire(self, lock_name, lease):
        if lock_name in self.held:
            return False
        self.held.add(lock_name)
        return True

    def release(self, lock_name, hold_for=None):
        self.held.discard(lock_name)
        self.released.append((lock_name, hold_for))


class ScriptedComparator(FaceComparator):
    """
    Outcome per snapshot key: a similarity, None, an exception to raise, or a
    list of those consumed one per call.
    """

    def __init__(self, outcomes=None, default=None):
        self.outcomes = dict(outcomes or {})
        self.default = default
        self.calls = []

    def compare(self, reference, snapshot, similarity_threshold):
        self.calls.append(snapshot.key)
        outcome = self.outcomes.get(snapshot.key, self.default)
        if isinstance(outcome, list):
            outcome = outcome.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FixedVerifier(IdentityVerifier):
    def __init__(self, result=AutomatedIdVerificationResult.MATCH):
        self.result = result
        self.calls = []

    def verify(self, reference, snapshots, required_confidence):
        self.calls.append((reference, list(snapshots), required_confidence))
        return self.result


@pytest.fixture(autouse=True)
def reset_breakers():
    clear_circuit_breakers()
    yield
    clear_circuit_breakers()


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def case_data():
    return FakeCaseData()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def event_bus():
    return RecordingEventBus()


@pytest.fixture
def lock_provider():
    return FakeLockProvider()


@pytest.fixture
def verifier():
    return FixedVerifier()


@pytest.fixture
def services(session_factory, clock, storage, case_data, channel, event_bus, lock_provider, verifier):
    return assemble_services(
        get_settings(),
        storage=storage,
        case_data=case_data,
        channel=channel,
        event_bus=event_bus,
        lock_provider=lock_provider,
        verifier=verifier,
        session_factory=session_factory,
        clock=clock,
    )


def add_offender(session_factory, crn="X123456", status=OffenderStatus.VERIFIED,
                 first_checkin=TODAY, interval=CheckinInterval.WEEKLY, practitioner_id="PRAC1"):
    db = session_factory()
    try:
        offender = Offender(
            crn=crn,
            practitioner_id=practitioner_id,
            status=status.value,
            first_checkin=first_checkin,
            checkin_interval=interval.duration,
            created_at=NOW - timedelta(days=30),
            created_by=practitioner_id,
            updated_at=NOW - timedelta(days=30),
        )
        db.add(offender)
        db.commit()
        return offender
    finally:
        db.close()


def add_checkin(session_factory, offender, status=CheckinStatus.CREATED, due_date=TODAY,
                created_at=None, **fields):
    db = session_factory()
    try:
        checkin = OffenderCheckin(
            offender_id=offender.id,
            status=status.value,
            due_date=due_date,
            created_at=created_at or datetime.combine(due_date, datetime.min.time()),
            created_by="SYSTEM",
            **fields,
        )
        db.add(checkin)
        db.commit()
        return checkin
    finally:
        db.close()


def reload_checkin(session_factory, checkin_uuid):
    db = session_factory()
    try:
        return db.query(OffenderCheckin).filter(OffenderCheckin.uuid == checkin_uuid).one()
    finally:
        db.close()


def reload_offender(session_factory, offender_uuid):
    db = session_factory()
    try:
        return db.query(Offender).filter(Offender.uuid == offender_uuid).one()
    finally:
        db.close()
