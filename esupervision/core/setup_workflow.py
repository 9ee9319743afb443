"""
Offender setup workflow: start, complete, terminate.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

from esupervision.core.audit import EventAuditRecorder
from esupervision.core.contacts import lookup_contact
from esupervision.core.domain_events import DomainEventPublisher
from esupervision.core.enums import CheckinInterval
from esupervision.core.exceptions import BadArgument, InvalidOffenderSetupState
from esupervision.core.notifications import Notifier
from esupervision.core.states import CheckinStatus, OffenderStatus, transition_offender
from esupervision.integrations.base import CaseDataProvider, ObjectStorage
from esupervision.models import queries
from esupervision.models.base import SessionLocal, session_scope
from esupervision.models.checkins import OffenderCheckin
from esupervision.models.offenders import Offender, OffenderSetup
from esupervision.utils.clock import utc_now
from esupervision.utils.constants import CRN_PATTERN, SYSTEM_USER
from esupervision.utils.logging import get_logger
from esupervision.utils.metrics import record_checkin_created

logger = get_logger(__name__)

_CRN_RE = re.compile(CRN_PATTERN)


@dataclass
class OffenderInfo:
    """Details a practitioner supplies to register an offender."""
    crn: str
    practitioner_id: str
    first_checkin: date
    checkin_interval: Union[CheckinInterval, str, timedelta, int]


class OffenderSetupWorkflow:
    """
    Registers offenders and confirms their identity photo.

    An offender starts INITIAL with a companion setup record. Completing
    the setup (photo uploaded) verifies the offender; terminating it makes
    the offender INACTIVE. Either way the setup record is deleted.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        case_data: CaseDataProvider,
        notifier: Notifier,
        audit: EventAuditRecorder,
        events: DomainEventPublisher,
        session_factory=SessionLocal,
        clock=utc_now,
    ):
        self.storage = storage
        self.case_data = case_data
        self.notifier = notifier
        self.audit = audit
        self.events = events
        self.session_factory = session_factory
        self.clock = clock

    def start(self, info: OffenderInfo) -> OffenderSetup:
        """
        Begin registering an offender.

        Restarting a setup that is still in progress updates the offender's
        schedule and practitioner and returns the existing setup.

        Returns:
            Setup record, with its offender loaded

        Raises:
            BadArgument: invalid details, or the offender is already registered
        """
        crn, first_checkin, interval = self._validate(info)
        now = self.clock()

        with session_scope(self.session_factory) as db:
            existing = queries.find_active_offender_by_crn(db, crn)
            if existing is not None:
                setup = queries.find_setup_for_offender(db, existing.id)
                if existing.status != OffenderStatus.INITIAL.value or setup is None:
                    raise BadArgument("Offender already exists.")
                existing.practitioner_id = info.practitioner_id
                existing.first_checkin = first_checkin
                existing.checkin_interval = interval.duration
                existing.updated_at = now
                setup.practitioner_id = info.practitioner_id
                setup.started_at = now
                logger.info("Setup restarted", setup_uuid=setup.uuid, offender_uuid=existing.uuid)
                return setup

            offender = Offender(
                crn=crn,
                practitioner_id=info.practitioner_id,
                status=OffenderStatus.INITIAL.value,
                first_checkin=first_checkin,
                checkin_interval=interval.duration,
                created_at=now,
                created_by=info.practitioner_id,
                updated_at=now,
            )
            setup = OffenderSetup(
                offender=offender,
                practitioner_id=info.practitioner_id,
                created_at=now,
                started_at=now,
            )
            db.add(offender)
            db.add(setup)

        logger.info(
            "Setup started",
            setup_uuid=setup.uuid,
            offender_uuid=offender.uuid,
            interval=interval.name,
        )
        return setup

    def complete(self, setup_uuid: str) -> Offender:
        """
        Verify the offender once their reference photo is uploaded.

        If the first check-in falls today it is created straight away.

        Raises:
            BadArgument: no setup with this uuid
            InvalidOffenderSetupState: reference photo not uploaded
        """
        db = self.session_factory()
        try:
            setup = self._get_setup(db, setup_uuid)
        finally:
            db.close()

        if not self.storage.photo_exists(setup):
            raise InvalidOffenderSetupState(f"No uploaded photo for setup uuid={setup_uuid}", setup_uuid)

        now = self.clock()
        first_checkin: Optional[OffenderCheckin] = None
        with session_scope(self.session_factory) as db:
            setup = self._get_setup(db, setup_uuid)
            offender = setup.offender
            transition_offender(offender, OffenderStatus.VERIFIED, now)
            db.delete(setup)
            if offender.first_checkin == now.date():
                first_checkin = OffenderCheckin(
                    offender=offender,
                    status=CheckinStatus.CREATED.value,
                    due_date=offender.first_checkin,
                    created_at=now,
                    created_by=SYSTEM_USER,
                )
                db.add(first_checkin)

        logger.info("Setup completed", setup_uuid=setup_uuid, offender_uuid=offender.uuid)
        contact = lookup_contact(self.case_data, offender.crn)
        self.audit.record_setup_completed(offender, contact)
        self.notifier.registration_confirmed(offender, contact)
        self.events.setup_completed(offender)

        if first_checkin is not None:
            record_checkin_created(SYSTEM_USER)
            self.notifier.checkin_invite(first_checkin, offender, contact)
            self.audit.record_checkin_created(first_checkin, offender, contact)
            self.events.checkin_created(first_checkin, offender)
        return offender

    def terminate(self, setup_uuid: str) -> Offender:
        """
        Abandon a setup and make the offender inactive.

        Raises:
            BadArgument: no setup with this uuid, or it already finished
        """
        now = self.clock()
        with session_scope(self.session_factory) as db:
            setup = self._get_setup(db, setup_uuid)
            offender = setup.offender
            if offender.status != OffenderStatus.INITIAL.value:
                raise BadArgument("Setup already completed or terminated")
            transition_offender(offender, OffenderStatus.INACTIVE, now)
            db.delete(setup)

        logger.info("Setup terminated", setup_uuid=setup_uuid, offender_uuid=offender.uuid)
        contact = lookup_contact(self.case_data, offender.crn)
        self.audit.record_setup_terminated(offender, contact)
        self.notifier.checkins_stopped(offender, contact)
        return offender

    def _get_setup(self, db, setup_uuid: str) -> OffenderSetup:
        setup = queries.get_setup(db, setup_uuid)
        if setup is None:
            raise BadArgument(f"No setup for given uuid={setup_uuid}")
        return setup

    def _validate(self, info: OffenderInfo) -> Tuple[str, date, CheckinInterval]:
        crn = (info.crn or "").strip().upper()
        if not _CRN_RE.match(crn):
            raise BadArgument(f"Invalid crn: {crn!r}")
        if not info.practitioner_id or not str(info.practitioner_id).strip():
            raise BadArgument("practitioner_id is required")
        first_checkin = info.first_checkin
        if isinstance(first_checkin, datetime):
            first_checkin = first_checkin.date()
        if not isinstance(first_checkin, date):
            raise BadArgument("first_checkin date is required")
        if info.checkin_interval is None:
            raise BadArgument("checkin_interval is required")
        interval = CheckinInterval.parse(info.checkin_interval)
        return crn, first_checkin, interval
