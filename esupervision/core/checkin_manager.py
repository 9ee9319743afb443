"""
Check-in lifecycle management.
"""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from esupervision.core.audit import EventAuditRecorder
from esupervision.core.contacts import lookup_contact, lookup_contacts
from esupervision.core.domain_events import DomainEventPublisher
from esupervision.core.enums import AutomatedIdVerificationResult, ManualIdVerificationResult
from esupervision.core.exceptions import BadArgument
from esupervision.core.id_verification import IdentityVerifier
from esupervision.core.notifications import Notifier
from esupervision.core.states import (
    CheckinStatus,
    OffenderStatus,
    ensure_checkin_transition,
    transition_checkin,
    transition_offender,
)
from esupervision.integrations.base import CaseDataProvider, ObjectStorage
from esupervision.models import queries
from esupervision.models.base import SessionLocal, session_scope
from esupervision.models.checkins import OffenderCheckin
from esupervision.models.event_audit import EventAudit
from esupervision.utils.clock import utc_now
from esupervision.utils.constants import DEFAULT_PAGE_SIZE, NOTE_CREATED_BY_JOB, SYSTEM_USER
from esupervision.utils.logging import get_logger
from esupervision.utils.metrics import (
    record_checkin_created,
    record_checkin_reviewed,
    record_checkin_submitted,
    record_checkins_expired,
    record_reminders,
)
from esupervision.utils.pii import sanitize_exception

logger = get_logger(__name__)


@dataclass(frozen=True)
class CheckinMedia:
    """Media uploaded with a submission."""
    snapshot_count: int = 1


class CheckinLifecycleManager:
    """
    Drives check-ins through their lifecycle.

    - CREATED -> SUBMITTED -> REVIEWED through submit and review
    - CREATED or SUBMITTED -> EXPIRED through the expiry sweep only

    Every operation commits its status change in one local transaction
    before running side effects (audit, notification, domain event). Side
    effects are best-effort and never fail the operation.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        case_data: CaseDataProvider,
        verifier: IdentityVerifier,
        notifier: Notifier,
        audit: EventAuditRecorder,
        events: DomainEventPublisher,
        session_factory=SessionLocal,
        clock=utc_now,
        similarity_threshold: float = 90.0,
    ):
        self.storage = storage
        self.case_data = case_data
        self.verifier = verifier
        self.notifier = notifier
        self.audit = audit
        self.events = events
        self.session_factory = session_factory
        self.clock = clock
        self.similarity_threshold = similarity_threshold

    # ========== CREATION ==========

    def find_due_candidates(self, window_start: date, window_end: date):
        """(offender, due_date) pairs with a scheduled check-in in [window_start, window_end)."""
        db = self.session_factory()
        try:
            return queries.find_due_checkin_candidates(db, window_start, window_end)
        finally:
            db.close()

    def create_due_checkins(self, window_start: date, window_end: date) -> List[OffenderCheckin]:
        """
        Create a check-in for every offender due within [window_start, window_end).

        Args:
            window_start: First day of the window (inclusive)
            window_end: Day after the window (exclusive)

        Returns:
            Newly created check-ins
        """
        now = self.clock()
        with session_scope(self.session_factory) as db:
            candidates = queries.find_due_checkin_candidates(db, window_start, window_end)
            created = []
            for offender, due_date in candidates:
                checkin = OffenderCheckin(
                    offender=offender,
                    status=CheckinStatus.CREATED.value,
                    due_date=due_date,
                    created_at=now,
                    created_by=SYSTEM_USER,
                )
                db.add(checkin)
                created.append(checkin)

        logger.info(
            "Created due check-ins",
            window_start=window_start.isoformat(),
            window_end=window_end.isoformat(),
            count=len(created),
        )
        if not created:
            return created

        contacts = lookup_contacts(self.case_data, [c.offender.crn for c in created])
        for checkin in created:
            offender = checkin.offender
            contact = contacts.get(offender.crn)
            record_checkin_created(SYSTEM_USER)
            self.notifier.checkin_invite(checkin, offender, contact)
            self.audit.record_checkin_created(checkin, offender, contact, notes=NOTE_CREATED_BY_JOB)
            self.events.checkin_created(checkin, offender)
        return created

    def create_checkin(self, offender_uuid: str, due_date: date, created_by: str) -> OffenderCheckin:
        """
        Create a single check-in outside the regular schedule.

        Raises:
            BadArgument: unknown or unverified offender, or due date in the past
        """
        now = self.clock()
        if due_date < now.date():
            raise BadArgument(f"Due date {due_date} is in the past")
        if not created_by:
            raise BadArgument("created_by is required")

        with session_scope(self.session_factory) as db:
            offender = queries.get_offender(db, offender_uuid)
            if offender is None:
                raise BadArgument(f"Offender not found: {offender_uuid}")
            if offender.status != OffenderStatus.VERIFIED.value:
                raise BadArgument(f"Offender {offender_uuid} is not verified")
            checkin = OffenderCheckin(
                offender=offender,
                status=CheckinStatus.CREATED.value,
                due_date=due_date,
                created_at=now,
                created_by=created_by,
            )
            db.add(checkin)

        logger.info("Check-in created", checkin_uuid=checkin.uuid, due_date=due_date.isoformat())
        record_checkin_created(created_by)
        contact = lookup_contact(self.case_data, offender.crn)
        self.notifier.checkin_invite(checkin, offender, contact)
        self.audit.record_checkin_created(checkin, offender, contact)
        self.events.checkin_created(checkin, offender)
        return checkin

    # ========== SUBMISSION ==========

    def submit(self, checkin_uuid: str, media: CheckinMedia, survey_response: Optional[dict]) -> OffenderCheckin:
        """
        Submit a check-in and run automated identity verification.

        A verification ERROR is stored as the outcome; it does not fail the
        submission.

        Raises:
            BadArgument: unknown check-in or no snapshots
            InvalidStateTransition: check-in is not CREATED
        """
        if media is None or media.snapshot_count < 1:
            raise BadArgument("At least one snapshot is required")

        db = self.session_factory()
        try:
            checkin = queries.get_checkin(db, checkin_uuid)
            if checkin is None:
                raise BadArgument(f"Checkin not found: {checkin_uuid}")
            ensure_checkin_transition(checkin.status, CheckinStatus.SUBMITTED)
            offender = checkin.offender
        finally:
            db.close()

        result = self._verify(offender, checkin_uuid, media)
        snapshot_keys = [
            self.storage.checkin_snapshot_ref(checkin_uuid, i).key for i in range(media.snapshot_count)
        ]

        with session_scope(self.session_factory) as db:
            checkin = queries.get_checkin(db, checkin_uuid)
            transition_checkin(checkin, CheckinStatus.SUBMITTED)
            checkin.auto_id_check = result.value
            checkin.survey_response = survey_response
            checkin.media_keys = snapshot_keys
            checkin.submitted_at = self.clock()
            offender = checkin.offender

        logger.info("Check-in submitted", checkin_uuid=checkin_uuid, auto_id_check=result.value)
        record_checkin_submitted(result.value)
        contact = lookup_contact(self.case_data, offender.crn)
        self.audit.record_checkin_submitted(checkin, offender, contact)
        self.notifier.checkin_submitted(checkin, offender, contact)
        self.events.checkin_received(checkin, offender)
        return checkin

    def _verify(self, offender, checkin_uuid: str, media: CheckinMedia) -> AutomatedIdVerificationResult:
        try:
            reference = self.storage.setup_photo_ref(offender.uuid)
            snapshots = [self.storage.checkin_snapshot_ref(checkin_uuid, i) for i in range(media.snapshot_count)]
            return self.verifier.verify(reference, snapshots, self.similarity_threshold)
        except Exception as e:
            logger.error(
                "Identity verification failed",
                error=sanitize_exception(e, crn=offender.crn, uuid=checkin_uuid),
            )
            return AutomatedIdVerificationResult.ERROR

    # ========== REVIEW ==========

    def start_review(self, checkin_uuid: str, reviewer_id: str) -> OffenderCheckin:
        """Mark the start of a review; repeated calls keep the first start."""
        if not reviewer_id:
            raise BadArgument("reviewer_id is required")
        with session_scope(self.session_factory) as db:
            checkin = self._get_checkin(db, checkin_uuid)
            ensure_checkin_transition(checkin.status, CheckinStatus.REVIEWED)
            if checkin.review_started_at is None:
                checkin.review_started_at = self.clock()
                checkin.review_started_by = reviewer_id
        return checkin

    def review(self, checkin_uuid: str, reviewer_id: str, manual_result,
               notes: Optional[str] = None) -> OffenderCheckin:
        """
        Record a practitioner's review of a submitted check-in.

        Args:
            checkin_uuid: Check-in being reviewed
            reviewer_id: Practitioner doing the review
            manual_result: ManualIdVerificationResult (or its name)
            notes: Optional review notes

        Raises:
            BadArgument: unknown check-in, missing reviewer or invalid result
            InvalidStateTransition: check-in is not SUBMITTED
        """
        if not reviewer_id:
            raise BadArgument("reviewer_id is required")
        try:
            manual = ManualIdVerificationResult(manual_result)
        except ValueError:
            raise BadArgument(f"Invalid manual id check result: {manual_result!r}") from None

        now = self.clock()
        with session_scope(self.session_factory) as db:
            checkin = self._get_checkin(db, checkin_uuid)
            ensure_checkin_transition(checkin.status, CheckinStatus.REVIEWED)
            if checkin.review_started_at is None:
                checkin.review_started_at = now
                checkin.review_started_by = reviewer_id
            checkin.reviewed_at = now
            checkin.reviewed_by = reviewer_id
            checkin.manual_id_check = manual.value
            checkin.review_notes = notes
            transition_checkin(checkin, CheckinStatus.REVIEWED)
            offender = checkin.offender

        logger.info("Check-in reviewed", checkin_uuid=checkin_uuid, manual_id_check=manual.value)
        record_checkin_reviewed(manual.value)
        contact = lookup_contact(self.case_data, offender.crn)
        self.audit.record_checkin_reviewed(checkin, offender, contact)
        self.events.checkin_reviewed(checkin, offender)
        return checkin

    # ========== SWEEPS ==========

    def expire_overdue(self, as_of: date) -> List[OffenderCheckin]:
        """
        Expire every CREATED or SUBMITTED check-in due before as_of.

        All matching check-ins expire. Audit rows for those with resolvable
        contact details are written as one batch; the rest are skipped with
        a warning.
        """
        with session_scope(self.session_factory) as db:
            expired = queries.find_overdue_checkins(db, as_of)
            for checkin in expired:
                transition_checkin(checkin, CheckinStatus.EXPIRED)

        logger.info("Expired overdue check-ins", as_of=as_of.isoformat(), count=len(expired))
        if not expired:
            return expired
        record_checkins_expired(len(expired))

        contacts = lookup_contacts(self.case_data, [c.offender.crn for c in expired])
        resolved = []
        for checkin in expired:
            offender = checkin.offender
            contact = contacts.get(offender.crn)
            if contact is None or contact.practitioner is None:
                logger.warning("No contact details for expired check-in", checkin_uuid=checkin.uuid, crn=offender.crn)
            else:
                self.notifier.checkin_missed(checkin, offender, contact)
                resolved.append((checkin, offender, contact))
            self.events.checkin_expired(checkin, offender)

        if resolved:
            self.audit.record_checkins_expired(resolved)
        return expired

    def remind(self, due_on: date) -> List[OffenderCheckin]:
        """
        Remind offenders with a CREATED check-in due on due_on.

        Returns:
            Check-ins a reminder was sent for
        """
        db = self.session_factory()
        try:
            pending = queries.find_checkins_due_on(db, due_on)
        finally:
            db.close()

        if not pending:
            logger.info("No check-ins to remind", due_on=due_on.isoformat())
            return []

        contacts = lookup_contacts(self.case_data, [c.offender.crn for c in pending])
        resolved = []
        for checkin in pending:
            offender = checkin.offender
            contact = contacts.get(offender.crn)
            if contact is None or contact.practitioner is None:
                logger.warning("No contact details for reminder", checkin_uuid=checkin.uuid, crn=offender.crn)
                continue
            self.notifier.checkin_reminder(checkin, offender, contact)
            resolved.append((checkin, offender, contact))

        if resolved:
            self.audit.record_checkins_reminded(resolved)
        record_reminders(len(resolved))
        logger.info("Sent check-in reminders", due_on=due_on.isoformat(), count=len(resolved), skipped=len(pending) - len(resolved))
        return [checkin for checkin, _, _ in resolved]

    # ========== OFFENDER ==========

    def deactivate_offender(self, offender_uuid: str, practitioner_id: str):
        """
        Stop check-ins for a verified offender.

        Raises:
            BadArgument: unknown offender, or setup still in progress
            InvalidStateTransition: offender already inactive
        """
        with session_scope(self.session_factory) as db:
            offender = queries.get_offender(db, offender_uuid)
            if offender is None:
                raise BadArgument(f"Offender not found: {offender_uuid}")
            if offender.status == OffenderStatus.INITIAL.value:
                raise BadArgument(f"Offender {offender_uuid} setup is in progress; terminate the setup instead")
            transition_offender(offender, OffenderStatus.INACTIVE, self.clock())

        logger.info("Offender deactivated", offender_uuid=offender_uuid, practitioner_id=practitioner_id)
        contact = lookup_contact(self.case_data, offender.crn)
        self.notifier.checkins_stopped(offender, contact)
        self.audit.record_offender_deactivated(offender, contact)
        return offender

    # ========== LISTING ==========

    def get_checkin(self, checkin_uuid: str) -> OffenderCheckin:
        db = self.session_factory()
        try:
            return self._get_checkin(db, checkin_uuid)
        finally:
            db.close()

    def list_checkins(self, practitioner_id: Optional[str] = None, offender_uuid: Optional[str] = None,
                      page: int = 0, size: int = DEFAULT_PAGE_SIZE) -> List[OffenderCheckin]:
        db = self.session_factory()
        try:
            return queries.list_checkins(db, practitioner_id, offender_uuid, page, size)
        finally:
            db.close()

    def list_audits(self, crn: Optional[str] = None, page: int = 0,
                    size: int = DEFAULT_PAGE_SIZE) -> List[EventAudit]:
        db = self.session_factory()
        try:
            return queries.list_audits(db, crn, page, size)
        finally:
            db.close()

    def _get_checkin(self, db, checkin_uuid: str) -> OffenderCheckin:
        checkin = queries.get_checkin(db, checkin_uuid)
        if checkin is None:
            raise BadArgument(f"Checkin not found: {checkin_uuid}")
        return checkin
