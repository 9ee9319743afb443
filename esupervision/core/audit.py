"""
Audit trail recorder.

Writes PII-free facts about lifecycle events for reporting. Recording is
best-effort: each write (single or batch) runs in its own transaction,
rows without practitioner details are skipped with a warning, and any
failure is logged through the PII sanitizer instead of being raised.
"""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from esupervision.integrations.base import ContactDetails
from esupervision.models.base import SessionLocal
from esupervision.models.event_audit import EventAudit
from esupervision.utils.clock import utc_now
from esupervision.utils.constants import NOTE_EXPIRED_BY_JOB, NOTE_REMINDED_BY_JOB
from esupervision.utils.logging import get_logger
from esupervision.utils.metrics import record_audit
from esupervision.utils.pii import sanitize_exception

logger = get_logger(__name__)

_HOURS_PLACES = Decimal("0.01")

# (checkin, offender, contact details) for batch recording
AuditItem = Tuple[object, object, Optional[ContactDetails]]


class AuditEventType(str, Enum):
    SETUP_COMPLETED = "SETUP_COMPLETED"
    SETUP_TERMINATED = "SETUP_TERMINATED"
    CHECKIN_CREATED = "CHECKIN_CREATED"
    CHECKIN_SUBMITTED = "CHECKIN_SUBMITTED"
    CHECKIN_REVIEWED = "CHECKIN_REVIEWED"
    CHECKIN_EXPIRED = "CHECKIN_EXPIRED"
    CHECKIN_REMINDER = "CHECKIN_REMINDER"
    OFFENDER_DEACTIVATED = "OFFENDER_DEACTIVATED"


def hours_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[Decimal]:
    """Whole minutes between two instants, in hours rounded half-up to 2 places."""
    if start is None or end is None:
        return None
    minutes = int((end - start) / timedelta(minutes=1))
    return (Decimal(minutes) / Decimal(60)).quantize(_HOURS_PLACES, rounding=ROUND_HALF_UP)


def covering_note(reviewed_by: Optional[str], practitioner_id: Optional[str]) -> Optional[str]:
    if reviewed_by and practitioner_id and reviewed_by != practitioner_id:
        return f"Reviewed by {reviewed_by} (possibly covering for {practitioner_id})"
    return None


class EventAuditRecorder:
    """
    Records audit facts.
    
    Single-event methods return True when a row was written; batch methods
    return the number of rows written. No method raises.
    """
    
    def __init__(self, session_factory=SessionLocal, clock=utc_now):
        self.session_factory = session_factory
        self.clock = clock
    
    def record_setup_completed(self, offender, contact: Optional[ContactDetails]) -> bool:
        return self.record(AuditEventType.SETUP_COMPLETED, offender, contact)
    
    def record_setup_terminated(self, offender, contact: Optional[ContactDetails]) -> bool:
        return self.record(AuditEventType.SETUP_TERMINATED, offender, contact)
    
    def record_offender_deactivated(self, offender, contact: Optional[ContactDetails]) -> bool:
        return self.record(AuditEventType.OFFENDER_DEACTIVATED, offender, contact)
    
    def record_checkin_created(self, checkin, offender, contact: Optional[ContactDetails],
                               notes: Optional[str] = None) -> bool:
        return self.record(AuditEventType.CHECKIN_CREATED, offender, contact, checkin, notes=notes)
    
    def record_checkin_submitted(self, checkin, offender, contact: Optional[ContactDetails]) -> bool:
        return self.record(
            AuditEventType.CHECKIN_SUBMITTED, offender, contact, checkin,
            time_to_submit_hours=hours_between(checkin.created_at, checkin.submitted_at),
        )
    
    def record_checkin_reviewed(self, checkin, offender, contact: Optional[ContactDetails]) -> bool:
        return self.record(
            AuditEventType.CHECKIN_REVIEWED, offender, contact, checkin,
            time_to_submit_hours=hours_between(checkin.created_at, checkin.submitted_at),
            time_to_review_hours=hours_between(checkin.submitted_at, checkin.review_started_at),
            review_duration_hours=hours_between(checkin.review_started_at, checkin.reviewed_at),
            notes=covering_note(checkin.reviewed_by, offender.practitioner_id),
        )
    
    def record_checkins_expired(self, items: Iterable[AuditItem]) -> int:
        return self.record_batch(AuditEventType.CHECKIN_EXPIRED, items, notes=NOTE_EXPIRED_BY_JOB)
    
    def record_checkins_reminded(self, items: Iterable[AuditItem]) -> int:
        return self.record_batch(AuditEventType.CHECKIN_REMINDER, items, notes=NOTE_REMINDED_BY_JOB)
    
    def record(self, event_type: AuditEventType, offender, contact: Optional[ContactDetails],
               checkin=None, **metrics) -> bool:
        """
        Write one audit row in its own transaction.
        
        Args:
            event_type: Lifecycle event being recorded
            offender: Offender the event concerns
            contact: Upstream contact details; rows need the practitioner's org units
            checkin: Check-in the event concerns, if any
            **metrics: Duration metrics and notes
        
        Returns:
            True if a row was written
        """
        checkin_uuid = getattr(checkin, 'uuid', None)
        try:
            audit = self.build_event(event_type, offender, contact, checkin, **metrics)
            if audit is None:
                return False
            self._save([audit])
            record_audit(event_type.value, 'written')
            return True
        except Exception as e:
            record_audit(event_type.value, 'failed')
            logger.error(
                "Failed to record audit event",
                event_type=event_type.value,
                error=sanitize_exception(e, crn=offender.crn, uuid=checkin_uuid or offender.uuid),
            )
            return False
    
    def record_batch(self, event_type: AuditEventType, items: Iterable[AuditItem],
                     notes: Optional[str] = None) -> int:
        """Write one audit row per item in a single transaction."""
        try:
            audits: List[EventAudit] = []
            for checkin, offender, contact in items:
                audit = self.build_event(event_type, offender, contact, checkin, notes=notes)
                if audit is not None:
                    audits.append(audit)
            if not audits:
                return 0
            self._save(audits)
            record_audit(event_type.value, 'written', len(audits))
            logger.info("Recorded audit batch", event_type=event_type.value, count=len(audits))
            return len(audits)
        except Exception as e:
            record_audit(event_type.value, 'failed')
            logger.error(
                "Failed to record audit batch",
                event_type=event_type.value,
                error=sanitize_exception(e),
            )
            return 0
    
    def build_event(self, event_type: AuditEventType, offender, contact: Optional[ContactDetails],
                    checkin=None, **metrics) -> Optional[EventAudit]:
        practitioner = contact.practitioner if contact is not None else None
        if practitioner is None:
            record_audit(event_type.value, 'skipped')
            logger.warning(
                "No practitioner details, audit event skipped",
                event_type=event_type.value,
                crn=offender.crn,
                checkin_uuid=getattr(checkin, 'uuid', None),
            )
            return None
        
        lau = practitioner.local_admin_unit
        pdu = practitioner.probation_delivery_unit
        provider = practitioner.provider
        audit = EventAudit(
            event_type=event_type.value,
            occurred_at=self.clock(),
            crn=offender.crn,
            practitioner_id=offender.practitioner_id,
            local_admin_unit_code=lau.code if lau else None,
            local_admin_unit_description=lau.description if lau else None,
            pdu_code=pdu.code if pdu else None,
            pdu_description=pdu.description if pdu else None,
            provider_code=provider.code if provider else None,
            provider_description=provider.description if provider else None,
            time_to_submit_hours=metrics.get('time_to_submit_hours'),
            time_to_review_hours=metrics.get('time_to_review_hours'),
            review_duration_hours=metrics.get('review_duration_hours'),
            notes=metrics.get('notes'),
        )
        if checkin is not None:
            audit.checkin_uuid = checkin.uuid
            audit.checkin_status = checkin.status
            audit.checkin_due_date = checkin.due_date
            audit.auto_id_check_result = checkin.auto_id_check
            audit.manual_id_check_result = checkin.manual_id_check
        return audit
    
    def _save(self, audits: List[EventAudit]):
        db = self.session_factory()
        try:
            db.add_all(audits)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
