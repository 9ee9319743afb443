"""Audit fact model."""
from sqlalchemy import Column, String, DateTime, Date, Integer, Numeric, event

from esupervision.core.exceptions import ImmutableAuditError
from esupervision.models.base import Base
from esupervision.utils.clock import utc_now

class EventAudit(Base):
    """
    Write-once, PII-free record of a lifecycle event for reporting.
    """
    __tablename__ = 'event_audit'
    
    # Primary key
    id = Column(Integer, primary_key=True)
    
    # Event details
    event_type = Column(String(50), nullable=False, index=True)
    occurred_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    crn = Column(String(7), nullable=False, index=True)
    practitioner_id = Column(String(100))
    
    # Organisational units
    local_admin_unit_code = Column(String(50))
    local_admin_unit_description = Column(String(255))
    pdu_code = Column(String(50))
    pdu_description = Column(String(255))
    provider_code = Column(String(50))
    provider_description = Column(String(255))
    
    # Check-in facts
    checkin_uuid = Column(String(36), index=True)
    checkin_status = Column(String(20))
    checkin_due_date = Column(Date)
    
    # Duration metrics in hours
    time_to_submit_hours = Column(Numeric(10, 2))
    time_to_review_hours = Column(Numeric(10, 2))
    review_duration_hours = Column(Numeric(10, 2))
    
    # Identity checks
    auto_id_check_result = Column(String(20))
    manual_id_check_result = Column(String(20))
    
    notes = Column(String(1000))
    
    def __repr__(self):
        return f"<EventAudit(event_type='{self.event_type}', crn='{self.crn}', occurred_at='{self.occurred_at}')>"


@event.listens_for(EventAudit, 'before_update')
def _reject_update(mapper, connection, target):
    raise ImmutableAuditError(f"EventAudit rows are write-once (id={target.id})")


@event.listens_for(EventAudit, 'before_delete')
def _reject_delete(mapper, connection, target):
    raise ImmutableAuditError(f"EventAudit rows are write-once (id={target.id})")
