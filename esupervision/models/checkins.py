"""
Check-in model.
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship

from esupervision.core.states import CheckinStatus
from esupervision.models.base import Base
from esupervision.models.offenders import _new_uuid
from esupervision.utils.clock import utc_now


class OffenderCheckin(Base):
    """
    One scheduled check-in and its review.
    
    Lifecycle: CREATED -> SUBMITTED -> REVIEWED, with CREATED or
    SUBMITTED -> EXPIRED applied only by the expiry sweep.
    """
    __tablename__ = 'offender_checkins'
    
    # Primary key
    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=_new_uuid)
    offender_id = Column(Integer, ForeignKey('offenders.id'), nullable=False, index=True)
    
    status = Column(String(20), nullable=False, default=CheckinStatus.CREATED.value, index=True)
    due_date = Column(Date, nullable=False, index=True)
    
    # Submission
    survey_response = Column(JSON)
    media_keys = Column(JSON)  # object storage keys for snapshots
    submitted_at = Column(DateTime)
    auto_id_check = Column(String(20))  # AutomatedIdVerificationResult
    
    # Review
    review_started_at = Column(DateTime)
    review_started_by = Column(String(100))
    reviewed_at = Column(DateTime)
    reviewed_by = Column(String(100))
    manual_id_check = Column(String(20))  # ManualIdVerificationResult
    review_notes = Column(String(2000))
    
    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utc_now)
    created_by = Column(String(100), nullable=False)
    
    offender = relationship("Offender", back_populates="checkins", lazy="joined")
    
    def __repr__(self):
        return f"<OffenderCheckin(uuid='{self.uuid}', status='{self.status}', due='{self.due_date}')>"
