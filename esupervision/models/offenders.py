"""
Offender and setup models.
"""
import uuid

from sqlalchemy import Column, Integer, String, Date, DateTime, Interval, ForeignKey
from sqlalchemy.orm import relationship, validates

from esupervision.core.enums import CheckinInterval
from esupervision.core.states import OffenderStatus
from esupervision.models.base import Base
from esupervision.utils.clock import utc_now


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Offender(Base):
    """
    Person under supervision with a check-in schedule.
    
    Status only changes through core.states.transition_offender.
    """
    __tablename__ = 'offenders'
    
    # Primary key
    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=_new_uuid)
    
    # Case reference, fixed once set
    crn = Column(String(7), nullable=False, index=True)
    practitioner_id = Column(String(100), nullable=False, index=True)
    
    status = Column(String(20), nullable=False, default=OffenderStatus.INITIAL.value, index=True)
    
    # Schedule
    first_checkin = Column(Date, nullable=False)
    checkin_interval = Column(Interval, nullable=False)
    
    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utc_now)
    created_by = Column(String(100), nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utc_now)
    
    checkins = relationship("OffenderCheckin", back_populates="offender")
    
    @validates('crn')
    def validate_crn(self, key, value):
        if self.crn is not None and value != self.crn:
            raise ValueError(f"crn is immutable (offender {self.uuid})")
        return value
    
    @property
    def interval(self) -> CheckinInterval:
        return CheckinInterval.from_duration(self.checkin_interval)
    
    def __repr__(self):
        return f"<Offender(uuid='{self.uuid}', crn='{self.crn}', status='{self.status}')>"


class OffenderSetup(Base):
    """
    Transient record of an offender's pending registration.
    
    Deleted when the setup is completed or terminated.
    """
    __tablename__ = 'offender_setups'
    
    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=_new_uuid)
    offender_id = Column(Integer, ForeignKey('offenders.id'), nullable=False, unique=True)
    practitioner_id = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    started_at = Column(DateTime)
    
    offender = relationship("Offender", lazy="joined")
    
    def __repr__(self):
        return f"<OffenderSetup(uuid='{self.uuid}', offender_id={self.offender_id})>"
