"""Scheduled sweep run log."""
from sqlalchemy import Column, Integer, String, DateTime, JSON

from esupervision.models.base import Base
from esupervision.utils.clock import utc_now


class JobLog(Base):
    __tablename__ = 'job_log'
    
    id = Column(Integer, primary_key=True)
    job_type = Column(String(50), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    ended_at = Column(DateTime)
    status = Column(String(20), nullable=False, default='RUNNING')  # RUNNING, COMPLETED, FAILED
    outcome = Column(JSON)
    
    def __repr__(self):
        return f"<JobLog(job_type='{self.job_type}', status='{self.status}', created_at='{self.created_at}')>"
