"""Database models."""
from esupervision.models.base import Base
from esupervision.models.offenders import Offender, OffenderSetup
from esupervision.models.checkins import OffenderCheckin
from esupervision.models.event_audit import EventAudit
from esupervision.models.job_log import JobLog

__all__ = [
    'Base',
    'Offender',
    'OffenderSetup',
    'OffenderCheckin',
    'EventAudit',
    'JobLog',
]
