"""
Status state machines for offenders and check-ins.

Transition rules live in explicit tables. The transition_* helpers are the
only code that writes a status column.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet

from esupervision.core.exceptions import InvalidStateTransition


class OffenderStatus(str, Enum):
    """Offender lifecycle status."""
    INITIAL = "INITIAL"
    VERIFIED = "VERIFIED"
    INACTIVE = "INACTIVE"


class CheckinStatus(str, Enum):
    """Check-in lifecycle status."""
    CREATED = "CREATED"
    SUBMITTED = "SUBMITTED"
    REVIEWED = "REVIEWED"
    EXPIRED = "EXPIRED"


OFFENDER_TRANSITIONS: Dict[OffenderStatus, FrozenSet[OffenderStatus]] = {
    OffenderStatus.INITIAL: frozenset({OffenderStatus.VERIFIED, OffenderStatus.INACTIVE}),
    OffenderStatus.VERIFIED: frozenset({OffenderStatus.INACTIVE}),
    OffenderStatus.INACTIVE: frozenset(),
}

CHECKIN_TRANSITIONS: Dict[CheckinStatus, FrozenSet[CheckinStatus]] = {
    CheckinStatus.CREATED: frozenset({CheckinStatus.SUBMITTED, CheckinStatus.EXPIRED}),
    CheckinStatus.SUBMITTED: frozenset({CheckinStatus.REVIEWED, CheckinStatus.EXPIRED}),
    CheckinStatus.REVIEWED: frozenset(),
    CheckinStatus.EXPIRED: frozenset(),
}

# Check-ins that count as scheduled for their due date
ACTIVE_CHECKIN_STATUSES = (
    CheckinStatus.CREATED,
    CheckinStatus.SUBMITTED,
    CheckinStatus.REVIEWED,
)

# Check-ins the expiry sweep may close
OPEN_CHECKIN_STATUSES = (CheckinStatus.CREATED, CheckinStatus.SUBMITTED)


def can_transition_to(current, target) -> bool:
    """Whether an offender may move from current to target status."""
    return OffenderStatus(target) in OFFENDER_TRANSITIONS[OffenderStatus(current)]


def can_checkin_transition_to(current, target) -> bool:
    """Whether a check-in may move from current to target status."""
    return CheckinStatus(target) in CHECKIN_TRANSITIONS[CheckinStatus(current)]


def ensure_offender_transition(current, target):
    if not can_transition_to(current, target):
        raise InvalidStateTransition(OffenderStatus(current), OffenderStatus(target), "offender")


def ensure_checkin_transition(current, target):
    if not can_checkin_transition_to(current, target):
        raise InvalidStateTransition(CheckinStatus(current), CheckinStatus(target), "checkin")


def transition_offender(offender, target: OffenderStatus, now: datetime):
    """
    Move an offender to target status.

    Raises:
        InvalidStateTransition: target not reachable from the current status
    """
    ensure_offender_transition(offender.status, target)
    offender.status = OffenderStatus(target).value
    offender.updated_at = now
    return offender


def transition_checkin(checkin, target: CheckinStatus):
    """
    Move a check-in to target status.

    Raises:
        InvalidStateTransition: target not reachable from the current status
    """
    ensure_checkin_transition(checkin.status, target)
    checkin.status = CheckinStatus(target).value
    return checkin
