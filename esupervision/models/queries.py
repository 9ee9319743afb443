"""
Read queries over offenders, check-ins and audits.
"""
from datetime import date, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from esupervision.core.states import (
    ACTIVE_CHECKIN_STATUSES,
    OPEN_CHECKIN_STATUSES,
    CheckinStatus,
    OffenderStatus,
)
from esupervision.models.checkins import OffenderCheckin
from esupervision.models.event_audit import EventAudit
from esupervision.models.offenders import Offender, OffenderSetup
from esupervision.utils.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def next_due_date(first_checkin: date, interval: timedelta, on_or_after: date) -> date:
    """
    First scheduled check-in date on or after a given day.

    Scheduled dates are first_checkin + k * interval for k >= 0.
    """
    if first_checkin >= on_or_after:
        return first_checkin
    interval_days = interval.days
    elapsed = (on_or_after - first_checkin).days
    periods = -(-elapsed // interval_days)  # ceiling division
    return first_checkin + timedelta(days=periods * interval_days)


def find_due_checkin_candidates(
    db: Session, window_start: date, window_end: date
) -> List[Tuple[Offender, date]]:
    """
    Verified offenders with a scheduled check-in inside [window_start, window_end).
    
    Offenders already holding a live check-in due inside the window are left
    out. Check-ins due outside the window do not exclude an offender, so a
    caller querying overlapping windows can see the same offender again.
    
    Returns:
        (offender, due_date) pairs ordered by offender id
    """
    if window_end <= window_start:
        return []
    
    already_scheduled = exists().where(
        and_(
            OffenderCheckin.offender_id == Offender.id,
            OffenderCheckin.due_date >= window_start,
            OffenderCheckin.due_date < window_end,
            OffenderCheckin.status.in_([s.value for s in ACTIVE_CHECKIN_STATUSES]),
        )
    )
    offenders = db.query(Offender).filter(
        Offender.status == OffenderStatus.VERIFIED.value,
        Offender.first_checkin < window_end,
        ~already_scheduled,
    ).order_by(Offender.id).all()
    
    candidates = []
    for offender in offenders:
        due = next_due_date(offender.first_checkin, offender.checkin_interval, window_start)
        if due < window_end:
            candidates.append((offender, due))
    return candidates


def find_overdue_checkins(db: Session, as_of: date) -> List[OffenderCheckin]:
    """Open check-ins due before as_of."""
    return db.query(OffenderCheckin).filter(
        OffenderCheckin.status.in_([s.value for s in OPEN_CHECKIN_STATUSES]),
        OffenderCheckin.due_date < as_of,
    ).order_by(OffenderCheckin.id).all()


def find_checkins_due_on(db: Session, due_on: date) -> List[OffenderCheckin]:
    """Created (not yet submitted) check-ins due on a given day."""
    return db.query(OffenderCheckin).filter(
        OffenderCheckin.status == CheckinStatus.CREATED.value,
        OffenderCheckin.due_date == due_on,
    ).order_by(OffenderCheckin.id).all()


def get_checkin(db: Session, checkin_uuid: str) -> Optional[OffenderCheckin]:
    return db.query(OffenderCheckin).filter(OffenderCheckin.uuid == checkin_uuid).first()


def get_offender(db: Session, offender_uuid: str) -> Optional[Offender]:
    return db.query(Offender).filter(Offender.uuid == offender_uuid).first()


def get_setup(db: Session, setup_uuid: str) -> Optional[OffenderSetup]:
    return db.query(OffenderSetup).filter(OffenderSetup.uuid == setup_uuid).first()


def find_active_offender_by_crn(db: Session, crn: str) -> Optional[Offender]:
    """Offender with this crn that is not INACTIVE."""
    return db.query(Offender).filter(
        Offender.crn == crn,
        Offender.status != OffenderStatus.INACTIVE.value,
    ).first()


def find_setup_for_offender(db: Session, offender_id: int) -> Optional[OffenderSetup]:
    return db.query(OffenderSetup).filter(OffenderSetup.offender_id == offender_id).first()


def _page(query, page: int, size: int):
    size = max(1, min(size, MAX_PAGE_SIZE))
    page = max(0, page)
    return query.offset(page * size).limit(size).all()


def list_checkins(
    db: Session,
    practitioner_id: Optional[str] = None,
    offender_uuid: Optional[str] = None,
    page: int = 0,
    size: int = DEFAULT_PAGE_SIZE,
) -> List[OffenderCheckin]:
    """Page of check-ins, newest due date first."""
    query = db.query(OffenderCheckin).join(Offender, OffenderCheckin.offender_id == Offender.id)
    if practitioner_id:
        query = query.filter(Offender.practitioner_id == practitioner_id)
    if offender_uuid:
        query = query.filter(Offender.uuid == offender_uuid)
    query = query.order_by(OffenderCheckin.due_date.desc(), OffenderCheckin.id.desc())
    return _page(query, page, size)


def list_audits(
    db: Session,
    crn: Optional[str] = None,
    page: int = 0,
    size: int = DEFAULT_PAGE_SIZE,
) -> List[EventAudit]:
    """Page of audit rows, most recent first."""
    query = db.query(EventAudit)
    if crn:
        query = query.filter(EventAudit.crn == crn)
    query = query.order_by(EventAudit.occurred_at.desc(), EventAudit.id.desc())
    return _page(query, page, size)
