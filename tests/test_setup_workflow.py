from datetime import timedelta

import pytest

from conftest import TODAY, reload_offender
from esupervision.core.enums import CheckinInterval
from esupervision.core.exceptions import BadArgument, InvalidOffenderSetupState
from esupervision.core.notifications import Notifier
from esupervision.core.setup_workflow import OffenderInfo, OffenderSetupWorkflow
from esupervision.core.states import OffenderStatus
from esupervision.models.checkins import OffenderCheckin
from esupervision.models.event_audit import EventAudit
from esupervision.models.offenders import OffenderSetup


def info(crn=" x123456 ", interval="WEEKLY", first_checkin=None, practitioner_id="PRAC1"):
    return OffenderInfo(
        crn=crn,
        practitioner_id=practitioner_id,
        first_checkin=first_checkin or TODAY + timedelta(days=7),
        checkin_interval=interval,
    )


def count(session_factory, model):
    db = session_factory()
    try:
        return db.query(model).count()
    finally:
        db.close()


class SpyNotifier(Notifier):
    def __init__(self, channel):
        super().__init__(channel)
        self.confirmations = []

    def registration_confirmed(self, offender, contact):
        self.confirmations.append((offender.uuid, contact))
        return super().registration_confirmed(offender, contact)


def test_start_creates_initial_offender_and_setup(services, session_factory):
    setup = services.setup.start(info())

    offender = reload_offender(session_factory, setup.offender.uuid)
    assert offender.crn == "X123456"
    assert offender.status == OffenderStatus.INITIAL.value
    assert offender.interval is CheckinInterval.WEEKLY
    assert offender.created_by == "PRAC1"
    assert setup.uuid
    assert count(session_factory, OffenderSetup) == 1


@pytest.mark.parametrize("bad", [
    dict(interval="MONTHLY"),
    dict(interval=timedelta(days=10)),
    dict(crn="12345"),
    dict(practitioner_id=" "),
])
def test_start_rejects_invalid_details(services, session_factory, bad):
    with pytest.raises(BadArgument):
        services.setup.start(info(**bad))

    assert count(session_factory, OffenderSetup) == 0


def test_restart_reuses_setup_and_updates_schedule(services, session_factory):
    first = services.setup.start(info())

    second = services.setup.start(info(interval=CheckinInterval.FOUR_WEEKS, practitioner_id="PRAC2"))

    assert second.uuid == first.uuid
    offender = reload_offender(session_factory, first.offender.uuid)
    assert offender.interval is CheckinInterval.FOUR_WEEKS
    assert offender.practitioner_id == "PRAC2"
    assert count(session_factory, OffenderSetup) == 1


def test_start_rejects_verified_crn(services, storage):
    setup = services.setup.start(info())
    storage.photos.add(setup.offender.uuid)
    services.setup.complete(setup.uuid)

    with pytest.raises(BadArgument, match="already exists"):
        services.setup.start(info())


def test_start_allows_crn_of_inactive_offender(services):
    setup = services.setup.start(info())
    services.setup.terminate(setup.uuid)

    again = services.setup.start(info())

    assert again.offender.uuid != setup.offender.uuid


def test_complete_verifies_and_runs_side_effects(services, session_factory, storage, case_data, channel, event_bus):
    setup = services.setup.start(info())
    storage.photos.add(setup.offender.uuid)
    case_data.add("X123456")

    offender = services.setup.complete(setup.uuid)

    assert reload_offender(session_factory, offender.uuid).status == OffenderStatus.VERIFIED.value
    assert count(session_factory, OffenderSetup) == 0
    db = session_factory()
    try:
        [row] = db.query(EventAudit).all()
    finally:
        db.close()
    assert row.event_type == "SETUP_COMPLETED"
    assert channel.types() == ["REGISTRATION_CONFIRMATION", "REGISTRATION_CONFIRMATION"]
    assert event_bus.types() == ["esupervision.setup.completed"]


def test_complete_without_contact_details_still_verifies(
        session_factory, clock, storage, case_data, channel, services):
    notifier = SpyNotifier(channel)
    workflow = OffenderSetupWorkflow(storage, case_data, notifier, services.audit,
                                     services.setup.events, session_factory=session_factory, clock=clock)
    setup = workflow.start(info())
    storage.photos.add(setup.offender.uuid)

    offender = workflow.complete(setup.uuid)

    assert reload_offender(session_factory, offender.uuid).status == OffenderStatus.VERIFIED.value
    assert count(session_factory, EventAudit) == 0
    assert notifier.confirmations == [(offender.uuid, None)]


def test_complete_without_photo_changes_nothing(services, session_factory):
    setup = services.setup.start(info())

    with pytest.raises(InvalidOffenderSetupState, match="No uploaded photo"):
        services.setup.complete(setup.uuid)

    assert reload_offender(session_factory, setup.offender.uuid).status == OffenderStatus.INITIAL.value
    assert count(session_factory, OffenderSetup) == 1


def test_complete_unknown_setup(services):
    with pytest.raises(BadArgument, match="No setup for given uuid"):
        services.setup.complete("missing")


def test_complete_creates_first_checkin_when_due_today(services, session_factory, storage, case_data, channel):
    setup = services.setup.start(info(first_checkin=TODAY))
    storage.photos.add(setup.offender.uuid)
    case_data.add("X123456")

    services.setup.complete(setup.uuid)

    db = session_factory()
    try:
        [checkin] = db.query(OffenderCheckin).all()
    finally:
        db.close()
    assert checkin.due_date == TODAY
    assert checkin.created_by == "SYSTEM"
    assert "CHECKIN_INVITE" in channel.types()
    assert count(session_factory, EventAudit) == 2


def test_side_effect_failures_do_not_fail_completion(services, session_factory, storage, case_data, channel, event_bus):
    setup = services.setup.start(info())
    storage.photos.add(setup.offender.uuid)
    case_data.add("X123456")
    channel.fail = True
    event_bus.fail = True

    offender = services.setup.complete(setup.uuid)

    assert reload_offender(session_factory, offender.uuid).status == OffenderStatus.VERIFIED.value
    assert channel.sent == []
    assert event_bus.published == []


def test_terminate_makes_offender_inactive(services, session_factory, case_data, channel):
    setup = services.setup.start(info())
    case_data.add("X123456")

    offender = services.setup.terminate(setup.uuid)

    assert reload_offender(session_factory, offender.uuid).status == OffenderStatus.INACTIVE.value
    assert count(session_factory, OffenderSetup) == 0
    assert "CHECKINS_STOPPED" in channel.types()
    assert count(session_factory, EventAudit) == 1


def test_terminate_twice_fails(services):
    setup = services.setup.start(info())
    services.setup.terminate(setup.uuid)

    with pytest.raises(BadArgument):
        services.setup.terminate(setup.uuid)
