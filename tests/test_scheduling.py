from datetime import date, time

import pytest
from sqlalchemy.exc import OperationalError

from atelier import models
from atelier.errors import (
    AvailabilityCheckFailed, InvalidParameter, MissingField, NotFound, SlotConflict,
)
from atelier.scheduling import (
    AppointmentScheduler, AvailabilityChecker, day_status, month_calendar, parse_slot_time,
)

from conftest import FUTURE_DAY, TEN


def slot_count(db, day=FUTURE_DAY, at=TEN):
    return db.query(models.Appointment).filter(
        models.Appointment.appointment_date == day,
        models.Appointment.appointment_time == at,
    ).count()


class AlwaysFree(AvailabilityChecker):
    """Pretends another session has not booked yet"""

    def is_available(self, slot_date, slot_time, exclude_id=None):
        return True


class BrokenStore(AvailabilityChecker):
    def active_in_slot(self, slot_date, slot_time, exclude_id=None):
        raise OperationalError("SELECT", {}, Exception("database is unreachable"))


def test_empty_slot_is_available(db):
    assert AvailabilityChecker(db).is_available(FUTURE_DAY, TEN)


def test_schedule_creates_scheduled_appointment(db, make_work):
    work = make_work()
    appointment = AppointmentScheduler(db).schedule(
        work.id, work.client_id, FUTURE_DAY, "10:00", notes="  Prueba de ruedo  "
    )

    assert appointment.id is not None
    assert appointment.status == "scheduled"
    assert appointment.appointment_date == FUTURE_DAY
    assert appointment.appointment_time == TEN
    assert appointment.notes == "Prueba de ruedo"
    assert not AvailabilityChecker(db).is_available(FUTURE_DAY, TEN)


def test_slot_is_exclusive_across_clients(db, make_work, make_client):
    first = make_work()
    second = make_work(client=make_client(name="Luis Pérez"))
    scheduler = AppointmentScheduler(db)
    scheduler.schedule(first.id, first.client_id, FUTURE_DAY, TEN)

    with pytest.raises(SlotConflict):
        scheduler.schedule(second.id, second.client_id, FUTURE_DAY, TEN)
    assert slot_count(db) == 1


def test_cancelling_frees_the_slot(db, make_work, make_client):
    first = make_work()
    second = make_work(client=make_client(name="Luis Pérez"))
    scheduler = AppointmentScheduler(db)
    booked = scheduler.schedule(first.id, first.client_id, FUTURE_DAY, TEN)

    booked.status = "cancelled"
    db.commit()

    retry = scheduler.schedule(second.id, second.client_id, FUTURE_DAY, TEN)
    assert retry.status == "scheduled"
    assert slot_count(db) == 2


def test_schedule_is_not_idempotent(db, make_work):
    work = make_work()
    scheduler = AppointmentScheduler(db)
    scheduler.schedule(work.id, work.client_id, FUTURE_DAY, TEN)
    with pytest.raises(SlotConflict):
        scheduler.schedule(work.id, work.client_id, FUTURE_DAY, TEN)


def test_concurrent_booking_rejected_by_unique_index(db, make_work, make_client):
    first = make_work()
    second = make_work(client=make_client(name="Luis Pérez"))
    scheduler = AppointmentScheduler(db, checker=AlwaysFree(db))
    scheduler.schedule(first.id, first.client_id, FUTURE_DAY, TEN)

    with pytest.raises(SlotConflict):
        scheduler.schedule(second.id, second.client_id, FUTURE_DAY, TEN)
    assert slot_count(db) == 1


def test_failed_availability_check_books_nothing(db, make_work):
    work = make_work()
    scheduler = AppointmentScheduler(db, checker=BrokenStore(db))

    with pytest.raises(AvailabilityCheckFailed):
        scheduler.schedule(work.id, work.client_id, FUTURE_DAY, TEN)
    assert slot_count(db) == 0


@pytest.mark.parametrize("day,at,missing", [
    (None, TEN, ["appointment_date"]),
    (FUTURE_DAY, None, ["appointment_time"]),
    (None, "", ["appointment_date", "appointment_time"]),
])
def test_missing_date_or_time(db, make_work, day, at, missing):
    work = make_work()
    with pytest.raises(MissingField) as excinfo:
        AppointmentScheduler(db).schedule(work.id, work.client_id, day, at)
    assert excinfo.value.context["fields"] == missing
    assert db.query(models.Appointment).count() == 0


def test_past_date_rejected_unless_backfilling(db, make_work):
    work = make_work()
    scheduler = AppointmentScheduler(db)
    with pytest.raises(InvalidParameter):
        scheduler.schedule(work.id, work.client_id, date(2024, 6, 3), TEN, today=date(2024, 6, 4))

    appointment = scheduler.schedule(
        work.id, work.client_id, date(2024, 6, 3), TEN, allow_past=True, today=date(2024, 6, 4)
    )
    assert appointment.appointment_date == date(2024, 6, 3)


def test_unknown_work_or_foreign_client(db, make_work, make_client):
    work = make_work()
    other = make_client(name="Luis Pérez")
    scheduler = AppointmentScheduler(db)

    with pytest.raises(NotFound):
        scheduler.schedule(9999, work.client_id, FUTURE_DAY, TEN)
    with pytest.raises(InvalidParameter):
        scheduler.schedule(work.id, other.id, FUTURE_DAY, TEN)


@pytest.mark.parametrize("raw", ["25:00", "10h", "10:00:30", "abc"])
def test_malformed_time(raw):
    with pytest.raises(InvalidParameter):
        parse_slot_time(raw)


def test_parse_slot_time_accepts_seconds_of_zero():
    assert parse_slot_time("09:30:00") == time(9, 30)
    assert parse_slot_time(time(9, 30)) == time(9, 30)


def test_day_status_lists_booked_and_free_slots(db, make_work):
    work = make_work()
    AppointmentScheduler(db).schedule(work.id, work.client_id, FUTURE_DAY, "08:30")

    status = day_status(db, FUTURE_DAY)
    assert status["has_appointments"]
    assert status["booked_slots"] == ["08:30"]
    assert "08:30" not in status["available_slots"]
    assert status["available_slots"][0] == "08:00"
    assert status["available_slots"][-1] == "18:30"


def test_month_calendar(db, make_work):
    work = make_work()
    AppointmentScheduler(db).schedule(work.id, work.client_id, FUTURE_DAY, TEN)

    days = month_calendar(db, 2099, 1)
    assert len(days) == 31
    busy = [d for d in days if d["appointment_count"]]
    assert [d["date"] for d in busy] == [FUTURE_DAY]
    assert busy[0]["booked_slots"] == ["10:00"]

    with pytest.raises(InvalidParameter):
        month_calendar(db, 2099, 13)
    with pytest.raises(InvalidParameter):
        month_calendar(db, 0, 1)


@pytest.mark.parametrize("closed", ["cancelled", "delivered", "completed"])
def test_closed_work_cannot_be_booked(db, make_work, closed):
    work = make_work(status=closed)
    with pytest.raises(InvalidParameter):
        AppointmentScheduler(db).schedule(work.id, work.client_id, FUTURE_DAY, TEN)
    assert slot_count(db) == 0
