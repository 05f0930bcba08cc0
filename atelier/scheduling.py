"""
Appointment slot availability and booking
"""
import calendar
import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .business_calendar import parse_date
from .errors import (
    AvailabilityCheckFailed, InvalidParameter, MissingField, NotFound, SlotConflict,
)

logger = logging.getLogger(__name__)

CANCELLED = models.AppointmentStatus.CANCELLED.value

BOOKABLE_WORK_STATUSES = (models.WorkStatus.PENDING.value, models.WorkStatus.IN_PROGRESS.value)

# Half-hour grid offered by the calendar, 08:00 to 18:30
SLOT_TIMES = [time(hour, minute) for hour in range(8, 19) for minute in (0, 30)]

TimeLike = Union[time, str]


def parse_slot_time(value: TimeLike, field: str = "appointment_time") -> time:
    """Normalise a slot time to minute precision (HH:MM)"""
    if isinstance(value, datetime):
        value = value.time()
    if isinstance(value, str):
        raw = value.strip()
        parsed = None
        for fmt in ("%H:%M", "%H:%M:%S"):
            try:
                parsed = datetime.strptime(raw, fmt).time()
                break
            except ValueError:
                continue
        if parsed is None:
            raise InvalidParameter(f"Hora inválida en '{field}': {value!r}")
        value = parsed
    if not isinstance(value, time):
        raise InvalidParameter(f"Hora inválida en '{field}': {value!r}")
    if value.second or value.microsecond:
        raise InvalidParameter(f"La hora debe tener formato HH:MM: {value!r}")
    return value.replace(tzinfo=None)


def format_slot_time(value: time) -> str:
    return value.strftime("%H:%M")


class AvailabilityChecker:
    """Answers whether a (date, time) slot can take a new appointment"""

    def __init__(self, db: Session):
        self.db = db

    def active_in_slot(self, slot_date: date, slot_time: time, exclude_id: Optional[int] = None):
        query = self.db.query(models.Appointment).filter(
            models.Appointment.appointment_date == slot_date,
            models.Appointment.appointment_time == slot_time,
            models.Appointment.status != CANCELLED,
        )
        if exclude_id is not None:
            query = query.filter(models.Appointment.id != exclude_id)
        return query

    def is_available(self, slot_date: date, slot_time: time, exclude_id: Optional[int] = None) -> bool:
        """Workshop-wide check; any non-cancelled appointment holds the slot"""
        try:
            taken = self.active_in_slot(slot_date, slot_time, exclude_id).first()
        except SQLAlchemyError as e:
            logger.error(f"❌ Availability check failed for {slot_date} {slot_time}: {e}")
            raise AvailabilityCheckFailed() from e
        return taken is None


class AppointmentScheduler:
    """Creates appointments after confirming the slot is free"""

    def __init__(self, db: Session, checker: Optional[AvailabilityChecker] = None):
        self.db = db
        self.checker = checker or AvailabilityChecker(db)

    def validate_slot(
        self,
        appointment_date,
        appointment_time,
        allow_past: bool = False,
        today: Optional[date] = None,
    ):
        missing = []
        if appointment_date in (None, ""):
            missing.append("appointment_date")
        if appointment_time in (None, ""):
            missing.append("appointment_time")
        if missing:
            raise MissingField(*missing)

        slot_date = parse_date(appointment_date, "appointment_date")
        slot_time = parse_slot_time(appointment_time)

        today = today or date.today()
        if not allow_past and slot_date < today:
            raise InvalidParameter("No se puede programar una cita en una fecha pasada")
        return slot_date, slot_time

    def schedule(
        self,
        work_id: int,
        client_id: int,
        appointment_date,
        appointment_time,
        notes: Optional[str] = None,
        allow_past: bool = False,
        commit: bool = True,
        today: Optional[date] = None,
    ) -> models.Appointment:
        """
        Book a slot for a work.

        Nothing is written unless the slot is confirmed free; a failed
        availability query aborts the booking. The partial unique index on
        the appointments table catches bookings that slip in between the
        check and the insert, and that rejection is reported as a slot
        conflict too.

        With commit=False the appointment is only flushed, so a caller can
        make it part of a larger transaction.
        """
        slot_date, slot_time = self.validate_slot(
            appointment_date, appointment_time, allow_past=allow_past, today=today
        )

        work = self.db.get(models.Work, work_id)
        if work is None:
            raise NotFound("Trabajo", work_id)
        if self.db.get(models.Client, client_id) is None:
            raise NotFound("Cliente", client_id)
        if work.client_id != client_id:
            raise InvalidParameter("El cliente no corresponde al trabajo")
        if work.status not in BOOKABLE_WORK_STATUSES:
            raise InvalidParameter(f"No se pueden agendar turnos para un trabajo en estado {work.status}")

        try:
            available = self.checker.is_available(slot_date, slot_time)
        except AvailabilityCheckFailed:
            self.db.rollback()
            raise

        if not available:
            logger.warning(f"⚠️ Slot {slot_date} {format_slot_time(slot_time)} already taken")
            raise SlotConflict()

        appointment = models.Appointment(
            work_id=work_id,
            client_id=client_id,
            appointment_date=slot_date,
            appointment_time=slot_time,
            status=models.AppointmentStatus.SCHEDULED.value,
            notes=notes.strip() if notes else None,
        )
        self.db.add(appointment)

        try:
            self.db.flush()
            if commit:
                self.db.commit()
        except IntegrityError:
            # Two sessions raced for the same slot, the index rejected ours
            self.db.rollback()
            logger.warning(
                f"⚠️ Slot {slot_date} {format_slot_time(slot_time)} was booked concurrently"
            )
            raise SlotConflict("Este horario acaba de ser reservado por otra sesión. Elija otro horario.")

        if commit:
            self.db.refresh(appointment)
        logger.info(
            f"✅ Appointment #{appointment.id} scheduled for work #{work_id} "
            f"on {slot_date} {format_slot_time(slot_time)}"
        )
        return appointment


def day_status(db: Session, day: date) -> Dict:
    """Booked and free slots of the workshop grid for one day"""
    appointments = db.query(models.Appointment).filter(
        models.Appointment.appointment_date == day,
        models.Appointment.status != CANCELLED,
    ).order_by(models.Appointment.appointment_time).all()

    booked = [a.appointment_time for a in appointments]
    available = [t for t in SLOT_TIMES if t not in booked]

    return {
        "date": day,
        "has_appointments": len(booked) > 0,
        "booked_slots": [format_slot_time(t) for t in booked],
        "available_slots": [format_slot_time(t) for t in available],
    }


def month_calendar(db: Session, year: int, month: int) -> List[Dict]:
    """Per-day summary of active appointments in a month"""
    if month < 1 or month > 12:
        raise InvalidParameter("El mes debe estar entre 1 y 12")
    if year < date.min.year or year > date.max.year:
        raise InvalidParameter(f"El año debe estar entre {date.min.year} y {date.max.year}")

    _, num_days = calendar.monthrange(year, month)
    first_day = date(year, month, 1)
    last_day = date(year, month, num_days)

    appointments = db.query(models.Appointment).filter(
        models.Appointment.appointment_date >= first_day,
        models.Appointment.appointment_date <= last_day,
        models.Appointment.status != CANCELLED,
    ).all()

    # Group by day
    by_date: Dict[date, List[time]] = {}
    for appointment in appointments:
        by_date.setdefault(appointment.appointment_date, []).append(appointment.appointment_time)

    result = []
    current = first_day
    while current <= last_day:
        booked = sorted(by_date.get(current, []))
        result.append({
            "date": current,
            "appointment_count": len(booked),
            "booked_slots": [format_slot_time(t) for t in booked],
            "free_slot_count": len([t for t in SLOT_TIMES if t not in booked]),
        })
        current += timedelta(days=1)
    return result
