"""
Status lifecycles of appointments and works
"""
import logging
from datetime import date
from typing import Dict, FrozenSet, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import models
from .errors import IllegalTransition, InvalidStatus, NotFound, SlotConflict, StaleUpdate
from .models import AppointmentStatus, WorkStatus
from .scheduling import AppointmentScheduler, AvailabilityChecker, format_slot_time

logger = logging.getLogger(__name__)

S = TypeVar("S", AppointmentStatus, WorkStatus)


APPOINTMENT_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
    }),
    AppointmentStatus.RESCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.SCHEDULED,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

# Forward path plus cancellation; delivered and cancelled are terminal
WORK_TRANSITIONS: Dict[WorkStatus, FrozenSet[WorkStatus]] = {
    WorkStatus.PENDING: frozenset({WorkStatus.IN_PROGRESS, WorkStatus.CANCELLED}),
    WorkStatus.IN_PROGRESS: frozenset({WorkStatus.COMPLETED, WorkStatus.CANCELLED}),
    WorkStatus.COMPLETED: frozenset({WorkStatus.DELIVERED, WorkStatus.CANCELLED}),
    WorkStatus.DELIVERED: frozenset(),
    WorkStatus.CANCELLED: frozenset(),
}

WORK_NEXT_STEP: Dict[WorkStatus, WorkStatus] = {
    WorkStatus.PENDING: WorkStatus.IN_PROGRESS,
    WorkStatus.IN_PROGRESS: WorkStatus.COMPLETED,
    WorkStatus.COMPLETED: WorkStatus.DELIVERED,
}


def parse_status(status_cls: Type[S], value) -> S:
    try:
        return status_cls(value)
    except ValueError:
        raise InvalidStatus(f"Estado desconocido: {value!r}", status=value)


def allowed_work_transitions(current) -> List[str]:
    """The legal next step first, then cancellation when still possible"""
    current = parse_status(WorkStatus, current)
    allowed = []
    if current in WORK_NEXT_STEP:
        allowed.append(WORK_NEXT_STEP[current].value)
    if WorkStatus.CANCELLED in WORK_TRANSITIONS[current]:
        allowed.append(WorkStatus.CANCELLED.value)
    return allowed


def allowed_appointment_transitions(current) -> List[str]:
    current = parse_status(AppointmentStatus, current)
    return sorted(s.value for s in APPOINTMENT_TRANSITIONS[current])


def check_version(entity, expected_version: Optional[int]):
    if expected_version is not None and entity.version != expected_version:
        raise StaleUpdate()


def commit_update(db: Session, entity):
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise StaleUpdate()
    db.refresh(entity)
    return entity


class AppointmentLifecycle:
    """Status changes of appointments, restricted to the transition table"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, appointment_id: int) -> models.Appointment:
        appointment = self.db.get(models.Appointment, appointment_id)
        if appointment is None:
            raise NotFound("Cita", appointment_id)
        return appointment

    def _check_transition(self, appointment: models.Appointment, target: AppointmentStatus):
        current = AppointmentStatus(appointment.status)
        if target not in APPOINTMENT_TRANSITIONS[current]:
            logger.warning(
                f"⚠️ Rejected appointment #{appointment.id} transition {current.value} -> {target.value}"
            )
            raise IllegalTransition(current.value, target.value)

    def set_status(
        self,
        appointment_id: int,
        new_status,
        expected_version: Optional[int] = None,
    ) -> models.Appointment:
        target = parse_status(AppointmentStatus, new_status)
        appointment = self.get(appointment_id)
        check_version(appointment, expected_version)
        self._check_transition(appointment, target)

        previous = appointment.status
        appointment.status = target.value
        commit_update(self.db, appointment)

        logger.info(f"✅ Appointment #{appointment.id}: {previous} -> {target.value}")
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        new_date,
        new_time,
        notes: Optional[str] = None,
        allow_past: bool = False,
        expected_version: Optional[int] = None,
        today: Optional[date] = None,
    ) -> models.Appointment:
        """
        Move an appointment to another free slot and mark it rescheduled.

        An appointment that was already rescheduled can be moved again and
        keeps its status.
        """
        appointment = self.get(appointment_id)
        check_version(appointment, expected_version)
        if appointment.status != AppointmentStatus.RESCHEDULED.value:
            self._check_transition(appointment, AppointmentStatus.RESCHEDULED)

        scheduler = AppointmentScheduler(self.db)
        slot_date, slot_time = scheduler.validate_slot(
            new_date, new_time, allow_past=allow_past, today=today
        )

        checker = AvailabilityChecker(self.db)
        if not checker.is_available(slot_date, slot_time, exclude_id=appointment.id):
            raise SlotConflict()

        appointment.appointment_date = slot_date
        appointment.appointment_time = slot_time
        appointment.status = AppointmentStatus.RESCHEDULED.value
        if notes is not None:
            appointment.notes = notes.strip() or None

        try:
            commit_update(self.db, appointment)
        except IntegrityError:
            self.db.rollback()
            raise SlotConflict("Este horario acaba de ser reservado por otra sesión. Elija otro horario.")

        logger.info(
            f"✅ Appointment #{appointment.id} rescheduled to {slot_date} {format_slot_time(slot_time)}"
        )
        return appointment


class WorkLifecycle:
    """Status changes of works along pending -> in_progress -> completed -> delivered"""

    def __init__(self, db: Session):
        self.db = db

    def advance(
        self,
        work_id: int,
        target_status,
        expected_version: Optional[int] = None,
        today: Optional[date] = None,
    ) -> models.Work:
        """
        Move a work to target_status.

        Delivering stamps actual_delivery_date with today unless it was
        already set. Reaching completed is what makes the client eligible for
        a notification; composing or sending it is left to the caller once
        this returns, so a notification problem cannot undo the change.
        """
        target = parse_status(WorkStatus, target_status)
        work = self.db.get(models.Work, work_id)
        if work is None:
            raise NotFound("Trabajo", work_id)
        check_version(work, expected_version)

        current = WorkStatus(work.status)
        if target not in WORK_TRANSITIONS[current]:
            logger.warning(f"⚠️ Rejected work #{work.id} transition {current.value} -> {target.value}")
            raise IllegalTransition(current.value, target.value)

        work.status = target.value
        if target is WorkStatus.DELIVERED and work.actual_delivery_date is None:
            work.actual_delivery_date = today or date.today()

        commit_update(self.db, work)
        logger.info(f"✅ Work #{work.id}: {current.value} -> {target.value}")
        return work


def is_notification_eligible(work: models.Work) -> bool:
    """Completed works whose client has a phone number"""
    return (
        work.status == WorkStatus.COMPLETED.value
        and work.client is not None
        and bool((work.client.phone or "").strip())
    )
