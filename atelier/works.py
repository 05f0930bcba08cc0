"""
Work order service: creation flow, edits and queries
"""
import logging
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from . import models, schemas
from .business_calendar import compute_tentative_delivery_date, is_overdue, work_days_for
from .errors import InvalidParameter, MissingField, NotFound
from .lifecycle import (
    allowed_appointment_transitions, allowed_work_transitions, check_version, commit_update,
)
from .models import WorkStatus
from .scheduling import AppointmentScheduler

logger = logging.getLogger(__name__)

OPEN_STATUSES = (WorkStatus.PENDING.value, WorkStatus.IN_PROGRESS.value)


def work_to_response(work: models.Work, today: Optional[date] = None) -> schemas.WorkResponse:
    response = schemas.WorkResponse.model_validate(work)
    response.client_name = work.client.name if work.client else None
    response.category_name = work.category.name if work.category else None
    response.is_overdue = is_overdue(work.status, work.tentative_delivery_date, today)
    response.allowed_transitions = allowed_work_transitions(work.status)
    return response


def appointment_to_response(appointment: models.Appointment) -> schemas.AppointmentResponse:
    response = schemas.AppointmentResponse.model_validate(appointment)
    response.client_name = appointment.client.name if appointment.client else None
    response.allowed_transitions = allowed_appointment_transitions(appointment.status)
    return response


class WorkService:
    """Business logic for work orders"""

    def __init__(self, db: Session):
        self.db = db

    def get_work(self, work_id: int) -> models.Work:
        work = self.db.get(models.Work, work_id)
        if work is None:
            raise NotFound("Trabajo", work_id)
        return work

    def get_category(self, category_id: int) -> models.WorkCategory:
        category = self.db.get(models.WorkCategory, category_id)
        if category is None:
            raise NotFound("Categoría", category_id)
        return category

    def estimate(self, category_id: int, entry_date: date) -> schemas.EstimateResponse:
        """Tentative delivery date for a work that is not saved yet"""
        category = self.get_category(category_id)
        return schemas.EstimateResponse(
            category_id=category.id,
            entry_date=entry_date,
            work_days=work_days_for(category.estimated_hours),
            tolerance_days=category.tolerance_days,
            tentative_delivery_date=compute_tentative_delivery_date(
                entry_date, category.estimated_hours, category.tolerance_days
            ),
        )

    def create_work(self, data: schemas.WorkCreate, today: Optional[date] = None) -> models.Work:
        """
        Register a new work as pending.

        When the category requires an appointment the slot is booked in the
        same transaction: if booking fails, the work is not created either.
        """
        if self.db.get(models.Client, data.client_id) is None:
            raise NotFound("Cliente", data.client_id)
        category = self.get_category(data.category_id)
        if not category.is_active:
            raise InvalidParameter(f"La categoría '{category.name}' no está activa")

        scheduler = AppointmentScheduler(self.db)
        if category.requires_appointment:
            missing = [
                name for name in ("appointment_date", "appointment_time")
                if getattr(data, name) is None
            ]
            if missing:
                raise MissingField(*missing)
            # Fail fast before anything is written
            scheduler.validate_slot(data.appointment_date, data.appointment_time, today=today)

        tentative = data.tentative_delivery_date or compute_tentative_delivery_date(
            data.entry_date, category.estimated_hours, category.tolerance_days
        )

        work = models.Work(
            client_id=data.client_id,
            category_id=category.id,
            status=WorkStatus.PENDING.value,
            price=data.price,
            deposit_amount=data.deposit_amount,
            deposit_status=data.deposit_status.value,
            amount_paid=data.amount_paid,
            payment_method=data.payment_method,
            entry_date=data.entry_date,
            tentative_delivery_date=tentative,
            notes=data.notes or None,
        )
        self.db.add(work)
        self.db.flush()

        if category.requires_appointment:
            try:
                scheduler.schedule(
                    work.id,
                    data.client_id,
                    data.appointment_date,
                    data.appointment_time,
                    notes=data.appointment_notes,
                    commit=False,
                    today=today,
                )
            except Exception:
                self.db.rollback()
                raise

        self.db.commit()
        self.db.refresh(work)
        logger.info(
            f"✅ Work #{work.id} created for client #{work.client_id}, "
            f"delivery {work.tentative_delivery_date}"
        )
        return work

    def update_work(self, work_id: int, data: schemas.WorkUpdate) -> models.Work:
        """Edit non-status fields; status only moves through the lifecycle"""
        work = self.get_work(work_id)
        check_version(work, data.expected_version)

        updates = data.model_dump(exclude_unset=True, exclude={"expected_version"})
        if "category_id" in updates and updates["category_id"] is not None:
            self.get_category(updates["category_id"])
        if "deposit_status" in updates and updates["deposit_status"] is not None:
            updates["deposit_status"] = updates["deposit_status"].value

        for field in ("category_id", "price", "deposit_amount", "deposit_status",
                      "amount_paid", "entry_date", "tentative_delivery_date"):
            if field in updates and updates[field] is None:
                raise InvalidParameter(f"El campo '{field}' no puede quedar vacío")

        for field, value in updates.items():
            setattr(work, field, value)

        commit_update(self.db, work)
        logger.info(f"✅ Work #{work.id} updated: {', '.join(updates) or 'no changes'}")
        return work

    def delete_work(self, work_id: int):
        work = self.get_work(work_id)
        self.db.delete(work)
        self.db.commit()
        logger.info(f"🗑️ Work #{work_id} deleted")

    def list_works(
        self,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[models.Work]:
        query = self.db.query(models.Work).options(
            joinedload(models.Work.client), joinedload(models.Work.category)
        )
        if status:
            query = query.filter(models.Work.status == status)
        if client_id:
            query = query.filter(models.Work.client_id == client_id)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.join(models.Work.client).join(models.Work.category).filter(or_(
                func.lower(models.Client.name).like(pattern),
                func.lower(models.WorkCategory.name).like(pattern),
                func.lower(func.coalesce(models.Work.notes, "")).like(pattern),
            ))
        return query.order_by(models.Work.created_at.desc(), models.Work.id.desc()).all()

    def works_requiring_appointment(self) -> List[models.Work]:
        return self.db.query(models.Work).join(models.Work.category).filter(
            models.Work.status.in_(OPEN_STATUSES),
            models.WorkCategory.requires_appointment.is_(True),
        ).order_by(models.Work.created_at.desc(), models.Work.id.desc()).all()


def dashboard_summary(db: Session, today: Optional[date] = None) -> schemas.DashboardResponse:
    """Counters and short lists for the start page"""
    today = today or date.today()
    tomorrow = today + timedelta(days=1)
    month_start = today.replace(day=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)

    pending_works = db.query(func.count(models.Work.id)).filter(
        models.Work.status.in_(OPEN_STATUSES)
    ).scalar()
    total_clients = db.query(func.count(models.Client.id)).scalar()

    revenue = db.query(func.coalesce(func.sum(models.Work.price), 0)).filter(
        models.Work.status == WorkStatus.DELIVERED.value,
        models.Work.actual_delivery_date >= month_start,
        models.Work.actual_delivery_date < next_month,
    ).scalar()

    today_appointments = db.query(models.Appointment).filter(
        models.Appointment.appointment_date == today
    ).order_by(models.Appointment.appointment_time).all()

    recent_works = db.query(models.Work).order_by(
        models.Work.created_at.desc(), models.Work.id.desc()
    ).limit(5).all()

    urgent_works = db.query(models.Work).filter(
        models.Work.status.in_(OPEN_STATUSES),
        models.Work.tentative_delivery_date <= tomorrow,
    ).order_by(models.Work.tentative_delivery_date).all()

    return schemas.DashboardResponse(
        pending_works=pending_works or 0,
        total_clients=total_clients or 0,
        monthly_revenue=revenue or 0,
        today_appointments=[appointment_to_response(a) for a in today_appointments],
        recent_works=[work_to_response(w, today) for w in recent_works],
        urgent_works=[work_to_response(w, today) for w in urgent_works],
    )
