import logging
from datetime import date, time
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import models, schemas
from .config import load_workshop_profile
from .database import engine, get_db
from .errors import InvalidParameter, NotFound, WorkshopError
from .lifecycle import AppointmentLifecycle, WorkLifecycle
from .models import AppointmentStatus, WorkStatus
from .notifications import completion_notification, notification_for_work
from .scheduling import (
    AppointmentScheduler, AvailabilityChecker, day_status, format_slot_time,
    month_calendar, parse_slot_time,
)
from .telegram_service import telegram_notifier
from .works import WorkService, appointment_to_response, dashboard_summary, work_to_response

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create tables
models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="Atelier Workshop Manager", version="1.0.0")

workshop_profile = load_workshop_profile()


@app.exception_handler(WorkshopError)
async def workshop_error_handler(request: Request, exc: WorkshopError):
    """Every failed operation is reported with its kind and a readable message"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Clients
@app.post("/api/clients/", response_model=schemas.ClientResponse, status_code=201)
def create_client(client: schemas.ClientCreate, db: Session = Depends(get_db)):
    """Create a client (quick form needs only the name)"""
    db_client = models.Client(**client.model_dump())
    db.add(db_client)
    db.commit()
    db.refresh(db_client)
    logger.info(f"✅ Client #{db_client.id} created")
    return db_client


@app.get("/api/clients/", response_model=List[schemas.ClientResponse])
def get_clients(db: Session = Depends(get_db)):
    return db.query(models.Client).order_by(models.Client.name).all()


@app.get("/api/clients/{client_id}", response_model=schemas.ClientResponse)
def get_client(client_id: int, db: Session = Depends(get_db)):
    client = db.get(models.Client, client_id)
    if not client:
        raise NotFound("Cliente", client_id)
    return client


@app.patch("/api/clients/{client_id}", response_model=schemas.ClientResponse)
def update_client(client_id: int, data: schemas.ClientUpdate, db: Session = Depends(get_db)):
    """Update contact details; the name is fixed once the client has works"""
    client = db.get(models.Client, client_id)
    if not client:
        raise NotFound("Cliente", client_id)

    updates = data.model_dump(exclude_unset=True)
    if "name" in updates:
        if not (updates["name"] or "").strip():
            raise InvalidParameter("El nombre es obligatorio")
        updates["name"] = updates["name"].strip()
        if updates["name"] != client.name and client.works:
            raise InvalidParameter("No se puede cambiar el nombre de un cliente con trabajos registrados")

    for field, value in updates.items():
        setattr(client, field, value)
    db.commit()
    db.refresh(client)
    return client


# Work categories
@app.post("/api/categories/", response_model=schemas.CategoryResponse, status_code=201)
def create_category(category: schemas.CategoryCreate, db: Session = Depends(get_db)):
    db_category = models.WorkCategory(**category.model_dump())
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    logger.info(f"✅ Category #{db_category.id} '{db_category.name}' created")
    return db_category


@app.get("/api/categories/", response_model=List[schemas.CategoryResponse])
def get_categories(active_only: bool = Query(False), db: Session = Depends(get_db)):
    """List categories; pickers for new works ask for active ones only"""
    query = db.query(models.WorkCategory)
    if active_only:
        query = query.filter(models.WorkCategory.is_active.is_(True))
    return query.order_by(models.WorkCategory.name).all()


@app.get("/api/categories/{category_id}", response_model=schemas.CategoryResponse)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return WorkService(db).get_category(category_id)


@app.patch("/api/categories/{category_id}", response_model=schemas.CategoryResponse)
def update_category(category_id: int, data: schemas.CategoryUpdate, db: Session = Depends(get_db)):
    category = WorkService(db).get_category(category_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field != "description":
            raise InvalidParameter(f"El campo '{field}' no puede quedar vacío")
        setattr(category, field, value)
    db.commit()
    db.refresh(category)
    return category


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    category = WorkService(db).get_category(category_id)
    if category.works:
        raise InvalidParameter("La categoría tiene trabajos asociados, desactívela en lugar de eliminarla")
    db.delete(category)
    db.commit()
    return None


# Works
@app.post("/api/works/estimate", response_model=schemas.EstimateResponse)
def estimate_delivery(request: schemas.EstimateRequest, db: Session = Depends(get_db)):
    """Recompute the tentative delivery date while a work is being filled in"""
    return WorkService(db).estimate(request.category_id, request.entry_date)


@app.get("/api/works/requiring-appointment", response_model=List[schemas.WorkRequiringAppointment])
def get_works_requiring_appointment(db: Session = Depends(get_db)):
    works = WorkService(db).works_requiring_appointment()
    return [
        schemas.WorkRequiringAppointment(
            id=w.id,
            client_id=w.client_id,
            client_name=w.client.name,
            category_name=w.category.name,
            status=w.status,
        )
        for w in works
    ]


@app.post("/api/works/", response_model=schemas.WorkResponse, status_code=201)
def create_work(
    work: schemas.WorkCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Create a work, booking its appointment when the category needs one"""
    db_work = WorkService(db).create_work(work)

    for appointment in db_work.appointments:
        background_tasks.add_task(
            telegram_notifier.send_appointment_scheduled_notification,
            client_name=db_work.client.name,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
            appointment_id=appointment.id,
            work_id=db_work.id,
        )

    return work_to_response(db_work)


@app.get("/api/works/", response_model=List[schemas.WorkResponse])
def get_works(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    if status:
        # Reject typos instead of silently returning nothing
        try:
            WorkStatus(status)
        except ValueError:
            raise InvalidParameter(f"Estado desconocido: {status!r}")
    works = WorkService(db).list_works(status=status, client_id=client_id, search=search)
    return [work_to_response(w) for w in works]


@app.get("/api/works/{work_id}", response_model=schemas.WorkResponse)
def get_work(work_id: int, db: Session = Depends(get_db)):
    return work_to_response(WorkService(db).get_work(work_id))


@app.patch("/api/works/{work_id}", response_model=schemas.WorkResponse)
def update_work(work_id: int, data: schemas.WorkUpdate, db: Session = Depends(get_db)):
    return work_to_response(WorkService(db).update_work(work_id, data))


@app.post("/api/works/{work_id}/status", response_model=schemas.WorkStatusResponse)
def change_work_status(
    work_id: int,
    change: schemas.StatusChange,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Advance a work; completing it offers a ready-to-send client message"""
    work = WorkLifecycle(db).advance(work_id, change.status, expected_version=change.expected_version)

    notification = None
    if work.status == WorkStatus.COMPLETED.value:
        notification = completion_notification(work, workshop_profile)
        background_tasks.add_task(
            telegram_notifier.send_work_completed_notification,
            client_name=work.client.name,
            category_name=work.category.name,
            work_id=work.id,
        )

    return schemas.WorkStatusResponse(work=work_to_response(work), notification=notification)


@app.get("/api/works/{work_id}/notification", response_model=Optional[schemas.NotificationResponse])
def get_work_notification(work_id: int, db: Session = Depends(get_db)):
    """Client message and WhatsApp link for the current status of a work"""
    work = WorkService(db).get_work(work_id)
    if not work.client.phone:
        raise InvalidParameter("El cliente no tiene un número de teléfono registrado")
    return notification_for_work(work, workshop_profile)


@app.delete("/api/works/{work_id}", status_code=204)
def delete_work(work_id: int, db: Session = Depends(get_db)):
    WorkService(db).delete_work(work_id)
    return None


# Appointments
@app.post("/api/appointments/", response_model=schemas.AppointmentResponse, status_code=201)
def create_appointment(
    appointment: schemas.AppointmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Book a calendar slot for a work"""
    work = WorkService(db).get_work(appointment.work_id)
    db_appointment = AppointmentScheduler(db).schedule(
        work.id,
        work.client_id,
        appointment.appointment_date,
        appointment.appointment_time,
        notes=appointment.notes,
        allow_past=appointment.allow_past,
    )

    background_tasks.add_task(
        telegram_notifier.send_appointment_scheduled_notification,
        client_name=db_appointment.client.name,
        appointment_date=db_appointment.appointment_date,
        appointment_time=db_appointment.appointment_time,
        appointment_id=db_appointment.id,
        work_id=work.id,
    )

    return appointment_to_response(db_appointment)


@app.get("/api/appointments/", response_model=List[schemas.AppointmentResponse])
def get_appointments(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Appointments in a date range, ordered by date and time"""
    if start_date and end_date and start_date > end_date:
        raise InvalidParameter("start_date debe ser anterior o igual a end_date")

    query = db.query(models.Appointment)
    if start_date:
        query = query.filter(models.Appointment.appointment_date >= start_date)
    if end_date:
        query = query.filter(models.Appointment.appointment_date <= end_date)
    if status:
        query = query.filter(models.Appointment.status == status)

    appointments = query.order_by(
        models.Appointment.appointment_date,
        models.Appointment.appointment_time
    ).all()
    return [appointment_to_response(a) for a in appointments]


@app.get("/api/appointments/availability", response_model=schemas.AvailabilityResponse)
def check_availability(
    slot_date: date = Query(..., alias="date"),
    slot_time: str = Query(..., alias="time"),
    db: Session = Depends(get_db)
):
    parsed_time: time = parse_slot_time(slot_time, "time")
    available = AvailabilityChecker(db).is_available(slot_date, parsed_time)
    return schemas.AvailabilityResponse(
        date=slot_date, time=format_slot_time(parsed_time), available=available
    )


@app.get("/api/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    return appointment_to_response(AppointmentLifecycle(db).get(appointment_id))


@app.post("/api/appointments/{appointment_id}/status", response_model=schemas.AppointmentResponse)
def change_appointment_status(
    appointment_id: int,
    change: schemas.StatusChange,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    appointment = AppointmentLifecycle(db).set_status(
        appointment_id, change.status, expected_version=change.expected_version
    )

    if appointment.status == AppointmentStatus.CANCELLED.value:
        background_tasks.add_task(
            telegram_notifier.send_appointment_cancelled_notification,
            client_name=appointment.client.name,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
            appointment_id=appointment.id,
        )

    return appointment_to_response(appointment)


@app.post("/api/appointments/{appointment_id}/reschedule", response_model=schemas.AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: schemas.AppointmentReschedule,
    db: Session = Depends(get_db)
):
    appointment = AppointmentLifecycle(db).reschedule(
        appointment_id,
        data.appointment_date,
        data.appointment_time,
        notes=data.notes,
        allow_past=data.allow_past,
        expected_version=data.expected_version,
    )
    return appointment_to_response(appointment)


# Calendar
@app.get("/api/day/{day}", response_model=schemas.DayStatusResponse)
def get_day_status(day: date, db: Session = Depends(get_db)):
    """Booked and free half-hour slots of one day"""
    return day_status(db, day)


@app.get("/api/calendar/{year}/{month}", response_model=List[schemas.MonthDayResponse])
def get_month_calendar(year: int, month: int, db: Session = Depends(get_db)):
    return month_calendar(db, year, month)


# Dashboard
@app.get("/api/dashboard", response_model=schemas.DashboardResponse)
def get_dashboard(db: Session = Depends(get_db)):
    return dashboard_summary(db)
