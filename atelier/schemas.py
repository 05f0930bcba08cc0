from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .models import PaymentStatus

# One year of full-time work and of extra margin
MAX_ESTIMATED_HOURS = 2080
MAX_TOLERANCE_DAYS = 365


class ClientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v):
        if not v.strip():
            raise ValueError('El nombre es obligatorio')
        return v.strip()


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class ClientResponse(ClientBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: Optional[datetime] = None


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    estimated_hours: float = Field(0, ge=0, le=MAX_ESTIMATED_HOURS)
    tolerance_days: int = Field(3, ge=0, le=MAX_TOLERANCE_DAYS)
    requires_appointment: bool = False
    is_active: bool = True


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    estimated_hours: Optional[float] = Field(None, ge=0, le=MAX_ESTIMATED_HOURS)
    tolerance_days: Optional[int] = Field(None, ge=0, le=MAX_TOLERANCE_DAYS)
    requires_appointment: Optional[bool] = None
    is_active: Optional[bool] = None


class CategoryResponse(CategoryBase):
    model_config = ConfigDict(from_attributes=True)

    id: int


class WorkCreate(BaseModel):
    client_id: int
    category_id: int
    price: Decimal = Field(..., ge=0)
    deposit_amount: Decimal = Field(Decimal("0"), ge=0)
    deposit_status: PaymentStatus = PaymentStatus.PENDING
    amount_paid: Decimal = Field(Decimal("0"), ge=0)
    payment_method: Optional[str] = Field(None, max_length=50)
    entry_date: date = Field(default_factory=date.today)
    # Computed from the category when omitted
    tentative_delivery_date: Optional[date] = None
    notes: Optional[str] = None

    # Required when the category requires an appointment
    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None
    appointment_notes: Optional[str] = None


class WorkUpdate(BaseModel):
    category_id: Optional[int] = None
    price: Optional[Decimal] = Field(None, ge=0)
    deposit_amount: Optional[Decimal] = Field(None, ge=0)
    deposit_status: Optional[PaymentStatus] = None
    amount_paid: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[str] = Field(None, max_length=50)
    entry_date: Optional[date] = None
    tentative_delivery_date: Optional[date] = None
    actual_delivery_date: Optional[date] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class WorkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: int
    client_name: Optional[str] = None
    category_id: int
    category_name: Optional[str] = None
    status: str
    price: Decimal
    deposit_amount: Decimal
    deposit_status: str
    amount_paid: Decimal
    payment_method: Optional[str] = None
    entry_date: date
    tentative_delivery_date: date
    actual_delivery_date: Optional[date] = None
    notes: Optional[str] = None
    is_overdue: bool = False
    allowed_transitions: List[str] = []
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StatusChange(BaseModel):
    # Plain string so unknown values reach the lifecycle and get a proper error
    status: str
    expected_version: Optional[int] = None


class NotificationResponse(BaseModel):
    phone: str
    message: str
    whatsapp_link: str


class WorkStatusResponse(BaseModel):
    work: WorkResponse
    notification: Optional[NotificationResponse] = None


class EstimateRequest(BaseModel):
    category_id: int
    entry_date: date = Field(default_factory=date.today)


class EstimateResponse(BaseModel):
    category_id: int
    entry_date: date
    work_days: int
    tolerance_days: int
    tentative_delivery_date: date


class AppointmentCreate(BaseModel):
    work_id: int
    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None
    notes: Optional[str] = None
    # Backfilling past appointments
    allow_past: bool = False


class AppointmentReschedule(BaseModel):
    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None
    notes: Optional[str] = None
    allow_past: bool = False
    expected_version: Optional[int] = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    work_id: int
    client_id: int
    client_name: Optional[str] = None
    appointment_date: date
    appointment_time: time
    status: str
    notes: Optional[str] = None
    allowed_transitions: List[str] = []
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer('appointment_time')
    def serialize_time(self, value: time) -> str:
        return value.strftime("%H:%M")


class AvailabilityResponse(BaseModel):
    date: date
    time: str
    available: bool


class DayStatusResponse(BaseModel):
    date: date
    has_appointments: bool
    booked_slots: List[str]
    available_slots: List[str]


class MonthDayResponse(BaseModel):
    date: date
    appointment_count: int
    booked_slots: List[str]
    free_slot_count: int


class WorkRequiringAppointment(BaseModel):
    id: int
    client_id: int
    client_name: str
    category_name: str
    status: str


class DashboardResponse(BaseModel):
    pending_works: int
    total_clients: int
    monthly_revenue: Decimal
    today_appointments: List[AppointmentResponse]
    recent_works: List[WorkResponse]
    urgent_works: List[WorkResponse]


class ErrorResponse(BaseModel):
    detail: str
    code: str
