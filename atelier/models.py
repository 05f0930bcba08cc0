"""
Database models for the workshop: clients, categories, works and appointments
"""
from enum import Enum

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer,
    Numeric, String, Text, Time, func, text,
)
from sqlalchemy.orm import relationship

from .database import Base


class WorkStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"


class Client(Base):
    """Client model"""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    works = relationship("Work", back_populates="client")
    appointments = relationship("Appointment", back_populates="client")


class WorkCategory(Base):
    """Work category: expected effort and whether a fitting is mandatory"""
    __tablename__ = "work_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    estimated_hours = Column(Float, nullable=False, default=0)
    tolerance_days = Column(Integer, nullable=False, default=3)
    requires_appointment = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    works = relationship("Work", back_populates="category")


class Work(Base):
    """Work order tracked from intake to delivery"""
    __tablename__ = "works"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("work_categories.id"), nullable=False)
    status = Column(String(20), nullable=False, default=WorkStatus.PENDING.value, index=True)

    price = Column(Numeric(10, 2), nullable=False)
    deposit_amount = Column(Numeric(10, 2), nullable=False, default=0)
    deposit_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    payment_method = Column(String(50), nullable=True)

    entry_date = Column(Date, nullable=False)
    tentative_delivery_date = Column(Date, nullable=False)
    actual_delivery_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    version = Column(Integer, nullable=False)

    # Relationships
    client = relationship("Client", back_populates="works")
    category = relationship("WorkCategory", back_populates="works")
    appointments = relationship(
        "Appointment", back_populates="work", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}


class Appointment(Base):
    """Appointment occupying one (date, time) slot of the workshop calendar"""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    work_id = Column(Integer, ForeignKey("works.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(Time, nullable=False)
    status = Column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    version = Column(Integer, nullable=False)

    # Relationships
    work = relationship("Work", back_populates="appointments")
    client = relationship("Client", back_populates="appointments")

    __mapper_args__ = {"version_id_col": version}

    # One active appointment per slot; cancelled rows free the slot
    __table_args__ = (
        Index(
            "uq_active_appointment_slot",
            "appointment_date",
            "appointment_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )
