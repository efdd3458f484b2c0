from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, TYPE_CHECKING
from datetime import date, datetime, time
from uuid import UUID, uuid4
from sqlalchemy import Index, text

if TYPE_CHECKING:
    from .doctor import Doctor
    from .patient import Patient

ACTIVE_SLOT_PREDICATE = text("status <> 'cancelled'")

class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (
        # Storage-level guard against two live bookings starting at the same instant.
        Index(
            "uq_appointments_doctor_slot_active",
            "doctor_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            postgresql_where=ACTIVE_SLOT_PREDICATE,
            sqlite_where=ACTIVE_SLOT_PREDICATE,
        ),
        Index("ix_appointments_doctor_date", "doctor_id", "appointment_date"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    doctor_id: UUID = Field(foreign_key="doctors.id")
    patient_id: UUID = Field(foreign_key="patients.id", index=True)
    appointment_date: date
    appointment_time: time
    duration_minutes: int = Field(default=30)
    status: str = Field(default="scheduled") # scheduled, confirmed, in_progress, completed, cancelled, no_show
    appointment_type: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[UUID] = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    doctor: "Doctor" = Relationship(back_populates="appointments")
    patient: "Patient" = Relationship(back_populates="appointments")
