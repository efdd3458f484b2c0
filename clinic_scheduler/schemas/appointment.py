from pydantic import BaseModel, ConfigDict, Field, model_validator
from uuid import UUID
from datetime import date, datetime, time
from enum import Enum
from typing import Literal, Optional, List, Union

from clinic_scheduler.db.models import Appointment

class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

class RejectionReason(str, Enum):
    DOCTOR_UNAVAILABLE = "doctor unavailable"
    OUTSIDE_WORKING_HOURS = "outside working hours"
    SLOT_TAKEN = "slot taken"

class PatientCreate(BaseModel):
    name: str
    phone: str
    age: Optional[int] = None
    gender: Optional[str] = None

class AppointmentDetails(BaseModel):
    """Non-slot fields written alongside a booking."""
    patient_id: Optional[UUID] = None
    appointment_type: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[UUID] = None

class SlotRequest(BaseModel):
    doctor_id: UUID
    appointment_date: date
    appointment_time: time
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)

class AppointmentCreate(SlotRequest):
    patient_id: Optional[UUID] = None
    patient: Optional[PatientCreate] = None
    appointment_type: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_patient(self) -> "AppointmentCreate":
        if self.patient_id is None and self.patient is None:
            raise ValueError("Either patient_id or patient details are required.")
        return self

class AppointmentUpdate(BaseModel):
    doctor_id: Optional[UUID] = None
    patient_id: Optional[UUID] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    appointment_type: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus

class AppointmentResponse(BaseModel):
    id: UUID
    doctor_id: UUID
    patient_id: UUID
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    status: AppointmentStatus
    appointment_type: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class Accepted(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    outcome: Literal["accepted"] = "accepted"
    appointment: Optional[Appointment] = None # None when only evaluated

class Rejected(BaseModel):
    outcome: Literal["rejected"] = "rejected"
    reason: RejectionReason
    detail: Optional[str] = None
    conflicting_appointment_id: Optional[UUID] = None

class Unavailable(BaseModel):
    outcome: Literal["unavailable"] = "unavailable"
    reason: str = "storage timeout"

BookingDecision = Union[Accepted, Rejected, Unavailable]

class CheckResponse(BaseModel):
    bookable: bool
    reason: Optional[RejectionReason] = None
    detail: Optional[str] = None
    conflicting_appointment_id: Optional[UUID] = None

class AppointmentListResponse(BaseModel):
    doctor_id: UUID
    date: date
    appointments: List[AppointmentResponse]
