from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime

class DoctorBase(BaseModel):
    name: str
    specialty: Optional[str] = None
    registration_number: Optional[str] = None
    consult_duration_minutes: int = Field(default=30, gt=0, le=24 * 60)

class DoctorCreate(DoctorBase):
    username: str
    password: str
    email: Optional[str] = None
    phone: Optional[str] = None

class DoctorResponse(DoctorBase):
    id: UUID
    tenant_id: UUID
    user_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True
