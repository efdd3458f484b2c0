from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

class LoginRequest(BaseModel):
    clinic_slug: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str

class UserInfo(BaseModel):
    id: UUID
    name: str
    username: str
    role: str # admin, doctor, receptionist
    clinic_id: UUID
    clinic_name: str
    doctor_id: Optional[UUID] = None # set when the user is a doctor

class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int # seconds
    user: UserInfo
