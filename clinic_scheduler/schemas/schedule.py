from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID

from clinic_scheduler.schemas.availability import LeaveType

class WeeklyScheduleEntryIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6) # 0=Sunday..6=Saturday
    is_available: bool = True
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    @model_validator(mode="after")
    def check_window(self) -> "WeeklyScheduleEntryIn":
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("Break start and break end must be set together.")
        if not self.is_available:
            return self
        if self.start_time is None or self.end_time is None:
            raise ValueError("Working days need a start and end time.")
        if self.start_time >= self.end_time:
            raise ValueError("End time must be after start time.")
        if self.break_start is not None:
            if self.break_start >= self.break_end:
                raise ValueError("Break end must be after break start.")
            if self.break_start < self.start_time or self.break_end > self.end_time:
                raise ValueError("Break must be within working hours.")
        return self

class WeeklyScheduleUpdate(BaseModel):
    entries: List[WeeklyScheduleEntryIn]

    @model_validator(mode="after")
    def check_unique_days(self) -> "WeeklyScheduleUpdate":
        days = [entry.day_of_week for entry in self.entries]
        if len(days) != len(set(days)):
            raise ValueError("Each day of the week may appear only once.")
        return self

class WeeklyScheduleEntryResponse(BaseModel):
    id: UUID
    doctor_id: UUID
    day_of_week: int
    is_available: bool
    start_time: Optional[time]
    end_time: Optional[time]
    break_start: Optional[time]
    break_end: Optional[time]

    class Config:
        from_attributes = True

class LeaveCreate(BaseModel):
    leave_date: date
    leave_type: LeaveType = LeaveType.FULL_DAY
    reason: Optional[str] = None

class DayOffRequest(BaseModel):
    days_from_today: int = Field(default=1, ge=0, le=365)

class LeaveResponse(BaseModel):
    id: UUID
    doctor_id: UUID
    leave_date: date
    leave_type: LeaveType
    reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
