from datetime import date, time
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class LeaveType(str, Enum):
    FULL_DAY = "full_day"
    HALF_DAY_MORNING = "half_day_morning"
    HALF_DAY_EVENING = "half_day_evening"


class UnavailableReason(str, Enum):
    NOT_WORKING_DAY = "not a working day"
    ON_LEAVE = "on leave"
    NO_WORKING_HOURS = "no working hours"


class TimeWindow(BaseModel):
    """Half-open working interval [start, end) in doctor-local time."""
    start: time
    end: time


class AvailabilityResult(BaseModel):
    available: bool
    reason: Optional[UnavailableReason] = None
    windows: List[TimeWindow] = []
    leave_types: List[LeaveType] = []
    leave_reason: Optional[str] = None


class AvailabilityResponse(AvailabilityResult):
    doctor_id: UUID
    date: date


class TimeSlot(BaseModel):
    value: str # "14:30"
    label: str # "2:30 PM"


class SlotsResponse(BaseModel):
    doctor_id: UUID
    date: date
    granularity_minutes: int
    available: bool
    reason: Optional[UnavailableReason] = None
    slots: List[TimeSlot]
