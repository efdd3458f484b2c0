from datetime import date, time
from typing import List
from uuid import UUID

from clinic_scheduler.schemas.availability import AvailabilityResult, SlotsResponse, TimeSlot
from clinic_scheduler.services.availability import AvailabilityService, from_minutes, to_minutes

MINUTES_PER_DAY = 24 * 60


def generate_slots(availability: AvailabilityResult, granularity_minutes: int) -> List[time]:
    """Clock-aligned slot starts whose whole slot fits inside a working window.

    Does not look at existing appointments; the booking arbiter does that.
    """
    if granularity_minutes <= 0 or granularity_minutes > MINUTES_PER_DAY:
        raise ValueError("granularity must be between 1 minute and 24 hours")
    if not availability.available:
        return []

    slots: List[time] = []
    for window in availability.windows:
        start, end = to_minutes(window.start), to_minutes(window.end)
        # Round up to the next multiple of the granularity
        current = -(-start // granularity_minutes) * granularity_minutes
        while current + granularity_minutes <= end:
            slots.append(from_minutes(current))
            current += granularity_minutes
    return slots


def format_clock_label(value: time) -> str:
    hour = value.hour % 12 or 12
    ampm = "PM" if value.hour >= 12 else "AM"
    return f"{hour}:{value.minute:02d} {ampm}"


def to_time_slot(value: time) -> TimeSlot:
    return TimeSlot(value=value.strftime("%H:%M"), label=format_clock_label(value))


class SlotService:
    def __init__(self, availability_service: AvailabilityService):
        self.availability_service = availability_service

    async def generate_slots(self, doctor_id: UUID, on_date: date, granularity_minutes: int) -> List[time]:
        availability = await self.availability_service.resolve(doctor_id, on_date)
        return generate_slots(availability, granularity_minutes)

    async def day_slots(self, doctor_id: UUID, on_date: date, granularity_minutes: int) -> SlotsResponse:
        """Resolve the day once and return it with its bookable slot starts."""
        availability = await self.availability_service.resolve(doctor_id, on_date)
        return SlotsResponse(
            doctor_id=doctor_id,
            date=on_date,
            granularity_minutes=granularity_minutes,
            available=availability.available,
            reason=availability.reason,
            slots=[to_time_slot(slot) for slot in generate_slots(availability, granularity_minutes)],
        )
