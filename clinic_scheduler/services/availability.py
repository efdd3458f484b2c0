"""Doctor availability resolution.

``resolve_availability`` is a pure function of the doctor's weekly schedule
rows, the leave rows for one date, and the date itself. ``AvailabilityService``
only adds the reads around it.

Times are doctor-local civil times; no timezone conversion happens here.
Windows are half-open ``[start, end)`` intervals expressed internally as
minutes since midnight.
"""

from datetime import date, time
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from clinic_scheduler.core.exceptions import DataIntegrityError, NotFoundError
from clinic_scheduler.core.logger import logger
from clinic_scheduler.db.models import DoctorLeave, WeeklySchedule
from clinic_scheduler.db.repository import SchedulingRepository
from clinic_scheduler.schemas.availability import (
    AvailabilityResult,
    LeaveType,
    TimeWindow,
    UnavailableReason,
)

Interval = Tuple[int, int]


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def db_day_of_week(on_date: date) -> int:
    """Map a date to the stored convention 0=Sunday..6=Saturday."""
    python_day = on_date.weekday()
    return 0 if python_day == 6 else python_day + 1


def subtract_interval(windows: List[Interval], cut: Interval) -> List[Interval]:
    cut_start, cut_end = cut
    remaining: List[Interval] = []
    for start, end in windows:
        if cut_end <= start or cut_start >= end:
            remaining.append((start, end))
            continue
        if start < cut_start:
            remaining.append((start, cut_start))
        if cut_end < end:
            remaining.append((cut_end, end))
    return remaining


def _schedule_for_day(schedules: Sequence[WeeklySchedule], day: int) -> Optional[WeeklySchedule]:
    matches = [entry for entry in schedules if entry.day_of_week == day]
    if len(matches) > 1:
        raise DataIntegrityError(f"doctor has {len(matches)} schedule rows for day {day}")
    return matches[0] if matches else None


def _working_bounds(entry: WeeklySchedule) -> Tuple[Interval, Optional[Interval]]:
    """Validate a working-day row and return its window and optional break."""
    if entry.start_time is None or entry.end_time is None:
        raise DataIntegrityError(
            f"schedule for day {entry.day_of_week} is marked available without start/end time"
        )
    start, end = to_minutes(entry.start_time), to_minutes(entry.end_time)
    if start >= end:
        raise DataIntegrityError(
            f"schedule for day {entry.day_of_week} ends at or before it starts"
        )
    if (entry.break_start is None) != (entry.break_end is None):
        raise DataIntegrityError(
            f"schedule for day {entry.day_of_week} has only one break bound"
        )
    if entry.break_start is None:
        return (start, end), None
    break_start, break_end = to_minutes(entry.break_start), to_minutes(entry.break_end)
    if not (start <= break_start < break_end <= end):
        raise DataIntegrityError(
            f"schedule for day {entry.day_of_week} has a break outside its working hours"
        )
    return (start, end), (break_start, break_end)


def _leave_types(leaves: Iterable[DoctorLeave]) -> List[LeaveType]:
    types: List[LeaveType] = []
    for leave in leaves:
        try:
            leave_type = LeaveType(leave.leave_type)
        except ValueError as exc:
            raise DataIntegrityError(f"unknown leave type {leave.leave_type!r}") from exc
        if leave_type not in types:
            types.append(leave_type)
    return types


def half_day_cuts(
    window: Interval, break_window: Optional[Interval], leave_types: Iterable[LeaveType]
) -> List[Interval]:
    """Intervals removed by half-day leave.

    The morning ends where the break starts and the evening begins where the
    break ends. Without a break both halves meet at the midpoint of the
    working window, rounded down to the minute.
    """
    start, end = window
    if break_window is not None:
        morning_end, evening_start = break_window
    else:
        morning_end = evening_start = start + (end - start) // 2
    cuts = []
    for leave_type in leave_types:
        if leave_type is LeaveType.HALF_DAY_MORNING:
            cuts.append((start, morning_end))
        elif leave_type is LeaveType.HALF_DAY_EVENING:
            cuts.append((evening_start, end))
    return cuts


def resolve_availability(
    schedules: Sequence[WeeklySchedule],
    leaves: Sequence[DoctorLeave],
    on_date: date,
) -> AvailabilityResult:
    entry = _schedule_for_day(schedules, db_day_of_week(on_date))
    if entry is None or not entry.is_available:
        return AvailabilityResult(available=False, reason=UnavailableReason.NOT_WORKING_DAY)

    window, break_window = _working_bounds(entry)

    day_leaves = [leave for leave in leaves if leave.leave_date == on_date]
    leave_types = _leave_types(day_leaves)
    leave_reason = next((leave.reason for leave in day_leaves if leave.reason), None)

    # Any full-day row wins over every other row for the date
    if LeaveType.FULL_DAY in leave_types:
        return AvailabilityResult(
            available=False,
            reason=UnavailableReason.ON_LEAVE,
            leave_types=leave_types,
            leave_reason=leave_reason,
        )

    windows = [window]
    if break_window is not None:
        windows = subtract_interval(windows, break_window)
    working_before_leave = list(windows)
    for cut in half_day_cuts(window, break_window, leave_types):
        windows = subtract_interval(windows, cut)

    if not windows:
        reason = UnavailableReason.ON_LEAVE if working_before_leave else UnavailableReason.NO_WORKING_HOURS
        return AvailabilityResult(
            available=False,
            reason=reason,
            leave_types=leave_types,
            leave_reason=leave_reason,
        )

    return AvailabilityResult(
        available=True,
        windows=[TimeWindow(start=from_minutes(s), end=from_minutes(e)) for s, e in windows],
        leave_types=leave_types,
        leave_reason=leave_reason,
    )


def covering_window(result: AvailabilityResult, start: int, end: int) -> Optional[TimeWindow]:
    """Return the window that fully contains [start, end), if any."""
    for window in result.windows:
        if to_minutes(window.start) <= start and end <= to_minutes(window.end):
            return window
    return None


class AvailabilityService:
    def __init__(self, repository: SchedulingRepository):
        self.repository = repository

    async def resolve(self, doctor_id: UUID, on_date: date) -> AvailabilityResult:
        doctor = await self.repository.get_doctor(doctor_id)
        if not doctor:
            raise NotFoundError("Doctor", doctor_id)

        schedules = await self.repository.list_weekly_schedule(doctor_id)
        leaves = await self.repository.list_leave(doctor_id, on_date)
        try:
            return resolve_availability(schedules, leaves, on_date)
        except DataIntegrityError:
            logger.error(f"Schedule data for doctor {doctor_id} on {on_date} is malformed")
            raise
