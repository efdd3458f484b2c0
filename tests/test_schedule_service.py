from datetime import date, time
from uuid import uuid4

import pytest
from pydantic import ValidationError
from sqlmodel import select

from clinic_scheduler.core.exceptions import NotFoundError
from clinic_scheduler.db.models import AuditLog, Doctor
from clinic_scheduler.db.repository import SchedulingRepository
from clinic_scheduler.schemas.availability import LeaveType, UnavailableReason
from clinic_scheduler.schemas.schedule import LeaveCreate, WeeklyScheduleEntryIn, WeeklyScheduleUpdate
from clinic_scheduler.services.availability import AvailabilityService
from clinic_scheduler.services.schedule_service import ScheduleService

TODAY = date(2025, 6, 2)
TUESDAY = date(2025, 6, 3)


async def audit_actions(session):
    result = await session.execute(select(AuditLog.action).order_by(AuditLog.created_at))
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_first_view_seeds_a_default_week(session, doctor):
    service = ScheduleService(session)

    rows = await service.get_weekly_schedule(doctor.id)
    again = await service.get_weekly_schedule(doctor.id)

    assert [row.day_of_week for row in rows] == list(range(7))
    assert all(row.is_available for row in rows)
    assert all(row.start_time == time(9, 0) and row.end_time == time(17, 0) for row in rows)
    assert all(row.break_start is None for row in rows)
    assert [row.id for row in again] == [row.id for row in rows]


@pytest.mark.asyncio
async def test_saved_schedule_is_used_by_the_next_resolution(session, doctor, admin_user):
    service = ScheduleService(session)
    await service.get_weekly_schedule(doctor.id)

    saved = await service.save_weekly_schedule(
        doctor.id,
        [
            WeeklyScheduleEntryIn(
                day_of_week=2, start_time=time(10, 0), end_time=time(18, 0),
                break_start=time(13, 0), break_end=time(14, 0),
            ),
            WeeklyScheduleEntryIn(day_of_week=0, is_available=False),
        ],
        actor_id=admin_user.id,
    )

    assert len(saved) == 7
    tuesday = next(row for row in saved if row.day_of_week == 2)
    assert tuesday.start_time == time(10, 0)
    assert tuesday.break_end == time(14, 0)

    availability = await AvailabilityService(SchedulingRepository(session)).resolve(doctor.id, TUESDAY)
    assert [(w.start, w.end) for w in availability.windows] == [
        (time(10, 0), time(13, 0)),
        (time(14, 0), time(18, 0)),
    ]
    sunday = await AvailabilityService(SchedulingRepository(session)).resolve(doctor.id, date(2025, 6, 1))
    assert sunday.reason == UnavailableReason.NOT_WORKING_DAY
    assert "schedule_updated" in await audit_actions(session)


@pytest.mark.asyncio
async def test_saving_without_a_prior_view_creates_rows(session, doctor):
    saved = await ScheduleService(session).save_weekly_schedule(
        doctor.id, [WeeklyScheduleEntryIn(day_of_week=4, start_time=time(8, 0), end_time=time(12, 0))]
    )
    assert [row.day_of_week for row in saved] == [4]


@pytest.mark.parametrize(
    "fields",
    [
        {"day_of_week": 7, "start_time": time(9, 0), "end_time": time(17, 0)},
        {"day_of_week": 1},
        {"day_of_week": 1, "start_time": time(17, 0), "end_time": time(9, 0)},
        {"day_of_week": 1, "start_time": time(9, 0), "end_time": time(17, 0), "break_start": time(12, 0)},
        {
            "day_of_week": 1, "start_time": time(9, 0), "end_time": time(17, 0),
            "break_start": time(14, 0), "break_end": time(13, 0),
        },
        {
            "day_of_week": 1, "start_time": time(9, 0), "end_time": time(17, 0),
            "break_start": time(16, 30), "break_end": time(17, 30),
        },
    ],
)
def test_invalid_schedule_entries_are_refused(fields):
    with pytest.raises(ValidationError):
        WeeklyScheduleEntryIn(**fields)


def test_duplicate_days_are_refused():
    entry = {"day_of_week": 1, "start_time": time(9, 0), "end_time": time(17, 0)}
    with pytest.raises(ValidationError):
        WeeklyScheduleUpdate(entries=[entry, entry])


@pytest.mark.asyncio
async def test_upcoming_leaves_skip_the_past(session, doctor):
    service = ScheduleService(session)
    await service.add_leave(doctor.id, LeaveCreate(leave_date=date(2025, 5, 30)))
    await service.add_leave(doctor.id, LeaveCreate(leave_date=date(2025, 6, 10), leave_type=LeaveType.HALF_DAY_MORNING))
    await service.add_leave(doctor.id, LeaveCreate(leave_date=TODAY, reason="Seminar"))

    leaves = await service.list_upcoming_leaves(doctor.id, today=TODAY)

    assert [leave.leave_date for leave in leaves] == [TODAY, date(2025, 6, 10)]
    assert leaves[1].leave_type == "half_day_morning"


@pytest.mark.asyncio
async def test_day_off_defaults_to_tomorrow(session, doctor, admin_user):
    leave = await ScheduleService(session).add_day_off(doctor.id, actor_id=admin_user.id, today=TODAY)

    assert leave.leave_date == TUESDAY
    assert leave.leave_type == "full_day"
    assert await audit_actions(session) == ["leave_added"]


@pytest.mark.asyncio
async def test_leave_is_visible_to_the_next_resolution(session, doctor):
    service = ScheduleService(session)
    await service.get_weekly_schedule(doctor.id)
    availability = AvailabilityService(SchedulingRepository(session))

    assert (await availability.resolve(doctor.id, TUESDAY)).available is True
    leave = await service.add_leave(doctor.id, LeaveCreate(leave_date=TUESDAY))
    assert (await availability.resolve(doctor.id, TUESDAY)).reason == UnavailableReason.ON_LEAVE
    await service.remove_leave(doctor.id, leave.id)
    assert (await availability.resolve(doctor.id, TUESDAY)).available is True


@pytest.mark.asyncio
async def test_removing_another_doctors_leave_is_not_found(session, doctor, tenant):
    other = Doctor(tenant_id=tenant.id, name="Dr. Iyer")
    session.add(other)
    await session.commit()
    service = ScheduleService(session)
    leave = await service.add_leave(other.id, LeaveCreate(leave_date=TUESDAY))

    with pytest.raises(NotFoundError):
        await service.remove_leave(doctor.id, leave.id)
    with pytest.raises(NotFoundError):
        await service.remove_leave(doctor.id, uuid4())


@pytest.mark.asyncio
async def test_unknown_doctor(session):
    with pytest.raises(NotFoundError):
        await ScheduleService(session).get_weekly_schedule(uuid4())
