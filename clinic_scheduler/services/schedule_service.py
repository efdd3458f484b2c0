from datetime import date, datetime, time, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinic_scheduler.core.exceptions import NotFoundError
from clinic_scheduler.core.logger import logger
from clinic_scheduler.db.models import Doctor, DoctorLeave, WeeklySchedule
from clinic_scheduler.schemas.availability import LeaveType
from clinic_scheduler.schemas.schedule import LeaveCreate, WeeklyScheduleEntryIn
from clinic_scheduler.services.audit_service import AuditService

DEFAULT_START_TIME = time(9, 0)
DEFAULT_END_TIME = time(17, 0)

class ScheduleService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def _get_doctor(self, doctor_id: UUID) -> Doctor:
        doctor = await self.session.get(Doctor, doctor_id)
        if not doctor:
            raise NotFoundError("Doctor", doctor_id)
        return doctor

    async def _schedule_rows(self, doctor_id: UUID) -> List[WeeklySchedule]:
        stmt = select(WeeklySchedule).where(
            WeeklySchedule.doctor_id == doctor_id
        ).order_by(WeeklySchedule.day_of_week)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_weekly_schedule(self, doctor_id: UUID) -> List[WeeklySchedule]:
        """Return the doctor's seven weekday rows, seeding defaults on first view."""
        await self._get_doctor(doctor_id)

        schedules = await self._schedule_rows(doctor_id)
        if schedules:
            return schedules

        schedules = [
            WeeklySchedule(
                doctor_id=doctor_id,
                day_of_week=day,
                is_available=True,
                start_time=DEFAULT_START_TIME,
                end_time=DEFAULT_END_TIME,
            )
            for day in range(7)
        ]
        self.session.add_all(schedules)
        await self.session.commit()
        logger.info(f"Seeded default weekly schedule for doctor {doctor_id}")
        return schedules

    async def save_weekly_schedule(
        self, doctor_id: UUID, entries: List[WeeklyScheduleEntryIn], actor_id: Optional[UUID] = None
    ) -> List[WeeklySchedule]:
        doctor = await self._get_doctor(doctor_id)

        existing = {row.day_of_week: row for row in await self._schedule_rows(doctor_id)}
        now = datetime.utcnow()
        for entry in entries:
            row = existing.get(entry.day_of_week)
            if row is None:
                row = WeeklySchedule(doctor_id=doctor_id, day_of_week=entry.day_of_week)
                existing[entry.day_of_week] = row
            row.is_available = entry.is_available
            row.start_time = entry.start_time
            row.end_time = entry.end_time
            row.break_start = entry.break_start
            row.break_end = entry.break_end
            row.updated_at = now
            self.session.add(row)

        self.audit.record(
            action="schedule_updated",
            entity_type="schedule",
            entity_id=doctor_id,
            actor_id=actor_id,
            tenant_id=doctor.tenant_id,
            payload={"days": [entry.day_of_week for entry in entries]},
        )
        await self.session.commit()
        return [existing[day] for day in sorted(existing)]

    async def list_upcoming_leaves(self, doctor_id: UUID, today: Optional[date] = None) -> List[DoctorLeave]:
        await self._get_doctor(doctor_id)
        today = today or date.today()
        stmt = select(DoctorLeave).where(
            DoctorLeave.doctor_id == doctor_id,
            DoctorLeave.leave_date >= today
        ).order_by(DoctorLeave.leave_date)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_leave(
        self, doctor_id: UUID, leave_data: LeaveCreate, actor_id: Optional[UUID] = None
    ) -> DoctorLeave:
        doctor = await self._get_doctor(doctor_id)

        leave = DoctorLeave(
            doctor_id=doctor_id,
            leave_date=leave_data.leave_date,
            leave_type=leave_data.leave_type.value,
            reason=leave_data.reason,
        )
        self.session.add(leave)
        self.audit.record(
            action="leave_added",
            entity_type="leave",
            entity_id=leave.id,
            actor_id=actor_id,
            tenant_id=doctor.tenant_id,
            payload={
                "doctor_id": doctor_id,
                "leave_date": leave.leave_date,
                "leave_type": leave.leave_type,
            },
        )
        await self.session.commit()
        await self.session.refresh(leave)
        return leave

    async def add_day_off(
        self,
        doctor_id: UUID,
        days_from_today: int = 1,
        actor_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> DoctorLeave:
        """One-click full-day leave, tomorrow by default."""
        target = (today or date.today()) + timedelta(days=days_from_today)
        return await self.add_leave(
            doctor_id,
            LeaveCreate(leave_date=target, leave_type=LeaveType.FULL_DAY),
            actor_id=actor_id,
        )

    async def remove_leave(self, doctor_id: UUID, leave_id: UUID, actor_id: Optional[UUID] = None) -> None:
        doctor = await self._get_doctor(doctor_id)
        leave = await self.session.get(DoctorLeave, leave_id)
        if not leave or leave.doctor_id != doctor_id:
            raise NotFoundError("Leave", leave_id)

        self.audit.record(
            action="leave_deleted",
            entity_type="leave",
            entity_id=leave_id,
            actor_id=actor_id,
            tenant_id=doctor.tenant_id,
            payload={
                "doctor_id": doctor_id,
                "leave_date": leave.leave_date,
                "leave_type": leave.leave_type,
            },
        )
        await self.session.delete(leave)
        await self.session.commit()
