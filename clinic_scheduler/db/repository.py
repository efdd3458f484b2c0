"""Reads and writes the scheduling core needs from the database.

Every call is bounded by ``STORAGE_TIMEOUT_SECONDS``; a slow or dropped
database surfaces as :class:`StorageTimeout`. A write that overlaps another
live appointment of the same doctor, found either by the re-check after
flush or by the active-slot unique index, surfaces as :class:`ConflictError`.
"""

import asyncio
from datetime import date, datetime, time
from typing import Any, Awaitable, List, Optional, TypeVar
from uuid import UUID

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinic_scheduler.core.config import settings
from clinic_scheduler.core.exceptions import ConflictError, StorageTimeout
from clinic_scheduler.db.models import Appointment, Doctor, DoctorLeave, Patient, WeeklySchedule

T = TypeVar("T")

CANCELLED = "cancelled"

# Postgres reports the index name, SQLite the column list
_SLOT_CONFLICT_MARKERS = (
    "uq_appointments_doctor_slot_active",
    "UNIQUE constraint failed: appointments.doctor_id",
)


def is_slot_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return any(marker in message for marker in _SLOT_CONFLICT_MARKERS)


def intervals_overlap(start: int, end: int, other_start: int, other_end: int) -> bool:
    # Shared endpoints do not count: back-to-back appointments are allowed
    return start < other_end and other_start < end


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def doctor_lock_statement(doctor_id: UUID):
    return select(Doctor).where(Doctor.id == doctor_id).with_for_update()


class SchedulingRepository:
    def __init__(self, session: AsyncSession, timeout: Optional[float] = None):
        self.session = session
        self.timeout = timeout if timeout is not None else settings.STORAGE_TIMEOUT_SECONDS

    async def _run(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise StorageTimeout(f"database did not answer within {self.timeout}s") from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise StorageTimeout("database connection lost") from exc
            raise

    async def _scalars(self, stmt) -> List[Any]:
        result = await self._run(self.session.execute(stmt))
        return list(result.scalars().all())

    async def get_doctor(self, doctor_id: UUID) -> Optional[Doctor]:
        return await self._run(self.session.get(Doctor, doctor_id))

    async def get_patient(self, patient_id: UUID) -> Optional[Patient]:
        return await self._run(self.session.get(Patient, patient_id))

    async def get_appointment(self, appointment_id: UUID) -> Optional[Appointment]:
        return await self._run(self.session.get(Appointment, appointment_id))

    async def list_weekly_schedule(self, doctor_id: UUID) -> List[WeeklySchedule]:
        stmt = select(WeeklySchedule).where(
            WeeklySchedule.doctor_id == doctor_id
        ).order_by(WeeklySchedule.day_of_week)
        return await self._scalars(stmt)

    async def list_leave(self, doctor_id: UUID, on_date: date) -> List[DoctorLeave]:
        stmt = select(DoctorLeave).where(
            DoctorLeave.doctor_id == doctor_id,
            DoctorLeave.leave_date == on_date
        ).order_by(DoctorLeave.created_at)
        return await self._scalars(stmt)

    async def list_appointments(
        self, doctor_id: UUID, on_date: date, exclude_id: Optional[UUID] = None
    ) -> List[Appointment]:
        """Non-cancelled appointments of one doctor on one date, earliest first."""
        stmt = select(Appointment).where(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == on_date,
            Appointment.status != CANCELLED
        )
        if exclude_id is not None:
            stmt = stmt.where(Appointment.id != exclude_id)
        stmt = stmt.order_by(Appointment.appointment_time)
        return await self._scalars(stmt)

    async def find_active_appointment_at(
        self, doctor_id: UUID, on_date: date, at_time: time
    ) -> Optional[Appointment]:
        stmt = select(Appointment).where(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == on_date,
            Appointment.appointment_time == at_time,
            Appointment.status != CANCELLED
        )
        rows = await self._scalars(stmt)
        return rows[0] if rows else None

    async def lock_doctor(self, doctor_id: UUID) -> None:
        """Take the per-doctor booking lock for the rest of the transaction.

        On Postgres this is a ``SELECT ... FOR UPDATE`` on the doctor row, so
        two bookings for the same doctor run one after the other. SQLite drops
        the clause and serializes writers on its own.
        """
        await self._scalars(doctor_lock_statement(doctor_id))

    async def _first_overlap(self, appointment: Appointment) -> Optional[Appointment]:
        stmt = select(Appointment).where(
            Appointment.doctor_id == appointment.doctor_id,
            Appointment.appointment_date == appointment.appointment_date,
            Appointment.status != CANCELLED,
            Appointment.id != appointment.id
        ).order_by(Appointment.appointment_time)
        start = _minutes(appointment.appointment_time)
        end = start + appointment.duration_minutes
        for other in await self._scalars(stmt):
            other_start = _minutes(other.appointment_time)
            if intervals_overlap(start, end, other_start, other_start + other.duration_minutes):
                return other
        return None

    async def _write(self, appointment: Appointment) -> Appointment:
        self.session.add(appointment)
        try:
            await self._run(self.session.flush())
            # Re-checked inside the writing transaction; the caller's read may be stale
            clash = await self._first_overlap(appointment)
            if clash is not None:
                clash_id = clash.id
                await self.session.rollback()
                raise ConflictError("appointment overlaps another booking", conflicting_appointment_id=clash_id)
            await self._run(self.session.commit())
        except IntegrityError as exc:
            await self.session.rollback()
            if is_slot_conflict(exc):
                raise ConflictError("appointment slot already taken") from exc
            raise
        await self._run(self.session.refresh(appointment))
        return appointment

    async def insert_appointment(self, appointment: Appointment) -> Appointment:
        return await self._write(appointment)

    async def update_appointment(self, appointment: Appointment, fields: dict) -> Appointment:
        for key, value in fields.items():
            setattr(appointment, key, value)
        appointment.updated_at = datetime.utcnow()
        return await self._write(appointment)

    async def rollback(self) -> None:
        await self.session.rollback()
