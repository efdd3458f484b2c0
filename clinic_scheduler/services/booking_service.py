"""Commit-time arbitration of appointment bookings.

The arbiter re-resolves availability and re-reads the doctor's appointments
on every attempt; nothing is cached between calls. Each attempt first locks
the doctor row, so bookings for one doctor are serialized, and the repository
re-checks for overlaps after flushing the write. A write that still loses the
race comes back as a ``slot taken`` rejection instead of an error.
"""

from datetime import date, time
from typing import Optional
from uuid import UUID

from clinic_scheduler.core.exceptions import ConflictError, NotFoundError, StorageTimeout
from clinic_scheduler.core.logger import logger
from clinic_scheduler.db.models import Appointment
from clinic_scheduler.db.repository import SchedulingRepository, intervals_overlap
from clinic_scheduler.schemas.appointment import (
    Accepted,
    AppointmentDetails,
    AppointmentStatus,
    BookingDecision,
    Rejected,
    RejectionReason,
    Unavailable,
)
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.availability import AvailabilityService, covering_window, to_minutes


class BookingArbiter:
    def __init__(
        self,
        repository: SchedulingRepository,
        availability_service: Optional[AvailabilityService] = None,
        audit_service: Optional[AuditService] = None,
    ):
        self.repository = repository
        self.availability_service = availability_service or AvailabilityService(repository)
        self.audit_service = audit_service

    async def _check(
        self,
        doctor_id: UUID,
        on_date: date,
        at_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[UUID],
    ) -> BookingDecision:
        # 1. Doctor must be working that day
        availability = await self.availability_service.resolve(doctor_id, on_date)
        if not availability.available:
            return Rejected(
                reason=RejectionReason.DOCTOR_UNAVAILABLE,
                detail=availability.reason.value if availability.reason else None,
            )

        # 2. The whole appointment must fit inside one working window
        start = to_minutes(at_time)
        end = start + duration_minutes
        if covering_window(availability, start, end) is None:
            return Rejected(reason=RejectionReason.OUTSIDE_WORKING_HOURS)

        # 3. No overlap with any live appointment, read fresh
        existing = await self.repository.list_appointments(doctor_id, on_date, exclude_appointment_id)
        for appointment in existing:
            other_start = to_minutes(appointment.appointment_time)
            other_end = other_start + appointment.duration_minutes
            if intervals_overlap(start, end, other_start, other_end):
                return Rejected(
                    reason=RejectionReason.SLOT_TAKEN,
                    conflicting_appointment_id=appointment.id,
                )

        return Accepted()

    async def evaluate(
        self,
        doctor_id: UUID,
        on_date: date,
        at_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[UUID] = None,
    ) -> BookingDecision:
        """Run every check without writing anything."""
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        try:
            return await self._check(doctor_id, on_date, at_time, duration_minutes, exclude_appointment_id)
        except StorageTimeout:
            logger.warning(f"Storage timeout while checking slot {on_date} {at_time} for doctor {doctor_id}")
            await self.repository.rollback()
            return Unavailable()

    async def attempt_book(
        self,
        doctor_id: UUID,
        on_date: date,
        at_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[UUID] = None,
        details: Optional[AppointmentDetails] = None,
        actor_id: Optional[UUID] = None,
    ) -> BookingDecision:
        """Validate a slot and, if it is free, insert or update the appointment.

        Without ``exclude_appointment_id`` a new appointment is inserted and
        ``details.patient_id`` is required. With it, that appointment is moved
        to the requested slot and any fields set in ``details`` are applied.
        """
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        if exclude_appointment_id is None and (details is None or details.patient_id is None):
            raise ValueError("a new appointment needs a patient_id")

        try:
            await self.repository.lock_doctor(doctor_id)
            decision = await self._check(doctor_id, on_date, at_time, duration_minutes, exclude_appointment_id)
            if not isinstance(decision, Accepted):
                logger.info(
                    f"Booking rejected for doctor {doctor_id} at {on_date} {at_time}: "
                    f"{decision.reason.value}"
                )
                return decision

            if exclude_appointment_id is None:
                appointment = await self._insert(doctor_id, on_date, at_time, duration_minutes, details, actor_id)
            else:
                appointment = await self._update(
                    exclude_appointment_id, doctor_id, on_date, at_time, duration_minutes, details, actor_id
                )
            return Accepted(appointment=appointment)

        except ConflictError as exc:
            logger.warning(
                f"Concurrent booking won the slot {on_date} {at_time} for doctor {doctor_id}"
            )
            conflicting_id = exc.conflicting_appointment_id or await self._conflicting_id(doctor_id, on_date, at_time)
            return Rejected(reason=RejectionReason.SLOT_TAKEN, conflicting_appointment_id=conflicting_id)
        except StorageTimeout:
            logger.warning(f"Storage timeout while booking {on_date} {at_time} for doctor {doctor_id}")
            await self.repository.rollback()
            return Unavailable()

    async def _insert(
        self,
        doctor_id: UUID,
        on_date: date,
        at_time: time,
        duration_minutes: int,
        details: AppointmentDetails,
        actor_id: Optional[UUID],
    ) -> Appointment:
        appointment = Appointment(
            doctor_id=doctor_id,
            patient_id=details.patient_id,
            appointment_date=on_date,
            appointment_time=at_time,
            duration_minutes=duration_minutes,
            status=AppointmentStatus.SCHEDULED.value,
            appointment_type=details.appointment_type,
            reason=details.reason,
            notes=details.notes,
            created_by=details.created_by,
        )
        await self._record("appointment_created", appointment, actor_id)
        return await self.repository.insert_appointment(appointment)

    async def _update(
        self,
        appointment_id: UUID,
        doctor_id: UUID,
        on_date: date,
        at_time: time,
        duration_minutes: int,
        details: Optional[AppointmentDetails],
        actor_id: Optional[UUID],
    ) -> Appointment:
        appointment = await self.repository.get_appointment(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)

        fields = {
            "doctor_id": doctor_id,
            "appointment_date": on_date,
            "appointment_time": at_time,
            "duration_minutes": duration_minutes,
        }
        if details is not None:
            # created_by is fixed at creation
            fields.update(details.model_dump(exclude_none=True, exclude={"created_by"}))
        await self._record("appointment_updated", appointment, actor_id, changes=fields)
        return await self.repository.update_appointment(appointment, fields)

    async def _record(
        self, action: str, appointment: Appointment, actor_id: Optional[UUID], changes: Optional[dict] = None
    ) -> None:
        if self.audit_service is None:
            return
        doctor = await self.repository.get_doctor(changes["doctor_id"] if changes else appointment.doctor_id)
        payload = changes or {
            "doctor_id": appointment.doctor_id,
            "patient_id": appointment.patient_id,
            "appointment_date": appointment.appointment_date,
            "appointment_time": appointment.appointment_time,
            "duration_minutes": appointment.duration_minutes,
        }
        self.audit_service.record(
            action=action,
            entity_type="appointment",
            entity_id=appointment.id,
            actor_id=actor_id,
            tenant_id=doctor.tenant_id if doctor else None,
            payload=payload,
        )

    async def _conflicting_id(self, doctor_id: UUID, on_date: date, at_time: time) -> Optional[UUID]:
        try:
            winner = await self.repository.find_active_appointment_at(doctor_id, on_date, at_time)
        except StorageTimeout:
            logger.warning(f"Could not look up the appointment holding {on_date} {at_time}")
            return None
        return winner.id if winner else None
