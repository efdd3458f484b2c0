from datetime import date, datetime
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinic_scheduler.core.config import settings
from clinic_scheduler.core.exceptions import InvalidTransitionError, NotFoundError
from clinic_scheduler.core.logger import logger
from clinic_scheduler.db.models import Appointment, Doctor, Patient, User
from clinic_scheduler.db.repository import SchedulingRepository
from clinic_scheduler.schemas.appointment import (
    Accepted,
    AppointmentCreate,
    AppointmentDetails,
    AppointmentStatus,
    AppointmentUpdate,
    BookingDecision,
    PatientCreate,
    SlotRequest,
    Unavailable,
)
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.booking_service import BookingArbiter

S = AppointmentStatus

# Forward-only workflow; anything not listed is refused
STATUS_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    S.SCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED, S.NO_SHOW}),
    S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED, S.NO_SHOW}),
    S.IN_PROGRESS: frozenset({S.COMPLETED}),
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED, S.NO_SHOW})


def can_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    return new in STATUS_TRANSITIONS.get(current, frozenset())


class AppointmentService:
    def __init__(self, session: AsyncSession, repository: Optional[SchedulingRepository] = None):
        self.session = session
        self.repository = repository or SchedulingRepository(session)
        self.audit = AuditService(session)
        self.arbiter = BookingArbiter(self.repository, audit_service=self.audit)

    async def _get_doctor(self, doctor_id: UUID) -> Doctor:
        doctor = await self.repository.get_doctor(doctor_id)
        if not doctor:
            raise NotFoundError("Doctor", doctor_id)
        return doctor

    async def get(self, appointment_id: UUID) -> Appointment:
        appointment = await self.repository.get_appointment(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def get_patient_by_phone(self, phone: str, tenant_id: UUID) -> Patient | None:
        stmt = select(Patient).where(
            Patient.phone == phone,
            Patient.tenant_id == tenant_id
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create_or_get_patient(self, patient_data: PatientCreate, tenant_id: UUID) -> Patient:
        patient = await self.get_patient_by_phone(patient_data.phone, tenant_id)
        if not patient:
            patient = Patient(
                tenant_id=tenant_id,
                name=patient_data.name,
                phone=patient_data.phone,
                age=patient_data.age,
                gender=patient_data.gender,
            )
            self.session.add(patient)
            # Flushed only; the booking that needs the patient commits it
            await self.session.flush()
        return patient

    async def _with_retry(self, attempt: Callable[[], Awaitable[BookingDecision]]) -> BookingDecision:
        """Run a booking attempt, repeating it when storage timed out.

        Re-running is safe because every attempt re-reads current state: if the
        timed-out write did land, the repeat sees it and reports the slot taken.
        """
        decision = await attempt()
        retries = settings.BOOKING_RETRY_ATTEMPTS
        while isinstance(decision, Unavailable) and retries > 0:
            logger.warning("Retrying booking after storage timeout")
            retries -= 1
            decision = await attempt()
        return decision

    async def check(self, request: SlotRequest, exclude_appointment_id: Optional[UUID] = None) -> BookingDecision:
        doctor = await self._get_doctor(request.doctor_id)
        duration = request.duration_minutes or doctor.consult_duration_minutes or settings.DEFAULT_APPOINTMENT_DURATION_MINUTES
        return await self.arbiter.evaluate(
            request.doctor_id,
            request.appointment_date,
            request.appointment_time,
            duration,
            exclude_appointment_id=exclude_appointment_id,
        )

    async def book(self, request: AppointmentCreate, acting_user: Optional[User] = None) -> BookingDecision:
        # 1. Validate Doctor
        doctor = await self._get_doctor(request.doctor_id)
        tenant_id = doctor.tenant_id
        duration = request.duration_minutes or doctor.consult_duration_minutes or settings.DEFAULT_APPOINTMENT_DURATION_MINUTES
        actor_id = acting_user.id if acting_user else None

        # 2. Resolve Patient
        walk_in = request.patient_id is None
        if not walk_in and not await self.repository.get_patient(request.patient_id):
            raise NotFoundError("Patient", request.patient_id)

        # 3. Arbitrate and write; a walk-in is only persisted together with their appointment
        async def attempt() -> BookingDecision:
            patient_id = request.patient_id
            if walk_in:
                patient_id = (await self.create_or_get_patient(request.patient, tenant_id)).id
            details = AppointmentDetails(
                patient_id=patient_id,
                appointment_type=request.appointment_type,
                reason=request.reason,
                notes=request.notes,
                created_by=actor_id,
            )
            return await self.arbiter.attempt_book(
                request.doctor_id,
                request.appointment_date,
                request.appointment_time,
                duration,
                details=details,
                actor_id=actor_id,
            )

        decision = await self._with_retry(attempt)
        if walk_in and not isinstance(decision, Accepted):
            await self.repository.rollback()
        return decision

    async def reschedule(
        self, appointment_id: UUID, changes: AppointmentUpdate, acting_user: Optional[User] = None
    ) -> BookingDecision:
        appointment = await self.get(appointment_id)
        current_status = AppointmentStatus(appointment.status)
        if current_status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"A {current_status.value} appointment can no longer be edited")

        if changes.patient_id is not None and changes.patient_id != appointment.patient_id:
            if not await self.repository.get_patient(changes.patient_id):
                raise NotFoundError("Patient", changes.patient_id)

        doctor_id = changes.doctor_id or appointment.doctor_id
        on_date = changes.appointment_date or appointment.appointment_date
        at_time = changes.appointment_time or appointment.appointment_time
        duration = changes.duration_minutes or appointment.duration_minutes
        if changes.doctor_id is not None:
            await self._get_doctor(doctor_id)

        details = AppointmentDetails(
            patient_id=changes.patient_id,
            appointment_type=changes.appointment_type,
            reason=changes.reason,
            notes=changes.notes,
        )
        actor_id = acting_user.id if acting_user else None
        return await self._with_retry(lambda: self.arbiter.attempt_book(
            doctor_id,
            on_date,
            at_time,
            duration,
            exclude_appointment_id=appointment_id,
            details=details,
            actor_id=actor_id,
        ))

    async def change_status(
        self, appointment_id: UUID, new_status: AppointmentStatus, acting_user: Optional[User] = None
    ) -> Appointment:
        appointment = await self.get(appointment_id)
        current_status = AppointmentStatus(appointment.status)
        if not can_transition(current_status, new_status):
            raise InvalidTransitionError(
                f"Cannot change appointment status from {current_status.value} to {new_status.value}"
            )

        doctor = await self._get_doctor(appointment.doctor_id)
        appointment.status = new_status.value
        appointment.updated_at = datetime.utcnow()
        self.session.add(appointment)
        self.audit.record(
            action="appointment_status_changed",
            entity_type="appointment",
            entity_id=appointment.id,
            actor_id=acting_user.id if acting_user else None,
            tenant_id=doctor.tenant_id,
            payload={"from": current_status.value, "to": new_status.value},
        )
        await self.session.commit()
        await self.session.refresh(appointment)
        return appointment

    async def list_for_doctor(
        self, doctor_id: UUID, on_date: date, statuses: Optional[List[AppointmentStatus]] = None
    ) -> List[Appointment]:
        await self._get_doctor(doctor_id)
        stmt = select(Appointment).where(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == on_date
        )
        if statuses:
            stmt = stmt.where(Appointment.status.in_([status.value for status in statuses]))
        stmt = stmt.order_by(Appointment.appointment_time)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete(self, appointment_id: UUID, acting_user: Optional[User] = None) -> None:
        appointment = await self.get(appointment_id)
        doctor = await self.repository.get_doctor(appointment.doctor_id)
        self.audit.record(
            action="appointment_deleted",
            entity_type="appointment",
            entity_id=appointment.id,
            actor_id=acting_user.id if acting_user else None,
            tenant_id=doctor.tenant_id if doctor else None,
            payload={
                "doctor_id": appointment.doctor_id,
                "appointment_date": appointment.appointment_date,
                "appointment_time": appointment.appointment_time,
            },
        )
        await self.session.delete(appointment)
        await self.session.commit()
