from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.api.deps import get_current_user
from clinic_scheduler.db.models import Appointment, User
from clinic_scheduler.db.session import get_session
from clinic_scheduler.schemas.appointment import (
    Accepted,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    BookingDecision,
    CheckResponse,
    Rejected,
    SlotRequest,
)
from clinic_scheduler.services.appointment_service import AppointmentService

router = APIRouter()

TRY_AGAIN = "Scheduling storage is not responding, try again"

async def get_appointment_service(session: AsyncSession = Depends(get_session)) -> AppointmentService:
    return AppointmentService(session)

def unwrap_decision(decision: BookingDecision) -> Appointment:
    """Turn a booking decision into the written appointment or an HTTP error."""
    if isinstance(decision, Accepted):
        return decision.appointment
    if isinstance(decision, Rejected):
        raise HTTPException(
            status_code=409,
            detail={
                "reason": decision.reason.value,
                "detail": decision.detail,
                "conflicting_appointment_id": (
                    str(decision.conflicting_appointment_id) if decision.conflicting_appointment_id else None
                ),
            },
        )
    raise HTTPException(status_code=503, detail=TRY_AGAIN)

@router.post("/check", response_model=CheckResponse)
async def check_slot(
    request: SlotRequest,
    appointment_id: Optional[UUID] = None,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(get_current_user)
):
    decision = await service.check(request, exclude_appointment_id=appointment_id)
    if isinstance(decision, Accepted):
        return CheckResponse(bookable=True)
    if isinstance(decision, Rejected):
        return CheckResponse(
            bookable=False,
            reason=decision.reason,
            detail=decision.detail,
            conflicting_appointment_id=decision.conflicting_appointment_id,
        )
    raise HTTPException(status_code=503, detail=TRY_AGAIN)

@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    request: AppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(get_current_user)
):
    return unwrap_decision(await service.book(request, current_user))

@router.get("", response_model=AppointmentListResponse)
async def read_appointments(
    doctor_id: UUID,
    on_date: date = Query(..., alias="date"),
    status: Optional[List[AppointmentStatus]] = Query(None),
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(get_current_user)
):
    appointments = await service.list_for_doctor(doctor_id, on_date, status)
    return AppointmentListResponse(
        doctor_id=doctor_id,
        date=on_date,
        appointments=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
    )

@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def read_appointment(
    appointment_id: UUID,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(get_current_user)
):
    return await service.get(appointment_id)

@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: UUID,
    changes: AppointmentUpdate,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(get_current_user)
):
    return unwrap_decision(await service.reschedule(appointment_id, changes, current_user))

@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: UUID,
    status_update: AppointmentStatusUpdate,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(get_current_user)
):
    return await service.change_status(appointment_id, status_update.status, current_user)

@router.delete("/{appointment_id}", status_code=204)
async def delete_appointment(
    appointment_id: UUID,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: User = Depends(get_current_user)
):
    await service.delete(appointment_id, current_user)
