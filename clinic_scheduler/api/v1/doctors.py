from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.api.deps import get_current_user
from clinic_scheduler.core.config import settings
from clinic_scheduler.db.models import User
from clinic_scheduler.db.repository import SchedulingRepository
from clinic_scheduler.db.session import get_session
from clinic_scheduler.schemas.availability import AvailabilityResponse, SlotsResponse
from clinic_scheduler.schemas.doctor import DoctorCreate, DoctorResponse
from clinic_scheduler.schemas.schedule import (
    DayOffRequest,
    LeaveCreate,
    LeaveResponse,
    WeeklyScheduleEntryResponse,
    WeeklyScheduleUpdate,
)
from clinic_scheduler.services.availability import AvailabilityService
from clinic_scheduler.services.doctor_service import DoctorService
from clinic_scheduler.services.schedule_service import ScheduleService
from clinic_scheduler.services.slots import SlotService

router = APIRouter()

async def get_doctor_service(session: AsyncSession = Depends(get_session)) -> DoctorService:
    return DoctorService(session)

async def get_schedule_service(session: AsyncSession = Depends(get_session)) -> ScheduleService:
    return ScheduleService(session)

async def get_availability_service(session: AsyncSession = Depends(get_session)) -> AvailabilityService:
    return AvailabilityService(SchedulingRepository(session))

async def get_slot_service(session: AsyncSession = Depends(get_session)) -> SlotService:
    return SlotService(AvailabilityService(SchedulingRepository(session)))

@router.post("/{tenant_id}/doctors", response_model=DoctorResponse)
async def create_doctor(
    tenant_id: UUID,
    doctor_data: DoctorCreate,
    service: DoctorService = Depends(get_doctor_service),
    current_user: User = Depends(get_current_user)
):
    return await service.create_doctor(tenant_id, doctor_data, actor_id=current_user.id)

@router.get("/{tenant_id}/doctors", response_model=List[DoctorResponse])
async def read_doctors(
    tenant_id: UUID,
    service: DoctorService = Depends(get_doctor_service),
    current_user: User = Depends(get_current_user)
):
    return await service.get_doctors(tenant_id)

@router.get("/{doctor_id}/availability", response_model=AvailabilityResponse)
async def get_doctor_availability(
    doctor_id: UUID,
    on_date: date = Query(..., alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_user)
):
    result = await service.resolve(doctor_id, on_date)
    return AvailabilityResponse(doctor_id=doctor_id, date=on_date, **result.model_dump())

@router.get("/{doctor_id}/slots", response_model=SlotsResponse)
async def get_doctor_slots(
    doctor_id: UUID,
    on_date: date = Query(..., alias="date"),
    granularity: Optional[int] = Query(None, gt=0, le=24 * 60),
    service: SlotService = Depends(get_slot_service),
    current_user: User = Depends(get_current_user)
):
    return await service.day_slots(doctor_id, on_date, granularity or settings.DEFAULT_SLOT_GRANULARITY_MINUTES)

@router.get("/{doctor_id}/schedule", response_model=List[WeeklyScheduleEntryResponse])
async def read_schedule(
    doctor_id: UUID,
    service: ScheduleService = Depends(get_schedule_service),
    current_user: User = Depends(get_current_user)
):
    return await service.get_weekly_schedule(doctor_id)

@router.put("/{doctor_id}/schedule", response_model=List[WeeklyScheduleEntryResponse])
async def update_schedule(
    doctor_id: UUID,
    schedule_update: WeeklyScheduleUpdate,
    service: ScheduleService = Depends(get_schedule_service),
    current_user: User = Depends(get_current_user)
):
    return await service.save_weekly_schedule(doctor_id, schedule_update.entries, actor_id=current_user.id)

@router.get("/{doctor_id}/leaves", response_model=List[LeaveResponse])
async def read_leaves(
    doctor_id: UUID,
    service: ScheduleService = Depends(get_schedule_service),
    current_user: User = Depends(get_current_user)
):
    return await service.list_upcoming_leaves(doctor_id)

@router.post("/{doctor_id}/leaves", response_model=LeaveResponse)
async def create_leave(
    doctor_id: UUID,
    leave_data: LeaveCreate,
    service: ScheduleService = Depends(get_schedule_service),
    current_user: User = Depends(get_current_user)
):
    return await service.add_leave(doctor_id, leave_data, actor_id=current_user.id)

@router.post("/{doctor_id}/leaves/day-off", response_model=LeaveResponse)
async def create_day_off(
    doctor_id: UUID,
    request: DayOffRequest,
    service: ScheduleService = Depends(get_schedule_service),
    current_user: User = Depends(get_current_user)
):
    return await service.add_day_off(doctor_id, request.days_from_today, actor_id=current_user.id)

@router.delete("/{doctor_id}/leaves/{leave_id}", status_code=204)
async def delete_leave(
    doctor_id: UUID,
    leave_id: UUID,
    service: ScheduleService = Depends(get_schedule_service),
    current_user: User = Depends(get_current_user)
):
    await service.remove_leave(doctor_id, leave_id, actor_id=current_user.id)
