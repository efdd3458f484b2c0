from typing import List
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinic_scheduler.core.exceptions import NotFoundError
from clinic_scheduler.core.security import get_password_hash
from clinic_scheduler.db.models import Doctor, Tenant, User
from clinic_scheduler.schemas.doctor import DoctorCreate
from clinic_scheduler.services.audit_service import AuditService

class DoctorService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def create_doctor(self, tenant_id: UUID, doctor_data: DoctorCreate, actor_id: UUID | None = None) -> Doctor:
        # Verify tenant exists
        tenant = await self.session.get(Tenant, tenant_id)
        if not tenant:
            raise NotFoundError("Clinic", tenant_id)

        existing = await self.session.execute(select(User).where(User.username == doctor_data.username))
        if existing.scalars().first():
            raise HTTPException(status_code=409, detail="Username already taken")

        # Login account first, then the profile that points at it
        user = User(
            tenant_id=tenant_id,
            role="doctor",
            name=doctor_data.name,
            username=doctor_data.username,
            email=doctor_data.email,
            phone=doctor_data.phone,
            password_hash=get_password_hash(doctor_data.password),
        )
        self.session.add(user)

        doctor = Doctor(
            tenant_id=tenant_id,
            user_id=user.id,
            name=doctor_data.name,
            specialty=doctor_data.specialty,
            registration_number=doctor_data.registration_number,
            consult_duration_minutes=doctor_data.consult_duration_minutes,
        )
        self.session.add(doctor)
        self.audit.record(
            action="doctor_created",
            entity_type="doctor",
            entity_id=doctor.id,
            actor_id=actor_id,
            tenant_id=tenant_id,
            payload={"name": doctor.name, "username": user.username},
        )
        await self.session.commit()
        await self.session.refresh(doctor)
        return doctor

    async def get_doctors(self, tenant_id: UUID) -> List[Doctor]:
        query = select(Doctor).where(Doctor.tenant_id == tenant_id).order_by(Doctor.name)
        result = await self.session.execute(query)
        return list(result.scalars().all())
