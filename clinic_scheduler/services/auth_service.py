import json
from datetime import datetime, timedelta

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinic_scheduler.core.config import settings
from clinic_scheduler.core.logger import logger
from clinic_scheduler.core.redis import redis_client
from clinic_scheduler.core.security import create_access_token, verify_password
from clinic_scheduler.db.models import Doctor, Tenant, User
from clinic_scheduler.schemas.auth import LoginRequest, LoginResponse, UserInfo

class AuthService:
    def __init__(self, session: AsyncSession, token_store=None):
        self.session = session
        self.token_store = token_store or redis_client

    async def login(self, login_data: LoginRequest) -> LoginResponse:
        # 1. Find Clinic by Slug
        stmt = select(Tenant).where(Tenant.slug == login_data.clinic_slug)
        result = await self.session.execute(stmt)
        clinic = result.scalars().first()

        if not clinic:
            raise HTTPException(status_code=404, detail="Clinic not found")

        # 2. Find User in that Clinic
        stmt = select(User).where(
            User.tenant_id == clinic.id,
            User.username == login_data.username
        )
        result = await self.session.execute(stmt)
        user = result.scalars().first()

        # 3. Verify Password
        if not user or not user.is_active or not verify_password(login_data.password, user.password_hash):
            logger.info(f"Failed login for {login_data.username} at {login_data.clinic_slug}")
            raise HTTPException(status_code=401, detail="Invalid username or password")

        # 4. Generate Token and register it; a token missing from the store is revoked
        expire_seconds = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        access_token = create_access_token(
            data={"sub": str(user.id)},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
        token_data = {
            "user_id": str(user.id),
            "role": user.role,
            "tenant_id": str(clinic.id),
        }
        await self.token_store.set_token(access_token, json.dumps(token_data), expire_seconds)

        user.last_login_at = datetime.utcnow()
        self.session.add(user)
        await self.session.commit()

        result = await self.session.execute(select(Doctor.id).where(Doctor.user_id == user.id))
        doctor_id = result.scalars().first()

        return LoginResponse(
            access_token=access_token,
            expires_in=expire_seconds,
            user=UserInfo(
                id=user.id,
                name=user.name,
                username=user.username,
                role=user.role,
                clinic_id=clinic.id,
                clinic_name=clinic.name,
                doctor_id=doctor_id,
            )
        )

    async def logout(self, token: str) -> None:
        await self.token_store.delete_token(token)
