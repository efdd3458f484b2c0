from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.api.deps import get_current_user, get_token_store, oauth2_scheme
from clinic_scheduler.core.redis import RedisClient
from clinic_scheduler.db.models import User
from clinic_scheduler.db.session import get_session
from clinic_scheduler.schemas.auth import LoginRequest, LoginResponse
from clinic_scheduler.services.auth_service import AuthService

router = APIRouter()

@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    session: AsyncSession = Depends(get_session),
    token_store: RedisClient = Depends(get_token_store)
):
    service = AuthService(session, token_store)
    return await service.login(login_data)

@router.post("/logout", status_code=204)
async def logout(
    token: str = Depends(oauth2_scheme),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    token_store: RedisClient = Depends(get_token_store)
):
    service = AuthService(session, token_store)
    await service.logout(token)
