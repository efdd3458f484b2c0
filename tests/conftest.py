import os

# Settings are read at import time; point them away from Postgres first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import time
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from clinic_scheduler.api.deps import get_current_user, get_token_store
from clinic_scheduler.core.security import get_password_hash
from clinic_scheduler.db.models import Appointment, Doctor, DoctorLeave, Patient, Tenant, User, WeeklySchedule
from clinic_scheduler.db.session import get_session
from clinic_scheduler.main import app


class FakeTokenStore:
    """In-memory stand-in for the Redis token store."""

    def __init__(self):
        self.tokens = {}

    async def set_token(self, token: str, value: str, expire: int):
        self.tokens[token] = value

    async def get_token(self, token: str):
        return self.tokens.get(token)

    async def delete_token(self, token: str):
        self.tokens.pop(token, None)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest_asyncio.fixture
async def tenant(session):
    tenant = Tenant(name="Sunrise Clinic", slug="sunrise", city="Pune")
    session.add(tenant)
    await session.commit()
    return tenant


@pytest_asyncio.fixture
async def admin_user(session, tenant):
    user = User(
        tenant_id=tenant.id,
        role="admin",
        name="Front Desk",
        username="frontdesk",
        password_hash=get_password_hash("s3cret-pass"),
    )
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def doctor(session, tenant):
    doctor = Doctor(tenant_id=tenant.id, name="Dr. Rao", specialty="General", consult_duration_minutes=30)
    session.add(doctor)
    await session.commit()
    return doctor


@pytest_asyncio.fixture
async def patient(session, tenant):
    patient = Patient(tenant_id=tenant.id, name="Asha Patel", phone="9800000001")
    session.add(patient)
    await session.commit()
    return patient


async def add_schedule(
    session,
    doctor,
    day_of_week: int,
    start: Optional[time] = time(9, 0),
    end: Optional[time] = time(17, 0),
    break_start: Optional[time] = None,
    break_end: Optional[time] = None,
    is_available: bool = True,
) -> WeeklySchedule:
    entry = WeeklySchedule(
        doctor_id=doctor.id,
        day_of_week=day_of_week,
        is_available=is_available,
        start_time=start,
        end_time=end,
        break_start=break_start,
        break_end=break_end,
    )
    session.add(entry)
    await session.commit()
    return entry


async def add_leave(session, doctor, leave_date, leave_type="full_day", reason=None) -> DoctorLeave:
    leave = DoctorLeave(doctor_id=doctor.id, leave_date=leave_date, leave_type=leave_type, reason=reason)
    session.add(leave)
    await session.commit()
    return leave


@pytest.fixture
def token_store():
    return FakeTokenStore()


@pytest_asyncio.fixture
async def client(session, token_store):
    async def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_token_store] = lambda: token_store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def auth_client(client, admin_user):
    """Client whose requests run as the clinic's front-desk user."""
    app.dependency_overrides[get_current_user] = lambda: admin_user
    return client


async def add_appointment(session, doctor, patient, on_date, at_time, duration=30, status="scheduled"):
    appointment = Appointment(
        doctor_id=doctor.id,
        patient_id=patient.id,
        appointment_date=on_date,
        appointment_time=at_time,
        duration_minutes=duration,
        status=status,
    )
    session.add(appointment)
    await session.commit()
    return appointment
