"""Shared fixtures: a throwaway SQLite database per test plus seed helpers.

The models use portable column types, so the suite runs on aiosqlite and
needs no PostgreSQL server. Webhook and admin-function settings are cleared
so nothing leaves the process unless a test patches it in.
"""
import itertools
import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from db.models import Base
from db.repositories import leads as leads_repo
from db.repositories import pipeline_stages as stages_repo
from db.repositories import users as users_repo

_phone_numbers = itertools.count(1000)

_INTEGRATION_ENV = (
    "N8N_INITIAL_MESSAGE_WEBHOOK",
    "N8N_SEND_SMS_WEBHOOK",
    "N8N_CALL_WEBHOOK",
    "N8N_WEBHOOK_TOKEN",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "TWILIO_PHONE_NUMBER",
)


@pytest.fixture(autouse=True)
def _no_integrations(monkeypatch):
    for name in _INTEGRATION_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest_asyncio.fixture
async def session(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as db:
        yield db
    await engine.dispose()


@pytest_asyncio.fixture
async def stage(session):
    """The first (and only) pipeline stage, "New Lead"."""
    created = await stages_repo.create_stage(session, "New Lead")
    await session.commit()
    return created


async def _make_user(session, role, **fields):
    user = await users_repo.create(session, {
        "email": fields.pop("email", f"{uuid.uuid4().hex[:8]}@dealer.test"),
        "full_name": fields.pop("full_name", "Test User"),
        **fields,
    })
    if role is not None:
        await users_repo.set_role(session, user.id, role)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def admin(session):
    return await _make_user(session, "admin", full_name="Alex Admin")


@pytest_asyncio.fixture
async def agent(session):
    return await _make_user(session, "user", full_name="Sam Sales", phone_number="+16045550000")


@pytest.fixture
def make_user(session):
    async def _make(role="user", **fields):
        return await _make_user(session, role, **fields)
    return _make


@pytest.fixture
def make_lead(session, stage):
    """Factory: await make_lead(phone="+16045551234", tags=["VIP"], ...)."""
    async def _make(**overrides):
        data = {
            "first_name": "Jane",
            "last_name": "Doe",
            "phone": f"+1604555{next(_phone_numbers):04d}",
            "tags": [],
            "status": "new",
            "lead_source": "manual_entry",
            "pipeline_stage_id": stage.id,
        }
        data.update(overrides)
        lead = await leads_repo.create(session, data)
        await session.commit()
        return lead
    return _make
