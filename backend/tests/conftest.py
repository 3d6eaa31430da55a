"""Shared fixtures: a throwaway SQLite database and a mocked object store."""

import os

os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RUNWARE_API_KEY"] = "test-runware-key"
os.environ["GEMINI_API_KEY"] = "test-gemini-key"
os.environ["FREEPIK_API_KEY"] = "test-freepik-key"
os.environ["DOWNLOAD_BACKOFF_SECONDS"] = "0"

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import synergy_hub.models  # noqa: F401
from synergy_hub.database import Base
from synergy_hub.models.profile import Profile
from synergy_hub.services.artifacts import ArtifactService
from synergy_hub.services.billing import CreditLedger
from synergy_hub.services.storage import StorageService

FAKE_PNG = b"\x89PNG\r\n\x1a\nfake-image-bytes"


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'synergy.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_profile(session_factory):
    async def _make(credits="10", is_legacy_user=False) -> uuid.UUID:
        profile = Profile(
            id=uuid.uuid4(),
            email=f"{uuid.uuid4().hex[:10]}@example.com",
            credits_remaining=Decimal(credits),
            is_legacy_user=is_legacy_user,
        )
        async with session_factory() as session:
            session.add(profile)
            await session.commit()
        return profile.id

    return _make


@pytest.fixture
def balance_of(session_factory):
    async def _balance(user_id) -> Decimal:
        async with session_factory() as session:
            return await CreditLedger.get_balance(session, user_id)

    return _balance


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def download_handler():
    """Default handler for provider-hosted downloads; tests may swap it."""
    state = {"handler": lambda request: httpx.Response(200, content=FAKE_PNG, headers={"content-type": "image/png"})}
    return state


@pytest.fixture
def storage(s3_client, download_handler):
    transport = httpx.MockTransport(lambda request: download_handler["handler"](request))
    return StorageService(client=s3_client, transport=transport)


@pytest.fixture
def artifacts(storage):
    return ArtifactService(storage=storage)
