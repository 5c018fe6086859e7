"""Shared fixtures: in-memory database, settings, fixed clock, fake channels."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from installflow.config import Settings
from installflow.models import Base
from installflow.services.notifications import NotificationRouter
from installflow.services.offers import OfferManager
from tests.factories import FakeChannel, FakeClock, token_sequence


@pytest_asyncio.fixture
async def db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channels():
    return {name: FakeChannel(name) for name in ("email", "sms", "whatsapp")}


@pytest.fixture
def manager(settings, channels, clock):
    return OfferManager(settings, NotificationRouter(channels), clock=clock, token_factory=token_sequence())
