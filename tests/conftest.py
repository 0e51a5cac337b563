"""Pytest fixtures: in-memory SQLite database, fake push transport, test client."""

import asyncio
import os

# Must be set before gradebook_push.settings is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("LOG_FORMAT", "text")
for _var in ("VAPID_EMAIL", "VAPID_PUBLIC_KEY", "VAPID_PRIVATE_KEY"):
    os.environ.pop(_var, None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gradebook_push.db import Base, get_db
from gradebook_push.main import create_app
from gradebook_push.models.push_subscription import PushSubscription
from gradebook_push.services.push import (
    PushNotificationService,
    PushTransportError,
    TransportResponse,
)
from gradebook_push.services.vapid import VapidConfig

VALID_PUBLIC_KEY = "B" + "x" * 86
VALID_PRIVATE_KEY = "k" * 43

VAPID_CONFIG = VapidConfig(
    subject="mailto:admin@school.example",
    public_key=VALID_PUBLIC_KEY,
    private_key=VALID_PRIVATE_KEY,
)


class FakeTransport:
    """Records sends; per-endpoint outcome is a status code or an exception."""

    def __init__(self, outcomes: dict | None = None, delays: dict | None = None):
        self.outcomes = outcomes or {}
        self.delays = delays or {}
        self.calls = []

    async def send(self, subscription_info, data, *, ttl, urgency):
        endpoint = subscription_info["endpoint"]
        self.calls.append({
            "endpoint": endpoint,
            "keys": subscription_info["keys"],
            "data": data,
            "ttl": ttl,
            "urgency": urgency,
        })
        if endpoint in self.delays:
            await asyncio.sleep(self.delays[endpoint])

        outcome = self.outcomes.get(endpoint, 201)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome >= 400:
            raise PushTransportError(f"Push failed: {outcome}", status_code=outcome)
        return TransportResponse(status_code=outcome, headers={"location": "msg-1"})


def make_keys(suffix: str = "1") -> dict:
    return {"p256dh": f"p256dh-key-{suffix}", "auth": f"auth-{suffix}"}


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def push_service(transport) -> PushNotificationService:
    return PushNotificationService(VAPID_CONFIG, transport=transport)


@pytest.fixture
def unconfigured_push(transport) -> PushNotificationService:
    return PushNotificationService(None, transport=transport)


@pytest.fixture
async def db():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


async def _create_tables(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _make_client(push: PushNotificationService):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_maker = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app(push_service=push, init_database=False)
    app.dependency_overrides[get_db] = override_get_db
    return app, engine, session_maker


@pytest.fixture
def api(push_service):
    """TestClient plus a helper that reads rows on the client's event loop."""
    app, engine, session_maker = _make_client(push_service)

    with TestClient(app) as client:
        # The app's loop owns the aiosqlite connection
        client.portal.call(_create_tables, engine)

        async def _rows():
            async with session_maker() as session:
                result = await session.execute(select(PushSubscription).order_by(PushSubscription.id))
                return list(result.scalars().all())

        client.rows = lambda: client.portal.call(_rows)
        yield client
        client.portal.call(engine.dispose)


@pytest.fixture
def unconfigured_api(unconfigured_push):
    app, engine, _ = _make_client(unconfigured_push)
    with TestClient(app) as client:
        client.portal.call(_create_tables, engine)
        yield client
        client.portal.call(engine.dispose)


def user_headers(user_id: str = "user-1", school_id: str | None = "school-1", role: str = "student") -> dict:
    headers = {"X-User-Id": user_id, "X-User-Role": role}
    if school_id:
        headers["X-School-Id"] = school_id
    return headers
