"""Shared fixtures: a throwaway SQLite database, a fixed clock and fake email channels."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from prayer_engine.core.config import Settings, get_settings
from prayer_engine.core.database import build_engine, get_session, init_db
from prayer_engine.core.dependencies import get_dispatcher, get_session_factory
from prayer_engine.models import (
    ApprovalStatus,
    Prayer,
    PrayerStatus,
    PrayerUpdate,
    Subscriber,
)
from prayer_engine.services.email_messages import OutboundEmail
from prayer_engine.services.notification_service import (
    DispatchResult,
    EmailChannel,
    NotificationDispatcher,
)


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingEmailChannel(EmailChannel):
    def __init__(self):
        self.sent: list[OutboundEmail] = []

    async def send(self, email: OutboundEmail) -> DispatchResult:
        self.sent.append(email)
        return DispatchResult(success=True, recipients=len(email.recipients))

    def subjects(self) -> list[str]:
        return [email.subject for email in self.sent]


class FailingEmailChannel(EmailChannel):
    def __init__(self, raise_error: bool = False):
        self.raise_error = raise_error
        self.attempts = 0

    async def send(self, email: OutboundEmail) -> DispatchResult:
        self.attempts += 1
        if self.raise_error:
            raise RuntimeError("connection reset")
        return DispatchResult(success=False, error="service unavailable")


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'prayers.db'}",
        app_url="https://prayers.example.org",
        cron_secret=None,
    )


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


# =============================================================================
# EMAIL
# =============================================================================


@pytest.fixture
def outbox() -> RecordingEmailChannel:
    return RecordingEmailChannel()


@pytest.fixture
def dispatcher(outbox) -> NotificationDispatcher:
    return NotificationDispatcher(outbox)


@pytest.fixture
def failing_channel() -> FailingEmailChannel:
    return FailingEmailChannel()


# =============================================================================
# RECORD FACTORIES
# =============================================================================


@pytest.fixture
def add_prayer(session, clock):
    """Insert an approved, current prayer created a day before the clock."""

    async def _add(**overrides) -> Prayer:
        values = {
            "title": "Healing for Sam",
            "description": "Recovering from knee surgery",
            "requester": "Jane Doe",
            "prayer_for": "Sam",
            "email": "jane@example.com",
            "approval_status": ApprovalStatus.APPROVED,
            "status": PrayerStatus.CURRENT,
            "created_at": clock() - timedelta(days=1),
        }
        values.update(overrides)
        values.setdefault("date_requested", values["created_at"])
        prayer = Prayer(**values)
        session.add(prayer)
        await session.flush()
        return prayer

    return _add


@pytest.fixture
def add_update(session, clock):
    """Insert an approved update on ``prayer``."""

    async def _add(prayer: Prayer, **overrides) -> PrayerUpdate:
        values = {
            "prayer_id": prayer.id,
            "content": "Surgery went well",
            "author": "Jane Doe",
            "approval_status": ApprovalStatus.APPROVED,
            "created_at": clock(),
        }
        values.update(overrides)
        prayer_update = PrayerUpdate(**values)
        session.add(prayer_update)
        await session.flush()
        return prayer_update

    return _add


@pytest.fixture
def add_subscriber(session):
    async def _add(email: str, **overrides) -> Subscriber:
        subscriber = Subscriber(email=email, **overrides)
        session.add(subscriber)
        await session.flush()
        return subscriber

    return _add


# =============================================================================
# HTTP CLIENT
# =============================================================================


@pytest.fixture
async def client(settings, session_factory, dispatcher):
    """ASGI client wired to the test database and the recording dispatcher."""
    from prayer_engine.main import app

    async def _session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_settings] = lambda: settings

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()

