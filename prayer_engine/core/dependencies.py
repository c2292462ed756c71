"""FastAPI dependencies for sessions, services, and job authorization."""

import logging
import secrets
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..services.moderation_queue import ModerationQueue, QueueConfig
from ..services.notification_service import NotificationDispatcher, build_email_channel
from .config import Settings, get_settings
from .database import async_session_factory, get_session

logger = logging.getLogger(__name__)


SettingsDep = Annotated[Settings, Depends(get_settings)]
SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that manages its own transaction (scheduled jobs)."""
    return async_session_factory


SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher built from settings."""
    return NotificationDispatcher(build_email_channel(get_settings()))


DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


def get_moderation_queue(session: SessionDep, settings: SettingsDep) -> ModerationQueue:
    """Get a ModerationQueue bound to the request's session."""
    return ModerationQueue(session, config=QueueConfig(app_url=settings.app_url))


ModerationQueueDep = Annotated[ModerationQueue, Depends(get_moderation_queue)]


def require_cron_secret(
    settings: SettingsDep,
    x_cron_secret: Annotated[str | None, Header()] = None,
) -> None:
    """
    Guard for scheduler-triggered endpoints.

    When CRON_SECRET is configured the caller must echo it in X-Cron-Secret.
    """
    if not settings.cron_secret:
        return

    if not x_cron_secret or not secrets.compare_digest(x_cron_secret, settings.cron_secret):
        logger.warning("Rejected job trigger with missing or invalid cron secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing cron secret",
        )


CronAuthDep = Depends(require_cron_secret)
