"""
Subscriber Consolidation: one directory row per email address.

Both the prayer submission path and the admin edit path normalise the
address the same way and either insert or leave the existing row alone.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Subscriber
from .errors import DatastoreError, ValidationError


logger = logging.getLogger(__name__)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


@dataclass
class EnsureSubscribedResult:
    email: str
    created: bool
    error: str | None = None


class SubscriberDirectory:
    """Lookups and upserts against the email_subscribers table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_email(self, email: str) -> Subscriber | None:
        normalized = normalize_email(email)
        if not normalized:
            return None
        result = await self._session.execute(
            select(Subscriber).where(Subscriber.email == normalized)
        )
        return result.scalar_one_or_none()

    async def ensure_subscribed(self, email: str | None, name: str | None = None) -> EnsureSubscribedResult:
        """
        Make sure ``email`` has a subscriber row.

        An existing row is left exactly as it is, including is_active and
        is_admin. Failures are logged and reported in the result, never raised:
        the write runs inside a SAVEPOINT so the caller's transaction survives.
        """
        normalized = normalize_email(email)
        if not normalized:
            return EnsureSubscribedResult(email="", created=False)

        try:
            async with self._session.begin_nested():
                existing = await self._session.execute(
                    select(Subscriber.id).where(Subscriber.email == normalized)
                )
                if existing.scalar_one_or_none() is not None:
                    return EnsureSubscribedResult(email=normalized, created=False)

                self._session.add(Subscriber(
                    email=normalized,
                    name=(name or "").strip(),
                    is_active=True,
                    is_admin=False,
                ))
        except Exception as e:
            # Includes the unique-constraint race with a concurrent submission
            logger.warning(f"Auto-subscribe failed for {normalized}: {e}")
            return EnsureSubscribedResult(email=normalized, created=False, error=str(e))

        logger.info(f"Auto-subscribed {normalized}")
        return EnsureSubscribedResult(email=normalized, created=True)

    async def set_subscription(
        self,
        email: str,
        is_active: bool,
        name: str | None = None,
    ) -> Subscriber:
        """Administrative edit: create or update a subscriber's active flag and name."""
        normalized = normalize_email(email)
        if not normalized or "@" not in normalized:
            raise ValidationError("A valid email address is required")

        try:
            subscriber = await self.get_by_email(normalized)
            if subscriber is None:
                subscriber = Subscriber(
                    email=normalized,
                    name=(name or "").strip(),
                    is_active=is_active,
                    is_admin=False,
                )
                self._session.add(subscriber)
            else:
                subscriber.is_active = is_active
                if name is not None:
                    subscriber.name = name.strip()
            await self._session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update subscription for {normalized}: {e}")
            raise DatastoreError(f"update subscription failed: {e}") from e

        return subscriber

    # =========================================================================
    # RECIPIENT LISTS
    # =========================================================================

    async def broadcast_recipients(self) -> list[str]:
        """Every active subscriber."""
        result = await self._session.execute(
            select(Subscriber.email)
            .where(Subscriber.is_active.is_(True))
            .order_by(Subscriber.email)
        )
        return list(result.scalars().all())

    async def admin_recipients(self) -> list[str]:
        """Active admins who opted into moderation alerts."""
        result = await self._session.execute(
            select(Subscriber.email)
            .where(
                Subscriber.is_active.is_(True),
                Subscriber.is_admin.is_(True),
                Subscriber.receive_admin_emails.is_(True),
            )
            .order_by(Subscriber.email)
        )
        return list(result.scalars().all())
