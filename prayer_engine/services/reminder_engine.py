"""
Activity-Based Reminder Engine: nudge requesters whose prayers went quiet.

A prayer's last activity is the later of its creation and its newest
approved update, computed at query time. Once that is older than the
configured interval the requester is asked for an update. Posting an
approved update moves last activity forward and resets the clock.

Optionally, prayers that stay silent for a further period after their
reminder are archived.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Prayer, PrayerStatus, utcnow
from .email_messages import compose_reminder
from .moderation_store import ModerationStore
from .notification_service import NotificationDispatcher


logger = logging.getLogger(__name__)

REMINDABLE_STATUSES = (PrayerStatus.CURRENT, PrayerStatus.ONGOING)


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class ReminderConfig:
    """Configuration for reminder engine behavior."""

    # Skip prayers already reminded with no activity since the last reminder
    suppress_repeat_reminders: bool = True

    # Archive current prayers this many days after a reminder nobody answered (0 disables)
    archive_after_reminder_days: int = 0

    # Link included in reminder emails
    app_url: str | None = None


DEFAULT_CONFIG = ReminderConfig()


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class ReminderCandidate:
    """A prayer whose requester is due a reminder."""
    prayer: Prayer
    last_activity: datetime
    days_inactive: int

    @property
    def prayer_id(self) -> UUID:
        return self.prayer.id

    @property
    def email(self) -> str | None:
        return self.prayer.email


@dataclass
class ReminderRunResult:
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    archived: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "skipped": self.skipped,
            "archived": self.archived,
            "errors": self.errors,
        }


# =============================================================================
# REMINDER ENGINE
# =============================================================================


class ReminderEngine:
    """
    Scans approved current/ongoing prayers for inactivity and sends reminders.

    Delivery failures never abort the batch; they are collected in the
    result next to the counts.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher,
        config: ReminderConfig = DEFAULT_CONFIG,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._store = ModerationStore(session)
        self._dispatcher = dispatcher
        self._config = config
        self._clock = clock

    async def compute_reminder_candidates(
        self,
        threshold_days: int,
        now: datetime | None = None,
    ) -> list[ReminderCandidate]:
        """Prayers whose last activity is more than ``threshold_days`` old."""
        if threshold_days <= 0:
            return []

        now = now or self._clock()
        threshold = timedelta(days=threshold_days)

        candidates = []
        for activity in await self._store.active_prayers_with_latest_update(REMINDABLE_STATUSES):
            last_activity = activity.last_activity
            if now - last_activity <= threshold:
                continue

            last_reminder = activity.prayer.last_reminder_sent
            if (
                self._config.suppress_repeat_reminders
                and last_reminder is not None
                and last_activity <= last_reminder
            ):
                continue

            candidates.append(ReminderCandidate(
                prayer=activity.prayer,
                last_activity=last_activity,
                days_inactive=(now - last_activity).days,
            ))

        return candidates

    async def send_reminders(self, threshold_days: int) -> ReminderRunResult:
        """
        Send one reminder per candidate, to the requester only.

        Candidates without an email are skipped. ``last_reminder_sent`` is
        stamped and committed right after each successful delivery, so an
        aborted run never forgets a reminder that already went out.
        """
        result = ReminderRunResult()
        now = self._clock()

        candidates = await self.compute_reminder_candidates(threshold_days, now=now)
        result.processed = len(candidates)
        # No transaction stays open while emails are in flight
        await self._store.commit()

        for candidate in candidates:
            prayer = candidate.prayer
            if not prayer.email:
                logger.info(f"Skipping reminder for prayer {prayer.id}: no email address")
                result.skipped += 1
                continue

            try:
                email = compose_reminder(
                    prayer,
                    candidate.days_inactive,
                    app_url=self._config.app_url,
                )
                dispatch = await self._dispatcher.deliver(email)
            except Exception as e:
                logger.error(f"Unexpected error sending reminder for prayer {prayer.id}: {e}")
                result.errors.append(f"Prayer {prayer.id}: {e}")
                continue

            if not dispatch.success:
                result.errors.append(f"Prayer {prayer.id}: {dispatch.error}")
                continue

            prayer.last_reminder_sent = now
            await self._store.commit()
            result.sent += 1
            logger.info(f"Sent reminder for prayer {prayer.id}: {prayer.title}")

        if self._config.archive_after_reminder_days > 0:
            result.archived = await self.archive_unanswered(now)

        return result

    async def archive_unanswered(self, now: datetime | None = None) -> int:
        """Archive current prayers whose reminder went unanswered for too long."""
        days = self._config.archive_after_reminder_days
        if days <= 0:
            return 0

        now = now or self._clock()
        cutoff = now - timedelta(days=days)

        to_archive = []
        for prayer in await self._store.prayers_reminded_before(cutoff):
            if not await self._store.has_approved_update_since(prayer.id, prayer.last_reminder_sent):
                to_archive.append(prayer.id)

        if not to_archive:
            return 0

        archived = len(await self._store.bulk_set_status(
            to_archive,
            from_status=PrayerStatus.CURRENT,
            to_status=PrayerStatus.ARCHIVED,
        ))
        logger.info(f"Archived {archived} prayer(s) with no update {days} days after their reminder")
        return archived
