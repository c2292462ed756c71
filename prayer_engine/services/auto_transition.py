"""
Auto-Transition Scheduler: archive prayers that have aged out.

Aging is measured from when the prayer was created, never from its last
activity. A threshold of zero (or less) disables the scheduler. Nobody is
notified about automatic archiving.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import PrayerStatus, utcnow
from .moderation_store import ModerationStore


logger = logging.getLogger(__name__)


@dataclass
class AutoTransitionResult:
    processed: int = 0
    prayer_ids: list[UUID] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "prayer_ids": [str(pid) for pid in self.prayer_ids],
            "errors": self.errors,
        }


class AutoTransitionScheduler:
    """Moves stale ``current`` prayers to ``archived`` in one conditional bulk update."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._store = ModerationStore(session)
        self._clock = clock

    async def run_once(self, threshold_days: int) -> AutoTransitionResult:
        """
        Archive approved ``current`` prayers created more than ``threshold_days`` ago.

        The bulk update re-checks ``status = current``, so a prayer changed by
        an admin between the scan and the write is left alone and two
        overlapping runs archive each prayer once. DatastoreError propagates.
        """
        result = AutoTransitionResult()
        if threshold_days <= 0:
            logger.debug("Auto-transition disabled (threshold_days <= 0)")
            return result

        cutoff = self._clock() - timedelta(days=threshold_days)

        candidate_ids = await self._store.select_ids_for_auto_archive(cutoff)
        if not candidate_ids:
            logger.info("Auto-transition: no prayers to archive")
            return result

        archived_ids = await self._store.bulk_set_status(
            candidate_ids,
            from_status=PrayerStatus.CURRENT,
            to_status=PrayerStatus.ARCHIVED,
        )

        result.processed = len(archived_ids)
        result.prayer_ids = archived_ids
        if result.processed != len(candidate_ids):
            logger.info(
                f"Auto-transition: {len(candidate_ids) - result.processed} prayer(s) changed "
                "status before they could be archived"
            )
        logger.info(f"Auto-transition archived {result.processed} prayer(s) older than {threshold_days} days")
        return result
