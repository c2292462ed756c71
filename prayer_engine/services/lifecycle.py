"""
Lifecycle Status Engine: visible status of approved prayers.

Rules:
1. Only ``current``, ``ongoing``, ``answered`` and ``archived`` are valid.
2. ``date_answered`` is set exactly when the status is ``answered``.
3. An approved update flagged ``mark_as_answered`` answers its prayer.
4. An approved update on an answered or archived prayer without the flag
   brings the prayer back to ``current``.
5. Nothing ever moves a prayer to ``ongoing`` automatically.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from ..models import Prayer, PrayerStatus, PrayerUpdate, utcnow
from .errors import ValidationError


logger = logging.getLogger(__name__)

REOPENABLE_STATUSES = frozenset({PrayerStatus.ANSWERED, PrayerStatus.ARCHIVED})


@dataclass
class StatusTransition:
    """A status change that was written to a prayer."""
    prayer_id: UUID
    old_status: PrayerStatus
    new_status: PrayerStatus


def parse_status(value: PrayerStatus | str) -> PrayerStatus:
    """Coerce user input to a PrayerStatus or raise ValidationError."""
    if isinstance(value, PrayerStatus):
        return value
    try:
        return PrayerStatus(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(s.value for s in PrayerStatus)
        raise ValidationError(f"Invalid prayer status '{value}'. Expected one of: {valid}")


class LifecycleEngine:
    """Applies status rules to loaded Prayer rows; the caller owns the transaction."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def set_status(
        self,
        prayer: Prayer,
        status: PrayerStatus | str,
    ) -> StatusTransition | None:
        """
        Write ``status`` onto the prayer, keeping ``date_answered`` consistent.

        Returns None when the prayer already had that status.
        """
        new_status = parse_status(status)
        old_status = prayer.status

        if new_status == PrayerStatus.ANSWERED:
            prayer.date_answered = self._clock()
        else:
            prayer.date_answered = None

        if new_status == old_status:
            return None

        prayer.status = new_status
        logger.info(f"Prayer {prayer.id} status {old_status.value} -> {new_status.value}")
        return StatusTransition(
            prayer_id=prayer.id,
            old_status=old_status,
            new_status=new_status,
        )

    def apply_approval(
        self,
        prayer: Prayer,
        status: PrayerStatus | str | None = None,
    ) -> StatusTransition | None:
        """Status consequences of approving a prayer (optional admin-chosen status)."""
        if status is not None:
            return self.set_status(prayer, status)
        # Submissions always arrive as current; keep the answered-date rule intact.
        return self.set_status(prayer, prayer.status or PrayerStatus.CURRENT)

    def apply_update_approval(
        self,
        parent: Prayer,
        prayer_update: PrayerUpdate,
    ) -> StatusTransition | None:
        """Status consequences on the parent prayer of approving one of its updates."""
        if prayer_update.mark_as_answered:
            return self.set_status(parent, PrayerStatus.ANSWERED)

        if parent.status in REOPENABLE_STATUSES:
            return self.set_status(parent, PrayerStatus.CURRENT)

        return None
