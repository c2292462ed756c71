"""Pydantic schemas for scheduled job triggers."""

from uuid import UUID

from pydantic import Field

from .base import PrayerBaseModel


class JobRunRequest(PrayerBaseModel):
    """Optional override of the configured threshold for one run."""

    threshold_days: int | None = Field(
        default=None,
        description="Days; falls back to the configured setting when omitted",
    )


class AutoTransitionJobResponse(PrayerBaseModel):
    processed: int
    prayer_ids: list[UUID] = []
    errors: list[str] = []


class ReminderJobResponse(PrayerBaseModel):
    processed: int
    sent: int
    skipped: int
    archived: int
    errors: list[str] = []
