"""Pydantic schemas for prayers, updates and user-filed requests."""

from datetime import datetime
from uuid import UUID

from pydantic import EmailStr, Field

from ..models import Prayer, PrayerUpdate
from .base import ApprovalStatus, EntityKind, PrayerBaseModel, PrayerStatus


# =============================================================================
# SUBMISSIONS
# =============================================================================


class PrayerCreate(PrayerBaseModel):
    """Schema for submitting a new prayer request."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=10_000)
    requester: str = Field(..., min_length=1, max_length=255)
    prayer_for: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    is_anonymous: bool = False


class PrayerUpdateCreate(PrayerBaseModel):
    """Schema for posting an update on an existing prayer."""

    content: str = Field(..., min_length=1, max_length=10_000)
    author: str | None = Field(default=None, max_length=255)
    author_email: EmailStr | None = None
    is_anonymous: bool = False
    mark_as_answered: bool = Field(
        default=False,
        description="Mark the prayer answered once this update is approved",
    )


class DeletionRequestCreate(PrayerBaseModel):
    """Schema for asking admins to remove a prayer or an update."""

    requested_by: str = Field(..., min_length=1, max_length=255)
    requested_email: EmailStr | None = None
    reason: str | None = Field(default=None, max_length=2000)


class StatusChangeRequestCreate(DeletionRequestCreate):
    """Schema for asking admins to change a prayer's status."""

    requested_status: PrayerStatus


class SubmissionResponse(PrayerBaseModel):
    """Acknowledgement returned for every submission."""

    id: UUID
    kind: EntityKind
    approval_status: ApprovalStatus
    message: str = "Submitted for review"


# =============================================================================
# PUBLIC READS
# =============================================================================


class PrayerUpdateResponse(PrayerBaseModel):
    """An approved update as shown to readers."""

    id: UUID
    prayer_id: UUID
    content: str
    author: str
    is_anonymous: bool
    mark_as_answered: bool
    created_at: datetime

    @classmethod
    def from_model(cls, prayer_update: PrayerUpdate) -> "PrayerUpdateResponse":
        return cls(
            id=prayer_update.id,
            prayer_id=prayer_update.prayer_id,
            content=prayer_update.content,
            author=prayer_update.display_author,
            is_anonymous=prayer_update.is_anonymous,
            mark_as_answered=prayer_update.mark_as_answered,
            created_at=prayer_update.created_at,
        )


class PrayerResponse(PrayerBaseModel):
    """An approved prayer with its approved updates, newest first."""

    id: UUID
    title: str
    description: str
    requester: str
    prayer_for: str
    is_anonymous: bool
    status: PrayerStatus
    date_requested: datetime
    date_answered: datetime | None = None
    created_at: datetime
    updates: list[PrayerUpdateResponse] = []

    @classmethod
    def from_model(cls, prayer: Prayer) -> "PrayerResponse":
        approved_updates = [
            u for u in prayer.updates
            if u.approval_status == ApprovalStatus.APPROVED.value
        ]
        approved_updates.sort(key=lambda u: u.created_at, reverse=True)
        return cls(
            id=prayer.id,
            title=prayer.title,
            description=prayer.description,
            requester=prayer.display_requester,
            prayer_for=prayer.prayer_for,
            is_anonymous=prayer.is_anonymous,
            status=prayer.status.value,
            date_requested=prayer.date_requested,
            date_answered=prayer.date_answered,
            created_at=prayer.created_at,
            updates=[PrayerUpdateResponse.from_model(u) for u in approved_updates],
        )
