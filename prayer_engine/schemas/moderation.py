"""Pydantic schemas for the admin moderation surface."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import EmailStr, Field

from ..models import (
    DeletionRequest,
    Prayer,
    PrayerUpdate,
    StatusChangeRequest,
    Subscriber,
    UpdateDeletionRequest,
)
from .base import ApprovalStatus, EntityKind, PrayerBaseModel, PrayerStatus


# =============================================================================
# ACTIONS
# =============================================================================


class ApproveRequest(PrayerBaseModel):
    """Optional body for approvals. ``status`` only applies to prayers."""

    status: PrayerStatus | None = None


class DenyRequest(PrayerBaseModel):
    """Body for denials. Blank reasons are rejected by the queue."""

    reason: str | None = Field(default=None, max_length=2000)


class StatusUpdateRequest(PrayerBaseModel):
    """Admin direct write of a prayer's status."""

    status: PrayerStatus


class SubscriptionUpdate(PrayerBaseModel):
    """Admin edit of a subscriber row."""

    email: EmailStr
    is_active: bool
    name: str | None = Field(default=None, max_length=255)


# =============================================================================
# RESULTS
# =============================================================================


class StatusTransitionResponse(PrayerBaseModel):
    prayer_id: UUID
    old_status: PrayerStatus
    new_status: PrayerStatus


class ModerationResultResponse(PrayerBaseModel):
    """Outcome of an approve or deny action."""

    id: UUID
    kind: EntityKind
    approval_status: ApprovalStatus
    deleted: bool = False
    transition: StatusTransitionResponse | None = None
    notifications_queued: int = 0


class PrayerStatusResponse(PrayerBaseModel):
    id: UUID
    status: PrayerStatus
    date_answered: datetime | None = None
    changed: bool


class SubscriberResponse(PrayerBaseModel):
    email: str
    name: str
    is_active: bool
    is_admin: bool

    @classmethod
    def from_model(cls, subscriber: Subscriber) -> "SubscriberResponse":
        return cls(
            email=subscriber.email,
            name=subscriber.name,
            is_active=subscriber.is_active,
            is_admin=subscriber.is_admin,
        )


# =============================================================================
# QUEUE READS
# =============================================================================


class PendingSummaryResponse(PrayerBaseModel):
    """Exact pending counts per kind."""

    counts: dict[str, int]
    total: int


class PendingItemResponse(PrayerBaseModel):
    """One pending queue entry, flattened across kinds."""

    id: UUID
    kind: EntityKind
    created_at: datetime
    prayer_id: UUID | None = None
    update_id: UUID | None = None
    title: str | None = None
    content: str | None = None
    display_name: str | None = None
    is_anonymous: bool | None = None
    mark_as_answered: bool | None = None
    requested_status: PrayerStatus | None = None
    reason: str | None = None

    @classmethod
    def from_model(cls, kind: EntityKind, record: Any) -> "PendingItemResponse":
        fields: dict[str, Any] = {
            "id": record.id,
            "kind": kind,
            "created_at": record.created_at,
        }

        if isinstance(record, Prayer):
            fields.update(
                prayer_id=record.id,
                title=record.title,
                content=record.description,
                display_name=record.display_requester,
                is_anonymous=record.is_anonymous,
            )
        elif isinstance(record, PrayerUpdate):
            fields.update(
                prayer_id=record.prayer_id,
                update_id=record.id,
                content=record.content,
                display_name=record.display_author,
                is_anonymous=record.is_anonymous,
                mark_as_answered=record.mark_as_answered,
            )
        elif isinstance(record, (DeletionRequest, StatusChangeRequest)):
            fields.update(
                prayer_id=record.prayer_id,
                display_name=record.requested_by,
                reason=record.reason,
            )
            if isinstance(record, StatusChangeRequest):
                fields["requested_status"] = record.requested_status.value
        elif isinstance(record, UpdateDeletionRequest):
            fields.update(
                update_id=record.update_id,
                display_name=record.requested_by,
                reason=record.reason,
            )

        return cls(**fields)
