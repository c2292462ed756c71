"""SQLAlchemy ORM Models for the prayer moderation engine."""

from .base import Base, TimestampMixin, UTCDateTime, UUIDMixin, utcnow
from .models import (
    # Constants
    ANONYMOUS_LABEL,
    # Enums
    ApprovalStatus,
    PrayerStatus,
    # Mixins
    ModeratedMixin,
    RequestMixin,
    # Prayers
    Prayer,
    PrayerUpdate,
    # Requests
    DeletionRequest,
    StatusChangeRequest,
    UpdateDeletionRequest,
    # Subscribers
    Subscriber,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "UTCDateTime",
    "utcnow",
    # Constants
    "ANONYMOUS_LABEL",
    # Enums
    "ApprovalStatus",
    "PrayerStatus",
    # Mixins
    "ModeratedMixin",
    "RequestMixin",
    # Prayers
    "Prayer",
    "PrayerUpdate",
    # Requests
    "DeletionRequest",
    "StatusChangeRequest",
    "UpdateDeletionRequest",
    # Subscribers
    "Subscriber",
]
