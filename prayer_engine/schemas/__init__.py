"""Prayer Engine API Schemas.

Schemas are organized by domain:
- base: Common types, enums, errors
- prayers: Submissions and public reads
- moderation: Admin queue actions and reads
- jobs: Scheduled job triggers
"""

from .base import (
    # Enums
    ApprovalStatus,
    EntityKind,
    PrayerStatus,
    # Base classes
    PrayerBaseModel,
    TimestampMixin,
    # Errors
    ErrorDetail,
    ErrorResponse,
)
from .jobs import AutoTransitionJobResponse, JobRunRequest, ReminderJobResponse
from .moderation import (
    ApproveRequest,
    DenyRequest,
    ModerationResultResponse,
    PendingItemResponse,
    PendingSummaryResponse,
    PrayerStatusResponse,
    StatusTransitionResponse,
    StatusUpdateRequest,
    SubscriberResponse,
    SubscriptionUpdate,
)
from .prayers import (
    DeletionRequestCreate,
    PrayerCreate,
    PrayerResponse,
    PrayerUpdateCreate,
    PrayerUpdateResponse,
    StatusChangeRequestCreate,
    SubmissionResponse,
)

__all__ = [
    # Base
    "ApprovalStatus",
    "EntityKind",
    "PrayerStatus",
    "PrayerBaseModel",
    "TimestampMixin",
    "ErrorDetail",
    "ErrorResponse",
    # Prayers
    "PrayerCreate",
    "PrayerUpdateCreate",
    "DeletionRequestCreate",
    "StatusChangeRequestCreate",
    "SubmissionResponse",
    "PrayerResponse",
    "PrayerUpdateResponse",
    # Moderation
    "ApproveRequest",
    "DenyRequest",
    "StatusUpdateRequest",
    "SubscriptionUpdate",
    "StatusTransitionResponse",
    "ModerationResultResponse",
    "PrayerStatusResponse",
    "SubscriberResponse",
    "PendingSummaryResponse",
    "PendingItemResponse",
    # Jobs
    "JobRunRequest",
    "AutoTransitionJobResponse",
    "ReminderJobResponse",
]
