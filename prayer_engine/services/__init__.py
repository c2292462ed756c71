"""Business logic services for the prayer moderation engine."""

from .auto_transition import AutoTransitionResult, AutoTransitionScheduler
from .email_messages import OutboundEmail
from .errors import (
    DatastoreError,
    EntityNotFoundError,
    ModerationError,
    NotificationDispatchError,
    StaleStateError,
    ValidationError,
)
from .lifecycle import LifecycleEngine, StatusTransition, parse_status
from .moderation_queue import (
    EntityKind,
    ModerationOutcome,
    ModerationQueue,
    PendingSummary,
    QueueConfig,
    SubmissionOutcome,
)
from .moderation_store import ModerationStore, PrayerActivity
from .notification_service import (
    DispatchResult,
    EmailChannel,
    EmailConfig,
    HttpEmailChannel,
    LoggingEmailChannel,
    NotificationDispatcher,
    build_email_channel,
)
from .reminder_engine import (
    ReminderCandidate,
    ReminderConfig,
    ReminderEngine,
    ReminderRunResult,
)
from .subscribers import EnsureSubscribedResult, SubscriberDirectory, normalize_email

__all__ = [
    # Errors
    "ModerationError",
    "EntityNotFoundError",
    "StaleStateError",
    "ValidationError",
    "NotificationDispatchError",
    "DatastoreError",
    # Store
    "ModerationStore",
    "PrayerActivity",
    # Queue
    "ModerationQueue",
    "QueueConfig",
    "EntityKind",
    "SubmissionOutcome",
    "ModerationOutcome",
    "PendingSummary",
    # Lifecycle
    "LifecycleEngine",
    "StatusTransition",
    "parse_status",
    # Scheduled work
    "AutoTransitionScheduler",
    "AutoTransitionResult",
    "ReminderEngine",
    "ReminderConfig",
    "ReminderCandidate",
    "ReminderRunResult",
    # Subscribers
    "SubscriberDirectory",
    "EnsureSubscribedResult",
    "normalize_email",
    # Notifications
    "OutboundEmail",
    "EmailChannel",
    "EmailConfig",
    "HttpEmailChannel",
    "LoggingEmailChannel",
    "NotificationDispatcher",
    "DispatchResult",
    "build_email_channel",
]
