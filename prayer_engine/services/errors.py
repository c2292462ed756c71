"""Exceptions raised by the moderation and lifecycle services."""


class ModerationError(Exception):
    """Base exception for moderation operations."""
    pass


class EntityNotFoundError(ModerationError):
    """The requested record does not exist."""
    pass


class StaleStateError(ModerationError):
    """The record was no longer pending when resolution was attempted.

    Another reviewer resolved it first; the caller should refresh and move on.
    """

    user_message = "This item was already handled by someone else."


class ValidationError(ModerationError):
    """Input rejected before any write was attempted."""
    pass


class NotificationDispatchError(ModerationError):
    """The notification dispatch service reported a failure.

    Logged by the dispatcher; never propagated to moderation or job callers.
    """
    pass


class DatastoreError(ModerationError):
    """The primary write could not be completed."""
    pass
