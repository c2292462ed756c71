"""Base schemas and common types for the prayer engine API."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


# =============================================================================
# ENUMS (Mirror database enums)
# =============================================================================


class ApprovalStatus(str, Enum):
    """Moderation state of a submission."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class PrayerStatus(str, Enum):
    """Visible status of an approved prayer."""

    CURRENT = "current"
    ONGOING = "ongoing"
    ANSWERED = "answered"
    ARCHIVED = "archived"


class EntityKind(str, Enum):
    """Kinds of records that pass through the moderation queue."""

    PRAYER = "prayer"
    UPDATE = "update"
    DELETION_REQUEST = "deletion_request"
    STATUS_CHANGE_REQUEST = "status_change_request"
    UPDATE_DELETION_REQUEST = "update_deletion_request"


# =============================================================================
# BASE SCHEMAS
# =============================================================================


class PrayerBaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode
        populate_by_name=True,
        use_enum_values=True,
    )


class TimestampMixin(BaseModel):
    """Mixin for created/updated timestamps."""

    created_at: datetime
    updated_at: datetime | None = None


# =============================================================================
# ERROR RESPONSES
# =============================================================================


class ErrorDetail(PrayerBaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str


class ErrorResponse(PrayerBaseModel):
    """Standard error response format."""

    error: str
    message: str
    details: list[ErrorDetail] = []
