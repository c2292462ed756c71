"""SQLAlchemy ORM Models for the prayer moderation engine."""

from datetime import datetime
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDMixin, utcnow


# Label surfaced in place of any requester/author name on anonymous submissions
ANONYMOUS_LABEL = "Anonymous"


# =============================================================================
# ENUMS
# =============================================================================


class ApprovalStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class PrayerStatus(str, PyEnum):
    CURRENT = "current"
    ONGOING = "ongoing"
    ANSWERED = "answered"
    ARCHIVED = "archived"


def _enum_column(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# MODERATED ENTITY
# =============================================================================


class ModeratedMixin(TimestampMixin):
    """Columns shared by every record that passes through the approval queue.

    approval_status only ever moves pending -> approved or pending -> denied.
    """

    approval_status: Mapped[ApprovalStatus] = mapped_column(
        _enum_column(ApprovalStatus, "approval_status"),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    denied_at: Mapped[datetime | None] = mapped_column(nullable=True)
    denial_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.approval_status == ApprovalStatus.PENDING


# =============================================================================
# PRAYERS & UPDATES
# =============================================================================


class Prayer(Base, UUIDMixin, ModeratedMixin):
    """A prayer request. Its status is meaningful only once approved."""

    __tablename__ = "prayers"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    requester: Mapped[str] = mapped_column(String(255), nullable=False)
    prayer_for: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(default=False, nullable=False)
    status: Mapped[PrayerStatus] = mapped_column(
        _enum_column(PrayerStatus, "prayer_status"),
        default=PrayerStatus.CURRENT,
        nullable=False,
    )
    date_requested: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    date_answered: Mapped[datetime | None] = mapped_column(nullable=True)
    last_reminder_sent: Mapped[datetime | None] = mapped_column(
        nullable=True,
        comment="Last time an update reminder was delivered to the requester",
    )

    updates: Mapped[list["PrayerUpdate"]] = relationship(
        back_populates="prayer",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PrayerUpdate.created_at",
    )

    __table_args__ = (
        Index("idx_prayers_status_approval", "status", "approval_status"),
    )

    @property
    def display_requester(self) -> str:
        if self.is_anonymous:
            return ANONYMOUS_LABEL
        return self.requester


class PrayerUpdate(Base, UUIDMixin, ModeratedMixin):
    """An update posted against an existing prayer."""

    __tablename__ = "prayer_updates"

    prayer_id: Mapped[UUID] = mapped_column(
        ForeignKey("prayers.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    author_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(default=False, nullable=False)
    mark_as_answered: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
        comment="Mark the parent prayer answered when this update is approved",
    )

    prayer: Mapped["Prayer"] = relationship(back_populates="updates")

    __table_args__ = (
        Index("idx_prayer_updates_prayer", "prayer_id", "approval_status", "created_at"),
    )

    @property
    def display_author(self) -> str:
        if self.is_anonymous or not (self.author or "").strip():
            return ANONYMOUS_LABEL
        return self.author


# =============================================================================
# REQUESTS AGAINST EXISTING RECORDS
# =============================================================================


class RequestMixin:
    """Who asked, how to reach them, and why."""

    requested_by: Mapped[str] = mapped_column(String(255), nullable=False)
    requested_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class DeletionRequest(Base, UUIDMixin, ModeratedMixin, RequestMixin):
    """Request to remove a prayer entirely."""

    __tablename__ = "deletion_requests"

    prayer_id: Mapped[UUID] = mapped_column(
        ForeignKey("prayers.id", ondelete="CASCADE"), nullable=False, index=True
    )

    prayer: Mapped["Prayer"] = relationship()


class StatusChangeRequest(Base, UUIDMixin, ModeratedMixin, RequestMixin):
    """Request to move a prayer to a different visible status."""

    __tablename__ = "status_change_requests"

    prayer_id: Mapped[UUID] = mapped_column(
        ForeignKey("prayers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    requested_status: Mapped[PrayerStatus] = mapped_column(
        _enum_column(PrayerStatus, "prayer_status"),
        nullable=False,
    )

    prayer: Mapped["Prayer"] = relationship()


class UpdateDeletionRequest(Base, UUIDMixin, ModeratedMixin, RequestMixin):
    """Request to remove a single prayer update."""

    __tablename__ = "update_deletion_requests"

    update_id: Mapped[UUID] = mapped_column(
        ForeignKey("prayer_updates.id", ondelete="CASCADE"), nullable=False, index=True
    )

    prayer_update: Mapped["PrayerUpdate"] = relationship()


# =============================================================================
# SUBSCRIBERS
# =============================================================================


class Subscriber(Base, UUIDMixin, TimestampMixin):
    """Email subscriber. The email column is stored trimmed and lower-cased."""

    __tablename__ = "email_subscribers"

    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(default=False, nullable=False)
    receive_admin_emails: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
        comment="Admins only: receive alerts for new items awaiting moderation",
    )
