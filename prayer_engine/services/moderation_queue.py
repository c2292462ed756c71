"""
Moderation Queue: intake and admin resolution of everything users submit.

Key responsibilities:
1. Accept new prayers, updates and change requests as pending records
2. Approve or deny pending records exactly once (compare-and-swap)
3. Apply the lifecycle consequences of an approval in the same transaction
4. Compose, but never send, the notifications each step produces

The caller commits the session and only then hands ``notifications`` to the
NotificationDispatcher. A failed email therefore can never roll back a
moderation decision.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    ApprovalStatus,
    DeletionRequest,
    ModeratedMixin,
    Prayer,
    PrayerStatus,
    PrayerUpdate,
    StatusChangeRequest,
    UpdateDeletionRequest,
    utcnow,
)
from .email_messages import (
    OutboundEmail,
    compose_admin_alert,
    compose_prayer_broadcast,
    compose_prayer_denial,
    compose_request_result,
    compose_requester_confirmation,
    compose_update_broadcast,
    compose_update_denial,
    status_label,
)
from .errors import DatastoreError, ValidationError
from .lifecycle import LifecycleEngine, StatusTransition, parse_status
from .moderation_store import ModerationStore
from .subscribers import EnsureSubscribedResult, SubscriberDirectory, normalize_email


logger = logging.getLogger(__name__)


# =============================================================================
# KINDS
# =============================================================================


class EntityKind(str, Enum):
    PRAYER = "prayer"
    UPDATE = "update"
    DELETION_REQUEST = "deletion_request"
    STATUS_CHANGE_REQUEST = "status_change_request"
    UPDATE_DELETION_REQUEST = "update_deletion_request"


MODEL_FOR_KIND: dict[EntityKind, type[ModeratedMixin]] = {
    EntityKind.PRAYER: Prayer,
    EntityKind.UPDATE: PrayerUpdate,
    EntityKind.DELETION_REQUEST: DeletionRequest,
    EntityKind.STATUS_CHANGE_REQUEST: StatusChangeRequest,
    EntityKind.UPDATE_DELETION_REQUEST: UpdateDeletionRequest,
}


def parse_kind(value: EntityKind | str) -> EntityKind:
    if isinstance(value, EntityKind):
        return value
    try:
        return EntityKind(value)
    except ValueError:
        valid = ", ".join(k.value for k in EntityKind)
        raise ValidationError(f"Unknown moderation kind '{value}'. Expected one of: {valid}")


# =============================================================================
# CONFIGURATION & RESULTS
# =============================================================================


@dataclass
class QueueConfig:
    """Configuration for moderation queue behavior."""

    # Link included in outgoing emails
    app_url: str | None = None


DEFAULT_CONFIG = QueueConfig()


@dataclass
class SubmissionOutcome:
    """A freshly created pending record plus the admin alerts it triggers."""
    kind: EntityKind
    record: Any
    notifications: list[OutboundEmail] = field(default_factory=list)
    subscription: EnsureSubscribedResult | None = None


@dataclass
class ModerationOutcome:
    """Result of approving or denying one queue entry."""
    kind: EntityKind
    entity_id: UUID
    approved: bool
    record: Any
    transition: StatusTransition | None = None
    deleted: bool = False
    notifications: list[OutboundEmail] = field(default_factory=list)


@dataclass
class PendingSummary:
    """Exact pending counts per kind."""
    counts: dict[EntityKind, int]

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def _required(value: str | None, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field_name} is required")
    return cleaned


def _optional_email(value: str | None) -> str | None:
    normalized = normalize_email(value)
    if not normalized:
        return None
    if "@" not in normalized:
        raise ValidationError(f"Invalid email address '{value}'")
    return normalized


def _optional_text(value: str | None) -> str | None:
    cleaned = (value or "").strip()
    return cleaned or None


# =============================================================================
# MODERATION QUEUE
# =============================================================================


class ModerationQueue:
    """
    Entry point for submissions and admin decisions.

    All writes go through ModerationStore on the session passed in; the
    session's owner decides when to commit.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: QueueConfig = DEFAULT_CONFIG,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._config = config
        self._clock = clock
        self._store = ModerationStore(session)
        self._subscribers = SubscriberDirectory(session)
        self._lifecycle = LifecycleEngine(clock)

    @property
    def store(self) -> ModerationStore:
        return self._store

    async def commit(self) -> None:
        """Commit the session. Notifications are dispatched only after this."""
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Commit failed: {e}")
            raise DatastoreError(f"commit failed: {e}") from e

    # =========================================================================
    # SUBMISSIONS
    # =========================================================================

    async def submit_prayer(
        self,
        title: str,
        requester: str,
        prayer_for: str,
        description: str = "",
        email: str | None = None,
        is_anonymous: bool = False,
    ) -> SubmissionOutcome:
        """Create a pending prayer, auto-subscribe the requester, alert admins."""
        prayer = Prayer(
            title=_required(title, "title"),
            requester=_required(requester, "requester"),
            prayer_for=_required(prayer_for, "prayer_for"),
            description=(description or "").strip(),
            email=_optional_email(email),
            is_anonymous=is_anonymous,
            status=PrayerStatus.CURRENT,
            approval_status=ApprovalStatus.PENDING,
            date_requested=self._clock(),
        )
        await self._store.add(prayer)
        logger.info(f"Prayer {prayer.id} submitted for review")

        subscription = None
        if prayer.email:
            subscription = await self._subscribers.ensure_subscribed(
                prayer.email, prayer.requester
            )

        alert = await self._admin_alert(
            EntityKind.PRAYER,
            prayer.title,
            [
                f"For: {prayer.prayer_for}",
                f"Requested by: {prayer.display_requester}",
                f"Description: {prayer.description}",
            ],
        )
        return SubmissionOutcome(
            kind=EntityKind.PRAYER,
            record=prayer,
            notifications=alert,
            subscription=subscription,
        )

    async def submit_update(
        self,
        prayer_id: UUID,
        content: str,
        author: str | None = None,
        author_email: str | None = None,
        is_anonymous: bool = False,
        mark_as_answered: bool = False,
    ) -> SubmissionOutcome:
        """Create a pending update against an existing prayer."""
        cleaned_content = _required(content, "content")
        cleaned_author = (author or "").strip()
        if not cleaned_author and not is_anonymous:
            raise ValidationError("author is required unless the update is anonymous")
        email = _optional_email(author_email)

        prayer = await self._store.get(Prayer, prayer_id)

        prayer_update = PrayerUpdate(
            prayer_id=prayer.id,
            content=cleaned_content,
            author=cleaned_author,
            author_email=email,
            is_anonymous=is_anonymous,
            mark_as_answered=mark_as_answered,
            approval_status=ApprovalStatus.PENDING,
        )
        await self._store.add(prayer_update)
        logger.info(f"Update {prayer_update.id} on prayer {prayer.id} submitted for review")

        lines = [f"Update by: {prayer_update.display_author}", f"Content: {cleaned_content}"]
        if mark_as_answered:
            lines.append("Marks the prayer as answered")
        alert = await self._admin_alert(EntityKind.UPDATE, prayer.title, lines)
        return SubmissionOutcome(kind=EntityKind.UPDATE, record=prayer_update, notifications=alert)

    async def submit_deletion_request(
        self,
        prayer_id: UUID,
        requested_by: str,
        reason: str | None = None,
        requested_email: str | None = None,
    ) -> SubmissionOutcome:
        """Ask admins to delete a prayer."""
        name = _required(requested_by, "requested_by")
        email = _optional_email(requested_email)
        prayer = await self._store.get(Prayer, prayer_id)

        request = DeletionRequest(
            prayer_id=prayer.id,
            requested_by=name,
            requested_email=email,
            reason=_optional_text(reason),
            approval_status=ApprovalStatus.PENDING,
        )
        await self._store.add(request)
        logger.info(f"Deletion request {request.id} for prayer {prayer.id} submitted")

        alert = await self._admin_alert(
            EntityKind.DELETION_REQUEST,
            prayer.title,
            [f"Requested by: {name}", f"Reason: {request.reason or 'No reason given'}"],
        )
        return SubmissionOutcome(kind=EntityKind.DELETION_REQUEST, record=request, notifications=alert)

    async def submit_status_change_request(
        self,
        prayer_id: UUID,
        requested_status: PrayerStatus | str,
        requested_by: str,
        reason: str | None = None,
        requested_email: str | None = None,
    ) -> SubmissionOutcome:
        """Ask admins to move a prayer to another status."""
        status = parse_status(requested_status)
        name = _required(requested_by, "requested_by")
        email = _optional_email(requested_email)
        prayer = await self._store.get(Prayer, prayer_id)

        request = StatusChangeRequest(
            prayer_id=prayer.id,
            requested_status=status,
            requested_by=name,
            requested_email=email,
            reason=_optional_text(reason),
            approval_status=ApprovalStatus.PENDING,
        )
        await self._store.add(request)
        logger.info(f"Status change request {request.id} for prayer {prayer.id} submitted")

        alert = await self._admin_alert(
            EntityKind.STATUS_CHANGE_REQUEST,
            prayer.title,
            [
                f"Requested by: {name}",
                f"Current status: {status_label(prayer.status)}",
                f"Requested status: {status_label(status)}",
                f"Reason: {request.reason or 'No reason given'}",
            ],
        )
        return SubmissionOutcome(
            kind=EntityKind.STATUS_CHANGE_REQUEST, record=request, notifications=alert
        )

    async def submit_update_deletion_request(
        self,
        update_id: UUID,
        requested_by: str,
        reason: str | None = None,
        requested_email: str | None = None,
    ) -> SubmissionOutcome:
        """Ask admins to delete a single update."""
        name = _required(requested_by, "requested_by")
        email = _optional_email(requested_email)
        prayer_update = await self._store.get(PrayerUpdate, update_id)
        prayer = await self._store.get(Prayer, prayer_update.prayer_id)

        request = UpdateDeletionRequest(
            update_id=prayer_update.id,
            requested_by=name,
            requested_email=email,
            reason=_optional_text(reason),
            approval_status=ApprovalStatus.PENDING,
        )
        await self._store.add(request)
        logger.info(f"Update deletion request {request.id} for update {prayer_update.id} submitted")

        alert = await self._admin_alert(
            EntityKind.UPDATE_DELETION_REQUEST,
            prayer.title,
            [
                f"Requested by: {name}",
                f"Update: {prayer_update.content}",
                f"Reason: {request.reason or 'No reason given'}",
            ],
        )
        return SubmissionOutcome(
            kind=EntityKind.UPDATE_DELETION_REQUEST, record=request, notifications=alert
        )

    async def _admin_alert(
        self,
        kind: EntityKind,
        prayer_title: str,
        summary_lines: list[str],
    ) -> list[OutboundEmail]:
        recipients = await self._subscribers.admin_recipients()
        if not recipients:
            logger.debug(f"No admin recipients for {kind.value} alert")
            return []
        return [
            compose_admin_alert(
                kind.value,
                prayer_title,
                summary_lines,
                recipients,
                app_url=self._config.app_url,
            )
        ]

    # =========================================================================
    # APPROVAL
    # =========================================================================

    async def approve(
        self,
        kind: EntityKind | str,
        entity_id: UUID,
        status: PrayerStatus | str | None = None,
    ) -> ModerationOutcome:
        """
        Approve a pending record and apply its consequences.

        ``status`` optionally sets the visible status of an approved prayer.
        Raises StaleStateError if the record was already resolved.
        """
        kind = parse_kind(kind)
        if status is not None:
            if kind != EntityKind.PRAYER:
                raise ValidationError("A status can only be chosen when approving a prayer")
            status = parse_status(status)

        record = await self._store.resolve(
            MODEL_FOR_KIND[kind], entity_id, approve=True, now=self._clock()
        )
        outcome = ModerationOutcome(kind=kind, entity_id=entity_id, approved=True, record=record)

        if kind == EntityKind.PRAYER:
            await self._on_prayer_approved(record, status, outcome)
        elif kind == EntityKind.UPDATE:
            await self._on_update_approved(record, outcome)
        elif kind == EntityKind.STATUS_CHANGE_REQUEST:
            await self._on_status_change_approved(record, outcome)
        elif kind == EntityKind.DELETION_REQUEST:
            await self._on_deletion_approved(record, outcome)
        elif kind == EntityKind.UPDATE_DELETION_REQUEST:
            await self._on_update_deletion_approved(record, outcome)

        await self._session.flush()
        logger.info(f"Approved {kind.value} {entity_id}")
        return outcome

    async def _on_prayer_approved(
        self,
        prayer: Prayer,
        status: PrayerStatus | None,
        outcome: ModerationOutcome,
    ) -> None:
        outcome.transition = self._lifecycle.apply_approval(prayer, status)

        recipients = await self._subscribers.broadcast_recipients()
        if recipients:
            outcome.notifications.append(
                compose_prayer_broadcast(prayer, recipients, app_url=self._config.app_url)
            )
        confirmation = compose_requester_confirmation(prayer, app_url=self._config.app_url)
        if confirmation:
            outcome.notifications.append(confirmation)

    async def _on_update_approved(self, prayer_update: PrayerUpdate, outcome: ModerationOutcome) -> None:
        parent = await self._store.get(Prayer, prayer_update.prayer_id)
        outcome.transition = self._lifecycle.apply_update_approval(parent, prayer_update)

        # Updates on prayers still awaiting review are not announced
        if parent.approval_status != ApprovalStatus.APPROVED:
            return

        recipients = await self._subscribers.broadcast_recipients()
        if recipients:
            outcome.notifications.append(
                compose_update_broadcast(parent, prayer_update, recipients, app_url=self._config.app_url)
            )

    async def _on_status_change_approved(
        self,
        request: StatusChangeRequest,
        outcome: ModerationOutcome,
    ) -> None:
        prayer = await self._store.get(Prayer, request.prayer_id)
        outcome.transition = self._lifecycle.set_status(prayer, request.requested_status)

        result = compose_request_result(
            EntityKind.STATUS_CHANGE_REQUEST.value,
            request.requested_email,
            request.requested_by,
            prayer.title,
            approved=True,
            detail=f"The prayer is now marked {status_label(prayer.status)}.",
            app_url=self._config.app_url,
        )
        if result:
            outcome.notifications.append(result)

    async def _on_deletion_approved(self, request: DeletionRequest, outcome: ModerationOutcome) -> None:
        # Read everything needed for the email before the cascade removes it
        prayer = await self._store.get(Prayer, request.prayer_id)
        title = prayer.title
        email, requested_by = request.requested_email, request.requested_by

        outcome.deleted = await self._store.delete(Prayer, prayer.id)
        logger.info(f"Deleted prayer {request.prayer_id} via deletion request {request.id}")

        result = compose_request_result(
            EntityKind.DELETION_REQUEST.value,
            email,
            requested_by,
            title,
            approved=True,
            detail="The prayer has been removed.",
            app_url=self._config.app_url,
        )
        if result:
            outcome.notifications.append(result)

    async def _on_update_deletion_approved(
        self,
        request: UpdateDeletionRequest,
        outcome: ModerationOutcome,
    ) -> None:
        prayer_update = await self._store.get(PrayerUpdate, request.update_id)
        prayer = await self._store.get(Prayer, prayer_update.prayer_id)
        title = prayer.title
        email, requested_by = request.requested_email, request.requested_by

        outcome.deleted = await self._store.delete(PrayerUpdate, prayer_update.id)
        logger.info(f"Deleted update {request.update_id} via deletion request {request.id}")

        result = compose_request_result(
            EntityKind.UPDATE_DELETION_REQUEST.value,
            email,
            requested_by,
            title,
            approved=True,
            detail="The update has been removed.",
            app_url=self._config.app_url,
        )
        if result:
            outcome.notifications.append(result)

    # =========================================================================
    # DENIAL
    # =========================================================================

    async def deny(
        self,
        kind: EntityKind | str,
        entity_id: UUID,
        reason: str | None,
    ) -> ModerationOutcome:
        """
        Deny a pending record.

        A non-blank reason is mandatory and checked before anything is written.
        The submitter is told why when an email address is on file.
        """
        kind = parse_kind(kind)
        cleaned_reason = (reason or "").strip()
        if not cleaned_reason:
            raise ValidationError("A reason is required to deny a submission")

        record = await self._store.resolve(
            MODEL_FOR_KIND[kind],
            entity_id,
            approve=False,
            now=self._clock(),
            reason=cleaned_reason,
        )
        outcome = ModerationOutcome(kind=kind, entity_id=entity_id, approved=False, record=record)

        message = await self._denial_message(kind, record, cleaned_reason)
        if message:
            outcome.notifications.append(message)
        else:
            logger.debug(f"No email on file for denied {kind.value} {entity_id}")

        logger.info(f"Denied {kind.value} {entity_id}")
        return outcome

    async def _denial_message(
        self,
        kind: EntityKind,
        record: Any,
        reason: str,
    ) -> OutboundEmail | None:
        if kind == EntityKind.PRAYER:
            return compose_prayer_denial(record, reason)

        if kind == EntityKind.UPDATE:
            prayer = await self._store.get(Prayer, record.prayer_id)
            return compose_update_denial(prayer, record, reason)

        if kind == EntityKind.UPDATE_DELETION_REQUEST:
            prayer_update = await self._store.get(PrayerUpdate, record.update_id)
            prayer_id = prayer_update.prayer_id
        else:
            prayer_id = record.prayer_id
        prayer = await self._store.get(Prayer, prayer_id)

        return compose_request_result(
            kind.value,
            record.requested_email,
            record.requested_by,
            prayer.title,
            approved=False,
            detail=f"Reason: {reason}",
            app_url=self._config.app_url,
        )

    # =========================================================================
    # ADMIN DIRECT WRITES
    # =========================================================================

    async def set_prayer_status(
        self,
        prayer_id: UUID,
        status: PrayerStatus | str,
    ) -> tuple[Prayer, StatusTransition | None]:
        """Admin edit of a prayer's visible status, outside the request flow."""
        new_status = parse_status(status)
        prayer = await self._store.get(Prayer, prayer_id)
        transition = self._lifecycle.set_status(prayer, new_status)
        await self._session.flush()
        return prayer, transition

    # =========================================================================
    # QUEUE READS
    # =========================================================================

    async def pending_summary(self) -> PendingSummary:
        counts = {}
        for kind, model in MODEL_FOR_KIND.items():
            counts[kind] = await self._store.count_pending(model)
        return PendingSummary(counts=counts)

    async def list_pending(self, kind: EntityKind | str, limit: int | None = None) -> list[Any]:
        kind = parse_kind(kind)
        return await self._store.list_pending(MODEL_FOR_KIND[kind], limit=limit)
