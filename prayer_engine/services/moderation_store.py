"""
Moderation Store: persistence contract for records with an approval lifecycle.

Every record that passes through moderation (prayers, updates, deletion
requests, status-change requests) is read and written through this class.

Concurrency control:
- Resolution is a single conditional UPDATE guarded by
  ``approval_status = 'pending'``. The datastore rejects the second of two
  concurrent resolvers; no application-level locking is involved.
- Bulk status writes re-check their source status at write time, so
  overlapping scheduled runs only ever do redundant no-op work.
"""

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import (
    ApprovalStatus,
    ModeratedMixin,
    Prayer,
    PrayerStatus,
    PrayerUpdate,
)
from .errors import DatastoreError, EntityNotFoundError, StaleStateError


logger = logging.getLogger(__name__)

ModeratedT = TypeVar("ModeratedT", bound=ModeratedMixin)


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class PrayerActivity:
    """An approved prayer paired with the creation time of its newest approved update."""
    prayer: Prayer
    latest_update_at: datetime | None

    @property
    def last_activity(self) -> datetime:
        if self.latest_update_at is None:
            return self.prayer.created_at
        return max(self.prayer.created_at, self.latest_update_at)


# =============================================================================
# MODERATION STORE
# =============================================================================


class ModerationStore:
    """Typed access to moderated records on top of an AsyncSession."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    @asynccontextmanager
    async def _translate_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"Datastore failure during {operation}: {e}")
            raise DatastoreError(f"{operation} failed: {e}") from e

    # =========================================================================
    # BASIC ACCESS
    # =========================================================================

    async def add(self, entity: ModeratedT) -> ModeratedT:
        """Insert a new record and flush so its id and defaults are populated."""
        async with self._translate_errors(f"insert {type(entity).__name__}"):
            self._session.add(entity)
            await self._session.flush()
        return entity

    async def get(
        self,
        model: type[ModeratedT],
        entity_id: UUID,
        refresh: bool = False,
    ) -> ModeratedT:
        """Get a record by id or raise EntityNotFoundError."""
        async with self._translate_errors(f"load {model.__name__}"):
            entity = await self._session.get(model, entity_id, populate_existing=refresh)

        if entity is None:
            raise EntityNotFoundError(f"{model.__name__} {entity_id} not found")

        return entity

    async def delete(self, model: type[ModeratedT], entity_id: UUID) -> bool:
        """Destructively delete a record. Dependent rows go with it (ON DELETE CASCADE)."""
        async with self._translate_errors(f"delete {model.__name__}"):
            await self._session.flush()
            result = await self._session.execute(
                delete(model)
                .where(model.id == entity_id)
                .execution_options(synchronize_session=False)
            )

        if result.rowcount:
            self._forget(model, entity_id)
        return result.rowcount > 0

    async def commit(self) -> None:
        """Commit whatever the session holds so far."""
        async with self._translate_errors("commit"):
            await self._session.commit()

    def _forget(self, model: type[ModeratedT], entity_id: UUID) -> None:
        # Deleted rows must not linger in the identity map
        for obj in list(self._session.identity_map.values()):
            if isinstance(obj, model) and obj.id == entity_id:
                self._session.expunge(obj)

    # =========================================================================
    # RESOLUTION (COMPARE-AND-SWAP)
    # =========================================================================

    async def resolve(
        self,
        model: type[ModeratedT],
        entity_id: UUID,
        approve: bool,
        now: datetime,
        reason: str | None = None,
    ) -> ModeratedT:
        """
        Move a pending record to approved or denied.

        The status predicate is part of the UPDATE itself. When no row matches,
        the record either does not exist (EntityNotFoundError) or was already
        resolved by someone else (StaleStateError).
        """
        values: dict = {"reviewed_at": now}
        if approve:
            values["approval_status"] = ApprovalStatus.APPROVED
        else:
            values["approval_status"] = ApprovalStatus.DENIED
            values["denied_at"] = now
            values["denial_reason"] = reason

        async with self._translate_errors(f"resolve {model.__name__}"):
            await self._session.flush()
            result = await self._session.execute(
                update(model)
                .where(
                    model.id == entity_id,
                    model.approval_status == ApprovalStatus.PENDING,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                found = await self._session.scalar(
                    select(exists().where(model.id == entity_id))
                )
                if not found:
                    raise EntityNotFoundError(f"{model.__name__} {entity_id} not found")
                raise StaleStateError(
                    f"{model.__name__} {entity_id} is not in pending state"
                )

        return await self.get(model, entity_id, refresh=True)

    # =========================================================================
    # QUEUE READS
    # =========================================================================

    async def list_pending(
        self,
        model: type[ModeratedT],
        limit: int | None = None,
    ) -> list[ModeratedT]:
        """Pending records, oldest first."""
        query = (
            select(model)
            .where(model.approval_status == ApprovalStatus.PENDING)
            .order_by(model.created_at.asc())
        )
        if limit:
            query = query.limit(limit)

        async with self._translate_errors(f"list pending {model.__name__}"):
            result = await self._session.execute(query)
        return list(result.scalars().all())

    async def count_pending(self, model: type[ModeratedT]) -> int:
        """Exact number of pending records."""
        async with self._translate_errors(f"count pending {model.__name__}"):
            result = await self._session.execute(
                select(func.count())
                .select_from(model)
                .where(model.approval_status == ApprovalStatus.PENDING)
            )
        return result.scalar_one()

    async def list_visible_prayers(
        self,
        status: PrayerStatus | None = None,
    ) -> list[Prayer]:
        """Approved prayers with their updates loaded, newest first."""
        query = (
            select(Prayer)
            .where(Prayer.approval_status == ApprovalStatus.APPROVED)
            .options(selectinload(Prayer.updates))
            .order_by(Prayer.created_at.desc())
        )
        if status is not None:
            query = query.where(Prayer.status == status)

        async with self._translate_errors("list prayers"):
            result = await self._session.execute(query)
        return list(result.scalars().all())

    # =========================================================================
    # SCHEDULER QUERIES
    # =========================================================================

    async def select_ids_for_auto_archive(self, cutoff: datetime) -> list[UUID]:
        """Ids of approved, current prayers created strictly before ``cutoff``."""
        async with self._translate_errors("select aging prayers"):
            result = await self._session.execute(
                select(Prayer.id)
                .where(
                    Prayer.status == PrayerStatus.CURRENT,
                    Prayer.approval_status == ApprovalStatus.APPROVED,
                    Prayer.created_at < cutoff,
                )
                .order_by(Prayer.created_at.asc())
            )
        return list(result.scalars().all())

    async def bulk_set_status(
        self,
        prayer_ids: Sequence[UUID],
        from_status: PrayerStatus,
        to_status: PrayerStatus,
    ) -> list[UUID]:
        """
        Move prayers from one status to another in a single UPDATE.

        Only rows still in ``from_status`` are touched, and only their ids are
        returned. Not usable for ``answered``, which needs a per-row answered date.
        """
        if to_status == PrayerStatus.ANSWERED:
            raise ValueError("Bulk status writes cannot mark prayers answered")
        if not prayer_ids:
            return []

        async with self._translate_errors("bulk status update"):
            await self._session.flush()
            result = await self._session.execute(
                update(Prayer)
                .where(
                    Prayer.id.in_(list(prayer_ids)),
                    Prayer.status == from_status,
                )
                .values(status=to_status, date_answered=None)
                .returning(Prayer.id)
                .execution_options(synchronize_session=False)
            )
            updated_ids = list(result.scalars().all())
        return updated_ids

    async def active_prayers_with_latest_update(
        self,
        statuses: Iterable[PrayerStatus],
    ) -> list[PrayerActivity]:
        """Approved prayers in ``statuses`` with the newest approved update time, if any."""
        latest_update = (
            select(
                PrayerUpdate.prayer_id.label("prayer_id"),
                func.max(PrayerUpdate.created_at).label("latest_update_at"),
            )
            .where(PrayerUpdate.approval_status == ApprovalStatus.APPROVED)
            .group_by(PrayerUpdate.prayer_id)
            .subquery()
        )

        query = (
            select(Prayer, latest_update.c.latest_update_at)
            .outerjoin(latest_update, latest_update.c.prayer_id == Prayer.id)
            .where(
                Prayer.approval_status == ApprovalStatus.APPROVED,
                Prayer.status.in_(list(statuses)),
            )
            .order_by(Prayer.created_at.asc())
        )

        async with self._translate_errors("load prayer activity"):
            result = await self._session.execute(query)

        return [
            PrayerActivity(prayer=prayer, latest_update_at=latest_update_at)
            for prayer, latest_update_at in result.all()
        ]

    async def prayers_reminded_before(self, cutoff: datetime) -> list[Prayer]:
        """Current approved prayers whose last reminder went out before ``cutoff``."""
        async with self._translate_errors("load reminded prayers"):
            result = await self._session.execute(
                select(Prayer)
                .where(
                    Prayer.status == PrayerStatus.CURRENT,
                    Prayer.approval_status == ApprovalStatus.APPROVED,
                    Prayer.last_reminder_sent.isnot(None),
                    Prayer.last_reminder_sent < cutoff,
                )
                .order_by(Prayer.last_reminder_sent.asc())
            )
        return list(result.scalars().all())

    async def has_approved_update_since(self, prayer_id: UUID, since: datetime) -> bool:
        """Whether an approved update was posted at or after ``since``."""
        async with self._translate_errors("check recent updates"):
            found = await self._session.scalar(
                select(
                    exists().where(
                        PrayerUpdate.prayer_id == prayer_id,
                        PrayerUpdate.approval_status == ApprovalStatus.APPROVED,
                        PrayerUpdate.created_at >= since,
                    )
                )
            )
        return bool(found)
