"""Tests for age-based archiving of current prayers."""

from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from prayer_engine.models import ApprovalStatus, Prayer, PrayerStatus
from prayer_engine.services.auto_transition import AutoTransitionScheduler
from prayer_engine.services.moderation_store import ModerationStore


@pytest.fixture
def scheduler(session: AsyncSession, clock) -> AutoTransitionScheduler:
    return AutoTransitionScheduler(session, clock=clock)


class TestAutoTransition:
    async def test_archives_old_current_prayers(
        self,
        scheduler: AutoTransitionScheduler,
        session: AsyncSession,
        add_prayer,
        clock,
    ):
        old = await add_prayer(created_at=clock() - timedelta(days=31))
        recent = await add_prayer(created_at=clock() - timedelta(days=5))

        result = await scheduler.run_once(30)

        assert result.processed == 1
        assert result.prayer_ids == [old.id]
        await session.refresh(old)
        await session.refresh(recent)
        assert old.status == PrayerStatus.ARCHIVED
        assert recent.status == PrayerStatus.CURRENT

    async def test_boundary_is_exclusive(
        self,
        scheduler: AutoTransitionScheduler,
        session: AsyncSession,
        add_prayer,
        clock,
    ):
        exactly = await add_prayer(created_at=clock() - timedelta(days=30))
        just_over = await add_prayer(created_at=clock() - timedelta(days=30, seconds=1))

        result = await scheduler.run_once(30)

        assert result.prayer_ids == [just_over.id]
        await session.refresh(exactly)
        assert exactly.status == PrayerStatus.CURRENT

    async def test_age_ignores_recent_updates(
        self,
        scheduler: AutoTransitionScheduler,
        add_prayer,
        add_update,
        clock,
    ):
        prayer = await add_prayer(created_at=clock() - timedelta(days=60))
        await add_update(prayer, created_at=clock() - timedelta(hours=1))

        result = await scheduler.run_once(30)

        assert result.prayer_ids == [prayer.id]

    async def test_reports_only_prayers_it_archived(
        self,
        scheduler: AutoTransitionScheduler,
        session: AsyncSession,
        add_prayer,
        clock,
        monkeypatch,
    ):
        moved = await add_prayer(created_at=clock() - timedelta(days=40))
        kept = await add_prayer(created_at=clock() - timedelta(days=41))
        scan = ModerationStore.select_ids_for_auto_archive

        async def scan_then_admin_edit(store, cutoff):
            ids = await scan(store, cutoff)
            # An admin marks one prayer ongoing before the bulk write lands
            await session.execute(
                update(Prayer)
                .where(Prayer.id == moved.id)
                .values(status=PrayerStatus.ONGOING)
                .execution_options(synchronize_session=False)
            )
            return ids

        monkeypatch.setattr(ModerationStore, "select_ids_for_auto_archive", scan_then_admin_edit)

        result = await scheduler.run_once(30)

        assert result.processed == 1
        assert result.prayer_ids == [kept.id]
        await session.refresh(moved)
        assert moved.status == PrayerStatus.ONGOING

    @pytest.mark.parametrize(
        "overrides",
        [
            {"status": PrayerStatus.ONGOING},
            {"status": PrayerStatus.ANSWERED},
            {"status": PrayerStatus.ARCHIVED},
            {"approval_status": ApprovalStatus.PENDING},
            {"approval_status": ApprovalStatus.DENIED},
        ],
    )
    async def test_only_approved_current(
        self,
        scheduler: AutoTransitionScheduler,
        add_prayer,
        clock,
        overrides,
    ):
        await add_prayer(created_at=clock() - timedelta(days=90), **overrides)

        result = await scheduler.run_once(30)

        assert result.processed == 0

    @pytest.mark.parametrize("threshold", [0, -5])
    async def test_disabled(self, scheduler: AutoTransitionScheduler, add_prayer, clock, threshold):
        await add_prayer(created_at=clock() - timedelta(days=365))

        result = await scheduler.run_once(threshold)

        assert result.processed == 0
        assert result.prayer_ids == []

    async def test_second_run_is_a_no_op(self, scheduler: AutoTransitionScheduler, add_prayer, clock):
        await add_prayer(created_at=clock() - timedelta(days=45))

        first = await scheduler.run_once(30)
        second = await scheduler.run_once(30)

        assert first.processed == 1
        assert second.processed == 0

    async def test_result_serializes(self, scheduler: AutoTransitionScheduler, add_prayer, clock):
        prayer = await add_prayer(created_at=clock() - timedelta(days=45))

        result = await scheduler.run_once(30)

        assert result.to_dict() == {
            "processed": 1,
            "prayer_ids": [str(prayer.id)],
            "errors": [],
        }
