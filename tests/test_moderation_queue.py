"""
Tests for the Moderation Queue.

These tests verify:
1. SUBMIT: Everything arrives pending, requesters are subscribed once
2. RESOLVE: Approve/deny happen exactly once; the loser gets StaleStateError
3. DENY: A reason is mandatory and reaches the submitter
4. CONSEQUENCES: Approvals drive status changes and deletions
5. NOTIFY: Emails are composed, never sent, and anonymity holds
"""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import uuid4

from prayer_engine.models import (
    ApprovalStatus,
    DeletionRequest,
    Prayer,
    PrayerStatus,
    PrayerUpdate,
    Subscriber,
)
from prayer_engine.services.errors import (
    DatastoreError,
    EntityNotFoundError,
    StaleStateError,
    ValidationError,
)
from prayer_engine.services.moderation_queue import (
    EntityKind,
    ModerationOutcome,
    ModerationQueue,
    QueueConfig,
)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def queue(session: AsyncSession, clock) -> ModerationQueue:
    return ModerationQueue(
        session,
        config=QueueConfig(app_url="https://prayers.example.org"),
        clock=clock,
    )


async def _subscriber_count(session: AsyncSession) -> int:
    return await session.scalar(select(func.count()).select_from(Subscriber))


# =============================================================================
# TEST: SUBMISSIONS
# =============================================================================


class TestSubmitPrayer:
    async def test_submission_is_pending_and_normalized(self, queue: ModerationQueue):
        outcome = await queue.submit_prayer(
            title="  New job  ",
            requester="Tom",
            prayer_for="Tom",
            email=" Tom@Example.COM ",
        )

        prayer = outcome.record
        assert outcome.kind == EntityKind.PRAYER
        assert prayer.approval_status == ApprovalStatus.PENDING
        assert prayer.status == PrayerStatus.CURRENT
        assert prayer.title == "New job"
        assert prayer.email == "tom@example.com"

    async def test_admins_are_alerted(self, queue: ModerationQueue, add_subscriber):
        await add_subscriber("admin@example.com", is_admin=True)
        await add_subscriber("quiet-admin@example.com", is_admin=True, receive_admin_emails=False)
        await add_subscriber("member@example.com")

        outcome = await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")

        assert len(outcome.notifications) == 1
        alert = outcome.notifications[0]
        assert alert.recipients == ["admin@example.com"]
        assert alert.subject == "New Prayer Request: New job"

    async def test_no_admins_no_alert(self, queue: ModerationQueue):
        outcome = await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")
        assert outcome.notifications == []

    @pytest.mark.parametrize("field", ["title", "requester", "prayer_for"])
    async def test_required_fields(self, queue: ModerationQueue, session: AsyncSession, field):
        values = {"title": "New job", "requester": "Tom", "prayer_for": "Tom"}
        values[field] = "   "

        with pytest.raises(ValidationError):
            await queue.submit_prayer(**values)

        count = await session.scalar(select(func.count()).select_from(Prayer))
        assert count == 0

    async def test_invalid_email_rejected(self, queue: ModerationQueue):
        with pytest.raises(ValidationError):
            await queue.submit_prayer(
                title="New job", requester="Tom", prayer_for="Tom", email="not-an-email"
            )


class TestAutoSubscribe:
    async def test_requester_subscribed_once(self, queue: ModerationQueue, session: AsyncSession):
        first = await queue.submit_prayer(
            title="First", requester="Tom", prayer_for="Tom", email="tom@example.com"
        )
        second = await queue.submit_prayer(
            title="Second", requester="Tom", prayer_for="Tom", email="TOM@example.com "
        )

        assert first.subscription.created is True
        assert second.subscription.created is False
        assert await _subscriber_count(session) == 1

    async def test_existing_row_left_alone(
        self,
        queue: ModerationQueue,
        session: AsyncSession,
        add_subscriber,
    ):
        subscriber = await add_subscriber("tom@example.com", name="Tommy", is_active=False)

        await queue.submit_prayer(
            title="New job", requester="Tom", prayer_for="Tom", email="tom@example.com"
        )
        await session.refresh(subscriber)

        assert subscriber.is_active is False
        assert subscriber.name == "Tommy"
        assert await _subscriber_count(session) == 1

    async def test_no_email_no_subscription(self, queue: ModerationQueue, session: AsyncSession):
        outcome = await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")

        assert outcome.subscription is None
        assert await _subscriber_count(session) == 0


class TestSubmitRequests:
    async def test_update_requires_author_unless_anonymous(self, queue: ModerationQueue, add_prayer):
        prayer = await add_prayer()

        with pytest.raises(ValidationError):
            await queue.submit_update(prayer.id, content="Doing better", author="  ")

        outcome = await queue.submit_update(prayer.id, content="Doing better", is_anonymous=True)
        assert outcome.record.approval_status == ApprovalStatus.PENDING
        assert outcome.record.display_author == "Anonymous"

    async def test_update_on_missing_prayer(self, queue: ModerationQueue):
        with pytest.raises(EntityNotFoundError):
            await queue.submit_update(uuid4(), content="Hello", author="Tom")

    async def test_status_change_rejects_unknown_status(self, queue: ModerationQueue, add_prayer):
        prayer = await add_prayer()

        with pytest.raises(ValidationError):
            await queue.submit_status_change_request(
                prayer.id, requested_status="forgotten", requested_by="Tom"
            )

    async def test_pending_summary_counts_every_kind(self, queue: ModerationQueue, add_prayer):
        prayer = await add_prayer()
        await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")
        update = await queue.submit_update(prayer.id, content="Better", author="Tom")
        await queue.submit_deletion_request(prayer.id, requested_by="Tom")
        await queue.submit_status_change_request(
            prayer.id, requested_status="ongoing", requested_by="Tom"
        )
        await queue.submit_update_deletion_request(update.record.id, requested_by="Tom")

        summary = await queue.pending_summary()

        assert summary.counts == {kind: 1 for kind in EntityKind}
        assert summary.total == 5

    async def test_list_pending_oldest_first(self, queue: ModerationQueue):
        first = await queue.submit_prayer(title="First", requester="Tom", prayer_for="Tom")
        second = await queue.submit_prayer(title="Second", requester="Tom", prayer_for="Tom")

        pending = await queue.list_pending("prayer")

        assert [p.id for p in pending] == [first.record.id, second.record.id]


# =============================================================================
# TEST: RESOLUTION
# =============================================================================


class TestResolution:
    async def test_approve_prayer(self, queue: ModerationQueue, clock):
        submitted = await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")

        outcome = await queue.approve("prayer", submitted.record.id)

        assert outcome.approved is True
        assert outcome.record.approval_status == ApprovalStatus.APPROVED
        assert outcome.record.reviewed_at == clock()
        assert outcome.record.status == PrayerStatus.CURRENT
        assert outcome.transition is None

    async def test_approve_with_answered_status_stamps_date(self, queue: ModerationQueue, clock):
        submitted = await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")

        outcome = await queue.approve(EntityKind.PRAYER, submitted.record.id, status="answered")

        assert outcome.record.status == PrayerStatus.ANSWERED
        assert outcome.record.date_answered == clock()
        assert outcome.transition.old_status == PrayerStatus.CURRENT
        assert outcome.transition.new_status == PrayerStatus.ANSWERED

    async def test_status_only_allowed_for_prayers(self, queue: ModerationQueue, add_prayer):
        prayer = await add_prayer()
        update = await queue.submit_update(prayer.id, content="Better", author="Tom")

        with pytest.raises(ValidationError):
            await queue.approve("update", update.record.id, status="answered")

    async def test_unknown_kind(self, queue: ModerationQueue):
        with pytest.raises(ValidationError):
            await queue.approve("comment", uuid4())

    async def test_missing_record(self, queue: ModerationQueue):
        with pytest.raises(EntityNotFoundError):
            await queue.approve("prayer", uuid4())

    async def test_second_resolution_is_stale(self, session_factory, clock):
        async with session_factory() as session:
            queue = ModerationQueue(session, clock=clock)
            submitted = await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")
            await queue.commit()
        prayer_id = submitted.record.id

        async with session_factory() as first_admin, session_factory() as second_admin:
            await ModerationQueue(first_admin, clock=clock).approve("prayer", prayer_id)
            await first_admin.commit()

            with pytest.raises(StaleStateError):
                await ModerationQueue(second_admin, clock=clock).deny(
                    "prayer", prayer_id, reason="Duplicate"
                )
            await second_admin.rollback()

        async with session_factory() as session:
            prayer = await session.get(Prayer, prayer_id)
            assert prayer.approval_status == ApprovalStatus.APPROVED
            assert prayer.denial_reason is None

    async def test_overlapping_resolutions_have_one_winner(self, session_factory, clock):
        async with session_factory() as session:
            queue = ModerationQueue(session, clock=clock)
            submitted = await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")
            await queue.commit()
        prayer_id = submitted.record.id

        async def decide(approve: bool) -> ModerationOutcome:
            async with session_factory() as admin_session:
                admin_queue = ModerationQueue(admin_session, clock=clock)
                if approve:
                    outcome = await admin_queue.approve("prayer", prayer_id)
                else:
                    outcome = await admin_queue.deny("prayer", prayer_id, reason="Duplicate")
                await admin_queue.commit()
                return outcome

        results = await asyncio.gather(decide(True), decide(False), return_exceptions=True)

        winners = [r for r in results if isinstance(r, ModerationOutcome)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        # SQLite can report the competing writer as lock contention instead
        assert isinstance(losers[0], (StaleStateError, DatastoreError))

        async with session_factory() as session:
            prayer = await session.get(Prayer, prayer_id)
            if winners[0].approved:
                assert prayer.approval_status == ApprovalStatus.APPROVED
                assert prayer.denial_reason is None
            else:
                assert prayer.approval_status == ApprovalStatus.DENIED
                assert prayer.denial_reason == "Duplicate"

    async def test_approving_twice_is_stale(self, queue: ModerationQueue, add_prayer):
        prayer = await add_prayer()
        update = await queue.submit_update(prayer.id, content="Better", author="Tom")
        await queue.approve("update", update.record.id)

        with pytest.raises(StaleStateError):
            await queue.approve("update", update.record.id)


class TestDeny:
    @pytest.mark.parametrize("reason", [None, "", "   "])
    async def test_reason_required(self, queue: ModerationQueue, session: AsyncSession, reason):
        submitted = await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")

        with pytest.raises(ValidationError):
            await queue.deny("prayer", submitted.record.id, reason)

        await session.refresh(submitted.record)
        assert submitted.record.approval_status == ApprovalStatus.PENDING

    async def test_deny_prayer_records_and_notifies(self, queue: ModerationQueue, clock):
        submitted = await queue.submit_prayer(
            title="New job", requester="Tom", prayer_for="Tom", email="tom@example.com"
        )

        outcome = await queue.deny("prayer", submitted.record.id, reason="  Duplicate request ")

        prayer = outcome.record
        assert prayer.approval_status == ApprovalStatus.DENIED
        assert prayer.denial_reason == "Duplicate request"
        assert prayer.denied_at == clock()
        assert len(outcome.notifications) == 1
        email = outcome.notifications[0]
        assert email.recipients == ["tom@example.com"]
        assert email.subject == "Prayer Request Not Approved: New job"
        assert "Duplicate request" in email.text_body

    async def test_deny_without_email_sends_nothing(self, queue: ModerationQueue):
        submitted = await queue.submit_prayer(title="New job", requester="Tom", prayer_for="Tom")

        outcome = await queue.deny("prayer", submitted.record.id, reason="Duplicate")

        assert outcome.notifications == []

    async def test_deny_deletion_request_tells_requester(self, queue: ModerationQueue, add_prayer):
        prayer = await add_prayer()
        request = await queue.submit_deletion_request(
            prayer.id, requested_by="Sam", requested_email="sam@example.com"
        )

        outcome = await queue.deny("deletion_request", request.record.id, reason="Still active")

        assert outcome.notifications[0].subject == "Deletion Request Not Approved: Healing for Sam"
        assert "Reason: Still active" in outcome.notifications[0].text_body

    async def test_deny_update_tells_author(self, queue: ModerationQueue, add_prayer):
        prayer = await add_prayer()
        update = await queue.submit_update(
            prayer.id, content="Spam", author="Bot", author_email="bot@example.com"
        )

        outcome = await queue.deny("update", update.record.id, reason="Off topic")

        assert outcome.notifications[0].recipients == ["bot@example.com"]
        assert outcome.notifications[0].subject == "Prayer Update Not Approved: Healing for Sam"


# =============================================================================
# TEST: APPROVAL CONSEQUENCES
# =============================================================================


class TestApprovalConsequences:
    async def test_prayer_broadcast_and_confirmation(self, queue: ModerationQueue, add_subscriber):
        await add_subscriber("friend@example.com")
        await add_subscriber("lapsed@example.com", is_active=False)
        submitted = await queue.submit_prayer(
            title="New job", requester="Tom", prayer_for="Tom", email="tom@example.com"
        )

        outcome = await queue.approve("prayer", submitted.record.id)

        broadcast, confirmation = outcome.notifications
        assert broadcast.subject == "New Prayer Request: New job"
        assert broadcast.recipients == ["friend@example.com", "tom@example.com"]
        assert confirmation.recipients == ["tom@example.com"]
        assert "Hi Tom" in confirmation.text_body

    async def test_anonymous_prayer_never_leaks_name(self, queue: ModerationQueue, add_subscriber):
        await add_subscriber("friend@example.com")
        submitted = await queue.submit_prayer(
            title="Private matter",
            requester="Jane Doe",
            prayer_for="Family",
            email="jane@example.com",
            is_anonymous=True,
        )

        outcome = await queue.approve("prayer", submitted.record.id)

        for email in outcome.notifications:
            assert "Jane Doe" not in email.text_body
            assert "Jane Doe" not in email.html_body
        assert "Requested by: Anonymous" in outcome.notifications[0].text_body
        assert outcome.notifications[1].text_body.startswith("Hi Anonymous,")

    async def test_answering_update(self, queue: ModerationQueue, add_prayer, add_subscriber, clock):
        await add_subscriber("friend@example.com")
        prayer = await add_prayer()
        update = await queue.submit_update(
            prayer.id, content="She is home!", author="Jane", mark_as_answered=True
        )

        outcome = await queue.approve("update", update.record.id)

        assert prayer.status == PrayerStatus.ANSWERED
        assert prayer.date_answered == clock()
        assert outcome.transition.new_status == PrayerStatus.ANSWERED
        assert outcome.notifications[0].subject == "Prayer Answered: Healing for Sam"

    @pytest.mark.parametrize("status", [PrayerStatus.ANSWERED, PrayerStatus.ARCHIVED])
    async def test_plain_update_reopens(self, queue: ModerationQueue, add_prayer, clock, status):
        prayer = await add_prayer(status=status, date_answered=clock() if status == PrayerStatus.ANSWERED else None)
        update = await queue.submit_update(prayer.id, content="Back in hospital", author="Jane")

        outcome = await queue.approve("update", update.record.id)

        assert prayer.status == PrayerStatus.CURRENT
        assert prayer.date_answered is None
        assert outcome.transition.old_status == status

    async def test_plain_update_keeps_ongoing(self, queue: ModerationQueue, add_prayer):
        prayer = await add_prayer(status=PrayerStatus.ONGOING)
        update = await queue.submit_update(prayer.id, content="Still going", author="Jane")

        outcome = await queue.approve("update", update.record.id)

        assert prayer.status == PrayerStatus.ONGOING
        assert outcome.transition is None

    async def test_update_on_unapproved_prayer_not_broadcast(
        self,
        queue: ModerationQueue,
        add_prayer,
        add_subscriber,
    ):
        await add_subscriber("friend@example.com")
        prayer = await add_prayer(approval_status=ApprovalStatus.PENDING)
        update = await queue.submit_update(prayer.id, content="Early news", author="Jane")

        outcome = await queue.approve("update", update.record.id)

        assert outcome.record.approval_status == ApprovalStatus.APPROVED
        assert outcome.notifications == []

    async def test_status_change_request(self, queue: ModerationQueue, add_prayer, clock):
        prayer = await add_prayer()
        request = await queue.submit_status_change_request(
            prayer.id,
            requested_status="answered",
            requested_by="Sam",
            requested_email="sam@example.com",
        )

        outcome = await queue.approve("status_change_request", request.record.id)

        assert prayer.status == PrayerStatus.ANSWERED
        assert prayer.date_answered == clock()
        assert outcome.notifications[0].subject == "Status Change Request Approved: Healing for Sam"

    async def test_deletion_request_removes_prayer_and_updates(
        self,
        queue: ModerationQueue,
        session_factory,
        add_prayer,
        add_update,
    ):
        prayer = await add_prayer()
        update = await add_update(prayer)
        request = await queue.submit_deletion_request(
            prayer.id, requested_by="Sam", requested_email="sam@example.com"
        )
        prayer_id, update_id = prayer.id, update.id

        outcome = await queue.approve("deletion_request", request.record.id)
        await queue.commit()

        assert outcome.deleted is True
        assert outcome.notifications[0].subject == "Deletion Request Approved: Healing for Sam"
        async with session_factory() as fresh:
            assert await fresh.get(Prayer, prayer_id) is None
            assert await fresh.get(PrayerUpdate, update_id) is None
            assert await fresh.get(DeletionRequest, request.record.id) is None

    async def test_update_deletion_request_keeps_prayer(
        self,
        queue: ModerationQueue,
        session_factory,
        add_prayer,
        add_update,
    ):
        prayer = await add_prayer()
        update = await add_update(prayer)
        request = await queue.submit_update_deletion_request(update.id, requested_by="Jane")
        prayer_id, update_id = prayer.id, update.id

        outcome = await queue.approve("update_deletion_request", request.record.id)
        await queue.commit()

        assert outcome.deleted is True
        assert outcome.notifications == []
        async with session_factory() as fresh:
            assert await fresh.get(Prayer, prayer_id) is not None
            assert await fresh.get(PrayerUpdate, update_id) is None


class TestDirectStatusEdit:
    async def test_set_and_clear_answered(self, queue: ModerationQueue, add_prayer, clock):
        prayer = await add_prayer()

        _, transition = await queue.set_prayer_status(prayer.id, "answered")
        assert transition.new_status == PrayerStatus.ANSWERED
        assert prayer.date_answered == clock()

        _, transition = await queue.set_prayer_status(prayer.id, PrayerStatus.ONGOING)
        assert prayer.status == PrayerStatus.ONGOING
        assert prayer.date_answered is None

    async def test_unchanged_status(self, queue: ModerationQueue, add_prayer):
        prayer = await add_prayer()

        _, transition = await queue.set_prayer_status(prayer.id, "current")

        assert transition is None
