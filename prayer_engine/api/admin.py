"""
Admin API Routes: moderation queue and direct edits.

Approve/deny run a compare-and-swap on the pending row; a second admin
acting on the same item gets 409. Notifications produced by a decision are
dispatched in the background after the transaction commits.
"""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Body

from ..core.dependencies import DispatcherDep, ModerationQueueDep, SessionDep
from ..schemas import (
    ApproveRequest,
    DenyRequest,
    EntityKind,
    ModerationResultResponse,
    PendingItemResponse,
    PendingSummaryResponse,
    PrayerStatusResponse,
    StatusTransitionResponse,
    StatusUpdateRequest,
    SubscriberResponse,
    SubscriptionUpdate,
)
from ..services.moderation_queue import ModerationOutcome, ModerationQueue
from ..services.notification_service import NotificationDispatcher
from ..services.subscribers import SubscriberDirectory

router = APIRouter(prefix="/admin", tags=["admin"])


async def _moderation_response(
    queue: ModerationQueue,
    outcome: ModerationOutcome,
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
) -> ModerationResultResponse:
    await queue.commit()
    if outcome.notifications:
        background_tasks.add_task(dispatcher.deliver_all, outcome.notifications)

    transition = None
    if outcome.transition:
        transition = StatusTransitionResponse(
            prayer_id=outcome.transition.prayer_id,
            old_status=outcome.transition.old_status.value,
            new_status=outcome.transition.new_status.value,
        )

    return ModerationResultResponse(
        id=outcome.entity_id,
        kind=outcome.kind.value,
        approval_status="approved" if outcome.approved else "denied",
        deleted=outcome.deleted,
        transition=transition,
        notifications_queued=len(outcome.notifications),
    )


# =============================================================================
# QUEUE READS
# =============================================================================


@router.get(
    "/pending",
    response_model=PendingSummaryResponse,
    summary="Pending counts per kind",
)
async def pending_summary(queue: ModerationQueueDep):
    summary = await queue.pending_summary()
    return PendingSummaryResponse(
        counts={kind.value: count for kind, count in summary.counts.items()},
        total=summary.total,
    )


@router.get(
    "/pending/{kind}",
    response_model=list[PendingItemResponse],
    summary="Pending items of one kind, oldest first",
)
async def list_pending(kind: EntityKind, queue: ModerationQueueDep):
    records = await queue.list_pending(kind.value)
    return [PendingItemResponse.from_model(kind, record) for record in records]


# =============================================================================
# DECISIONS
# =============================================================================


@router.post(
    "/{kind}/{entity_id}/approve",
    response_model=ModerationResultResponse,
    summary="Approve a pending item",
    responses={409: {"description": "Already handled by someone else"}},
)
async def approve(
    kind: EntityKind,
    entity_id: UUID,
    queue: ModerationQueueDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
    request: ApproveRequest | None = Body(default=None),
):
    """Approve an item. For prayers, ``status`` optionally sets the visible status."""
    outcome = await queue.approve(
        kind.value,
        entity_id,
        status=request.status if request else None,
    )
    return await _moderation_response(queue, outcome, background_tasks, dispatcher)


@router.post(
    "/{kind}/{entity_id}/deny",
    response_model=ModerationResultResponse,
    summary="Deny a pending item",
    responses={409: {"description": "Already handled by someone else"}},
)
async def deny(
    kind: EntityKind,
    entity_id: UUID,
    request: DenyRequest,
    queue: ModerationQueueDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
):
    """Deny an item. A non-blank reason is required."""
    outcome = await queue.deny(kind.value, entity_id, request.reason)
    return await _moderation_response(queue, outcome, background_tasks, dispatcher)


# =============================================================================
# DIRECT EDITS
# =============================================================================


@router.put(
    "/prayers/{prayer_id}/status",
    response_model=PrayerStatusResponse,
    summary="Set a prayer's status",
)
async def set_prayer_status(
    prayer_id: UUID,
    request: StatusUpdateRequest,
    queue: ModerationQueueDep,
):
    prayer, transition = await queue.set_prayer_status(prayer_id, request.status)
    return PrayerStatusResponse(
        id=prayer.id,
        status=prayer.status.value,
        date_answered=prayer.date_answered,
        changed=transition is not None,
    )


@router.put(
    "/subscribers",
    response_model=SubscriberResponse,
    summary="Create or update a subscriber",
)
async def set_subscription(request: SubscriptionUpdate, session: SessionDep):
    directory = SubscriberDirectory(session)
    subscriber = await directory.set_subscription(
        email=request.email,
        is_active=request.is_active,
        name=request.name,
    )
    return SubscriberResponse.from_model(subscriber)
