"""
Prayer API Routes: public submission and read endpoints.

Every submission lands in the moderation queue as pending. Admin alerts
are handed to background tasks, which run only after the request's
transaction has committed.
"""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Query, status

from ..core.dependencies import DispatcherDep, ModerationQueueDep
from ..models import PrayerStatus as ModelPrayerStatus
from ..schemas import (
    DeletionRequestCreate,
    PrayerCreate,
    PrayerResponse,
    PrayerStatus,
    PrayerUpdateCreate,
    StatusChangeRequestCreate,
    SubmissionResponse,
)
from ..services.moderation_queue import ModerationQueue, SubmissionOutcome
from ..services.notification_service import NotificationDispatcher

router = APIRouter(tags=["prayers"])


async def _acknowledge(
    queue: ModerationQueue,
    outcome: SubmissionOutcome,
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
) -> SubmissionResponse:
    await queue.commit()
    if outcome.notifications:
        background_tasks.add_task(dispatcher.deliver_all, outcome.notifications)
    return SubmissionResponse(
        id=outcome.record.id,
        kind=outcome.kind.value,
        approval_status=outcome.record.approval_status.value,
    )


@router.post(
    "/prayers",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a prayer request",
)
async def submit_prayer(
    request: PrayerCreate,
    queue: ModerationQueueDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
):
    """Submit a prayer for review. Requesters with an email are auto-subscribed."""
    outcome = await queue.submit_prayer(
        title=request.title,
        requester=request.requester,
        prayer_for=request.prayer_for,
        description=request.description,
        email=request.email,
        is_anonymous=request.is_anonymous,
    )
    return await _acknowledge(queue, outcome, background_tasks, dispatcher)


@router.get(
    "/prayers",
    response_model=list[PrayerResponse],
    summary="List approved prayers",
)
async def list_prayers(
    queue: ModerationQueueDep,
    status_filter: PrayerStatus | None = Query(default=None, alias="status"),
):
    """Approved prayers with their approved updates, newest first."""
    status_value = ModelPrayerStatus(status_filter) if status_filter else None
    prayers = await queue.store.list_visible_prayers(status=status_value)
    return [PrayerResponse.from_model(p) for p in prayers]


@router.post(
    "/prayers/{prayer_id}/updates",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post an update on a prayer",
)
async def submit_update(
    prayer_id: UUID,
    request: PrayerUpdateCreate,
    queue: ModerationQueueDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
):
    outcome = await queue.submit_update(
        prayer_id=prayer_id,
        content=request.content,
        author=request.author,
        author_email=request.author_email,
        is_anonymous=request.is_anonymous,
        mark_as_answered=request.mark_as_answered,
    )
    return await _acknowledge(queue, outcome, background_tasks, dispatcher)


@router.post(
    "/prayers/{prayer_id}/deletion-requests",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ask for a prayer to be deleted",
)
async def submit_deletion_request(
    prayer_id: UUID,
    request: DeletionRequestCreate,
    queue: ModerationQueueDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
):
    outcome = await queue.submit_deletion_request(
        prayer_id=prayer_id,
        requested_by=request.requested_by,
        reason=request.reason,
        requested_email=request.requested_email,
    )
    return await _acknowledge(queue, outcome, background_tasks, dispatcher)


@router.post(
    "/prayers/{prayer_id}/status-change-requests",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ask for a prayer's status to change",
)
async def submit_status_change_request(
    prayer_id: UUID,
    request: StatusChangeRequestCreate,
    queue: ModerationQueueDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
):
    outcome = await queue.submit_status_change_request(
        prayer_id=prayer_id,
        requested_status=request.requested_status,
        requested_by=request.requested_by,
        reason=request.reason,
        requested_email=request.requested_email,
    )
    return await _acknowledge(queue, outcome, background_tasks, dispatcher)


@router.post(
    "/updates/{update_id}/deletion-requests",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ask for an update to be deleted",
)
async def submit_update_deletion_request(
    update_id: UUID,
    request: DeletionRequestCreate,
    queue: ModerationQueueDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
):
    outcome = await queue.submit_update_deletion_request(
        update_id=update_id,
        requested_by=request.requested_by,
        reason=request.reason,
        requested_email=request.requested_email,
    )
    return await _acknowledge(queue, outcome, background_tasks, dispatcher)
