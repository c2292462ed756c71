"""
Job API Routes: HTTP triggers for the scheduled jobs.

Meant for an external scheduler. When CRON_SECRET is set the caller must
send it in the X-Cron-Secret header.
"""

from fastapi import APIRouter, Body

from ..core.dependencies import CronAuthDep, DispatcherDep, SessionFactoryDep, SettingsDep
from ..jobs.scheduled_jobs import run_auto_transition_job, run_reminder_job
from ..schemas import AutoTransitionJobResponse, JobRunRequest, ReminderJobResponse

router = APIRouter(prefix="/jobs", tags=["jobs"], dependencies=[CronAuthDep])


@router.post(
    "/auto-transition",
    response_model=AutoTransitionJobResponse,
    summary="Archive prayers past the configured age",
)
async def trigger_auto_transition(
    settings: SettingsDep,
    session_factory: SessionFactoryDep,
    request: JobRunRequest | None = Body(default=None),
):
    results = await run_auto_transition_job(
        settings=settings,
        session_factory=session_factory,
        threshold_days=request.threshold_days if request else None,
    )
    return AutoTransitionJobResponse(**results)


@router.post(
    "/reminders",
    response_model=ReminderJobResponse,
    summary="Send reminders for inactive prayers",
)
async def trigger_reminders(
    settings: SettingsDep,
    session_factory: SessionFactoryDep,
    dispatcher: DispatcherDep,
    request: JobRunRequest | None = Body(default=None),
):
    results = await run_reminder_job(
        settings=settings,
        session_factory=session_factory,
        dispatcher=dispatcher,
        threshold_days=request.threshold_days if request else None,
    )
    return ReminderJobResponse(**results)
