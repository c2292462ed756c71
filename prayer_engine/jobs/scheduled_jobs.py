"""
Scheduled Jobs: auto-archiving and inactivity reminders.

This module runs as a scheduled job (via cron or an HTTP trigger) to
archive aged prayers and remind requesters about quiet ones.

Typical cron schedule: 0 6 * * * (daily at 6 AM)
"""

import asyncio
import logging
import traceback
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings, get_settings
from ..core.database import build_engine
from ..models import utcnow
from ..services.auto_transition import AutoTransitionScheduler
from ..services.notification_service import NotificationDispatcher, build_email_channel
from ..services.reminder_engine import ReminderConfig, ReminderEngine


logger = logging.getLogger(__name__)


# =============================================================================
# ALERTING
# =============================================================================


async def send_alert(
    title: str,
    message: str,
    severity: str = "error",
    details: dict | None = None,
    settings: Settings | None = None,
) -> None:
    """
    Log a job failure and forward it to the configured alert webhooks.

    Webhook problems are logged and never raised; the job result stands.
    """
    settings = settings or get_settings()

    log_message = f"[JOB ALERT] {title}: {message}"
    if details:
        log_message += f" | Details: {details}"
    logger.log(logging.CRITICAL if severity == "critical" else logging.ERROR, log_message)

    timestamp = datetime.now(timezone.utc).isoformat()
    targets = []
    if settings.slack_alerts_webhook_url:
        # Slack incoming webhooks only need a text field
        summary = f"*{title}* ({severity})\n{message}"
        if details and "error" in details:
            summary += f"\n`{details['error']}`"
        targets.append(("Slack", settings.slack_alerts_webhook_url, {"text": summary}))
    if settings.alert_webhook_url:
        targets.append(("webhook", settings.alert_webhook_url, {
            "title": title,
            "message": message,
            "severity": severity,
            "timestamp": timestamp,
            "source": "prayer-engine-jobs",
            "details": details or {},
        }))

    if not targets:
        return

    async with httpx.AsyncClient() as client:
        for channel, url, payload in targets:
            try:
                response = await client.post(url, json=payload, timeout=10)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Failed to send {channel} alert: {e}")


# =============================================================================
# JOB PLUMBING
# =============================================================================


async def _run_job(
    name: str,
    body: Callable[[AsyncSession], Any],
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None,
) -> dict[str, Any]:
    """
    Run ``body`` in a fresh session with a timeout, alerting on any crash.

    ``body`` commits its own work. Whatever it has not committed when the
    timeout or an error hits is rolled back.

    When no session factory is supplied a dedicated engine is created and
    disposed afterwards.
    """
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting {name} job at {start_time.isoformat()}")

    engine = None
    if session_factory is None:
        engine = build_engine(settings)
        session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    async def _in_session() -> dict[str, Any]:
        async with session_factory() as session:
            return await body(session)

    try:
        results = await asyncio.wait_for(_in_session(), timeout=settings.job_timeout_seconds)
    except Exception as e:
        if isinstance(e, asyncio.TimeoutError):
            error = f"timed out after {settings.job_timeout_seconds}s"
        else:
            error = str(e)
        logger.error(f"{name} job failed: {error}")

        await send_alert(
            title=f"{name.capitalize()} Job Failed",
            message=f"The scheduled {name} job crashed unexpectedly.",
            severity="critical",
            details={
                "error": error,
                "traceback": traceback.format_exc()[-500:],
                "started_at": start_time.isoformat(),
            },
            settings=settings,
        )
        raise
    finally:
        if engine is not None:
            await engine.dispose()

    end_time = datetime.now(timezone.utc)
    results["started_at"] = start_time.isoformat()
    results["completed_at"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()
    return results


# =============================================================================
# JOBS
# =============================================================================


async def run_auto_transition_job(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    threshold_days: int | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> dict[str, Any]:
    """
    Archive current prayers older than ``days_before_archive``.

    Returns:
        Job result summary: processed, prayer_ids, errors and timings
    """
    settings = settings or get_settings()
    days = settings.days_before_archive if threshold_days is None else threshold_days

    async def body(session: AsyncSession) -> dict[str, Any]:
        scheduler = AutoTransitionScheduler(session, clock=clock)
        result = await scheduler.run_once(days)
        await session.commit()
        return result.to_dict()

    results = await _run_job("auto-transition", body, settings, session_factory)
    logger.info(
        f"Auto-transition job completed in {results['duration_seconds']:.2f}s: "
        f"{results['processed']} archived"
    )
    return results


async def run_reminder_job(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    dispatcher: NotificationDispatcher | None = None,
    threshold_days: int | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> dict[str, Any]:
    """
    Remind requesters whose prayers have been inactive for ``reminder_interval_days``.

    Returns:
        Job result summary: processed, sent, skipped, archived, errors and timings
    """
    settings = settings or get_settings()
    days = settings.reminder_interval_days if threshold_days is None else threshold_days
    dispatcher = dispatcher or NotificationDispatcher(build_email_channel(settings))
    config = ReminderConfig(
        suppress_repeat_reminders=settings.suppress_repeat_reminders,
        archive_after_reminder_days=settings.archive_after_reminder_days,
        app_url=settings.app_url,
    )

    async def body(session: AsyncSession) -> dict[str, Any]:
        engine = ReminderEngine(session, dispatcher, config=config, clock=clock)
        result = await engine.send_reminders(days)
        await session.commit()
        return result.to_dict()

    results = await _run_job("reminder", body, settings, session_factory)
    logger.info(
        f"Reminder job completed in {results['duration_seconds']:.2f}s: "
        f"{results['sent']} sent, {results['skipped']} skipped, "
        f"{results['archived']} archived, {len(results['errors'])} errors"
    )

    # Partial failures: the job finished but some reminders did not go out
    if results["errors"]:
        await send_alert(
            title="Reminder Job Completed with Warnings",
            message=f"The reminder job completed but {len(results['errors'])} reminders failed to send.",
            severity="warning",
            details={
                "sent": results["sent"],
                "errors": results["errors"][:5],
            },
            settings=settings,
        )

    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the scheduled jobs."""
    import argparse

    parser = argparse.ArgumentParser(description="Run prayer engine scheduled jobs")
    parser.add_argument(
        "job",
        choices=["auto-transition", "reminders"],
        help="Which job to run",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database connection string (defaults to DATABASE_URL)",
    )
    parser.add_argument(
        "--threshold-days",
        type=int,
        default=None,
        help="Override the configured threshold for this run",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = get_settings()
    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})

    if args.job == "auto-transition":
        job = run_auto_transition_job(settings=settings, threshold_days=args.threshold_days)
    else:
        job = run_reminder_job(settings=settings, threshold_days=args.threshold_days)

    try:
        results = asyncio.run(job)
        print(f"Job completed: {results}")
    except Exception as e:
        print(f"Job failed: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
