"""
Background Jobs for the prayer engine.

This module contains scheduled jobs:
- scheduled_jobs: auto-archiving of aged prayers and inactivity reminders
"""

from .scheduled_jobs import run_auto_transition_job, run_reminder_job, send_alert

__all__ = ["run_auto_transition_job", "run_reminder_job", "send_alert"]
