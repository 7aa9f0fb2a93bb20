"""Scheduled jobs."""

from .expiry_cron import run_expiry_job, send_alert

__all__ = ["run_expiry_job", "send_alert"]
