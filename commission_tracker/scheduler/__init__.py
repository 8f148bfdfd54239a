"""Scheduled background jobs."""

from commission_tracker.scheduler.jobs import reconciliation_job, scheduler, setup_scheduler

__all__ = ["reconciliation_job", "scheduler", "setup_scheduler"]
