"""
Withdrawal Settlement Pipeline - Jobs Module

This module contains the scheduled jobs of the pipeline:
- scheduler: Fixed-interval async runner with a single-flight guard
- withdrawal_queue_job: One settlement batch per tick

Reliability Level: L6 Critical (Hot Path)
"""

from jobs.scheduler import RecurringJob

from jobs.withdrawal_queue_job import (
    JOB_NAME,
    WithdrawalQueuePipeline,
    build_withdrawal_queue_job,
)

__all__ = [
    # Scheduler
    "RecurringJob",
    # Withdrawal queue tracker
    "JOB_NAME",
    "WithdrawalQueuePipeline",
    "build_withdrawal_queue_job",
]
