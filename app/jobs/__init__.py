"""
Background Jobs Module

Handles scheduled tasks for:
- Pending payment sweep (late or lost webhooks, expired orders)
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from app.jobs.order_jobs import check_pending_payments

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "check_pending_payments",
]
