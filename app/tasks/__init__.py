"""
ZimPay Payroll - Background Tasks Package

Importing the package configures the Celery app so that shared tasks
queued from the API reach the Redis broker.
"""

from app.celery_app import celery_app
from app.tasks.celery_tasks import process_payroll_period_task, run_async

__all__ = [
    "celery_app",
    "process_payroll_period_task",
    "run_async",
]
