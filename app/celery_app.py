"""
ZimPay Payroll - Celery Application

Queued period runs and refreshes go to a dedicated "payroll" queue so a
long batch never blocks other background work. Redis is both broker and
result backend.
"""

from celery import Celery

from app.config import settings

PAYROLL_QUEUE = "payroll"

celery_app = Celery(
    "zimpay_payroll",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks.celery_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Africa/Harare",
    enable_utc=True,

    # Redeliver batches lost with a worker
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=settings.celery_task_time_limit,
    task_soft_time_limit=settings.celery_task_time_limit - 300,

    # One batch per worker process; the batch parallelises employees itself
    worker_prefetch_multiplier=1,
    result_expires=86400,

    # Failed batches surface to the caller instead of retrying
    task_max_retries=0,

    task_routes={
        "app.tasks.celery_tasks.process_payroll_period_task": {"queue": PAYROLL_QUEUE},
    },
)
