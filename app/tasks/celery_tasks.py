"""
ZimPay Payroll - Celery Tasks

Background payroll batches. Each task opens its own session and runs
the period state machine; a failed batch is rolled back and the task
fails with the error.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from celery import shared_task

from app.database import worker_session
from app.models.enums import CurrencyMode
from app.services.payroll_service import PayrollPeriodService

logger = logging.getLogger(__name__)

PERIOD_ACTIONS = ("run", "refresh")


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ===========================================
# PAYROLL TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.process_payroll_period_task')
def process_payroll_period_task(
    period_id: str,
    center_id: str,
    action: str = "run",
    currency_mode: Optional[str] = None,
) -> Dict[str, Any]:
    """Run or refresh one (period, center) in the background."""
    if action not in PERIOD_ACTIONS:
        raise ValueError(f"Unknown payroll action '{action}', expected one of {PERIOD_ACTIONS}")
    return run_async(_process_payroll_period(
        uuid.UUID(period_id),
        uuid.UUID(center_id),
        action,
        CurrencyMode(currency_mode) if currency_mode else None,
    ))


async def _process_payroll_period(
    period_id: uuid.UUID,
    center_id: uuid.UUID,
    action: str,
    currency_mode: Optional[CurrencyMode],
) -> Dict[str, Any]:
    """Async implementation of the payroll batch task."""
    async with worker_session() as db:
        service = PayrollPeriodService(db)
        try:
            if action == "refresh":
                result = await service.refresh_period(period_id, center_id, currency_mode)
            else:
                result = await service.run_period(period_id, center_id, currency_mode)
        except Exception as e:
            logger.error(f"Background payroll {action} failed for period {period_id}, center {center_id}: {e}")
            raise

    logger.info(
        f"Background payroll {action} finished for period {period_id}, center {center_id}: "
        f"{result.employee_count} payslips"
    )
    return result.to_dict()
