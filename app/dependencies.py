"""
ZimPay Payroll - FastAPI Dependencies

Shared dependencies for database sessions and payroll services.

This module provides dependency injection for:
1. The process-wide period lock registry
2. Service instances bound to the request's database session
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.services.configuration_service import ConfigurationService
from app.services.payroll_service import PayrollPeriodService
from app.services.payslip_builder import PayslipPreviewService
from app.services.payslip_service import PayslipService
from app.services.period_lock import PeriodLockRegistry, get_period_locks


async def get_period_service(
    db: AsyncSession = Depends(get_async_session),
    locks: PeriodLockRegistry = Depends(get_period_locks),
) -> PayrollPeriodService:
    """Period state machine sharing the process-wide lock registry."""
    return PayrollPeriodService(db, locks=locks)


async def get_payslip_service(
    db: AsyncSession = Depends(get_async_session),
) -> PayslipService:
    return PayslipService(db)


async def get_preview_service(
    db: AsyncSession = Depends(get_async_session),
) -> PayslipPreviewService:
    return PayslipPreviewService(db)


async def get_configuration_service(
    db: AsyncSession = Depends(get_async_session),
) -> ConfigurationService:
    return ConfigurationService(db)
