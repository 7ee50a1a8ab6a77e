"""
ZimPay Payroll - Payslip Service

Payslip retrieval and the distribution lifecycle. Amounts are never
changed here; only the period run and refresh write them.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.enums import PayslipStatus
from app.models.payroll import Payslip
from app.utils.error_handling import ErrorCode, NotFoundException

logger = logging.getLogger(__name__)


class PayslipService:
    """Read payslips and move them through draft/finalized/distributed."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_payslip(self, payslip_id: uuid.UUID) -> Payslip:
        result = await self.db.execute(
            select(Payslip)
            .where(Payslip.id == payslip_id)
            .options(selectinload(Payslip.transactions))
        )
        payslip = result.scalar_one_or_none()
        if payslip is None:
            raise NotFoundException("Payslip", payslip_id, code=ErrorCode.PAYSLIP_NOT_FOUND)
        return payslip

    async def list_center_payslips(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        status: Optional[PayslipStatus] = None,
    ) -> List[Payslip]:
        """Payslips of one (period, center) ordered by payslip number."""
        query = (
            select(Payslip)
            .where(
                and_(
                    Payslip.period_id == period_id,
                    Payslip.center_id == center_id,
                )
            )
            .options(selectinload(Payslip.transactions))
            .order_by(Payslip.payslip_number)
        )
        if status is not None:
            query = query.where(Payslip.status == status)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_employee_payslips(self, employee_id: uuid.UUID) -> List[Payslip]:
        result = await self.db.execute(
            select(Payslip)
            .where(Payslip.employee_id == employee_id)
            .order_by(Payslip.payslip_number)
        )
        return list(result.scalars().all())

    async def distribute(self, payslip_id: uuid.UUID) -> Payslip:
        """Mark a finalized payslip as distributed. Allowed after close."""
        payslip = await self.get_payslip(payslip_id)
        payslip.mark_distributed()
        await self.db.commit()
        logger.info(f"Payslip {payslip.payslip_number} distributed")
        return payslip

    async def cancel(self, payslip_id: uuid.UUID) -> Payslip:
        """Cancel a draft payslip."""
        payslip = await self.get_payslip(payslip_id)
        payslip.cancel()
        await self.db.commit()
        logger.info(f"Payslip {payslip.payslip_number} cancelled")
        return payslip
