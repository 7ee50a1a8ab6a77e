"""
ZimPay Payroll - Payslip Lifecycle Tests

Payslip retrieval, distribution, cancellation and preview.
"""

from decimal import Decimal

import pytest

from app.models.enums import CurrencyMode, PayslipStatus
from app.services.payroll_service import PayrollPeriodService
from app.services.payslip_builder import PayslipPreviewService
from app.services.payslip_service import PayslipService
from app.utils.error_handling import ErrorCode, NotFoundException, StateError


async def run(db_session, payroll_setup, locks, mode=None):
    service = PayrollPeriodService(db_session, locks=locks)
    return await service.run_period(payroll_setup.period_id, payroll_setup.center_id, mode)


class TestPayslipQueries:

    @pytest.mark.asyncio
    async def test_list_center_payslips_ordered(self, db_session, payroll_setup, locks):
        await run(db_session, payroll_setup, locks)

        payslips = await PayslipService(db_session).list_center_payslips(
            payroll_setup.period_id, payroll_setup.center_id,
        )

        assert [p.payslip_number for p in payslips] == ["PS-E001-202501", "PS-E002-202501"]
        assert all(p.transactions for p in payslips)

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, db_session, payroll_setup, locks):
        await run(db_session, payroll_setup, locks)
        service = PayslipService(db_session)

        drafts = await service.list_center_payslips(
            payroll_setup.period_id, payroll_setup.center_id, PayslipStatus.DRAFT,
        )

        assert drafts == []

    @pytest.mark.asyncio
    async def test_payslip_lines_carry_audit_trail(self, db_session, payroll_setup, locks):
        result = await run(db_session, payroll_setup, locks)

        payslip = await PayslipService(db_session).get_payslip(result.payslip_ids[0])
        paye = next(t for t in payslip.transactions if t.description == "PAYE")

        assert [t.display_order for t in payslip.transactions] == sorted(t.display_order for t in payslip.transactions)
        assert paye.calculation_metadata["tax_method"] == "monthly"
        assert paye.amount_usd + paye.amount_zwg > 0

    @pytest.mark.asyncio
    async def test_unknown_payslip(self, db_session, payroll_setup):
        with pytest.raises(NotFoundException) as exc_info:
            await PayslipService(db_session).get_payslip(payroll_setup.period_id)

        assert exc_info.value.code == ErrorCode.PAYSLIP_NOT_FOUND

    @pytest.mark.asyncio
    async def test_employee_payslips(self, db_session, payroll_setup, locks):
        await run(db_session, payroll_setup, locks)

        payslips = await PayslipService(db_session).get_employee_payslips(payroll_setup.employee_ids[1])

        assert [p.payslip_number for p in payslips] == ["PS-E002-202501"]


class TestPayslipTransitions:

    @pytest.mark.asyncio
    async def test_distribute_finalized_payslip(self, db_session, payroll_setup, locks):
        result = await run(db_session, payroll_setup, locks)
        service = PayslipService(db_session)

        payslip = await service.distribute(result.payslip_ids[0])

        assert payslip.status == PayslipStatus.DISTRIBUTED
        assert payslip.distributed_at is not None

    @pytest.mark.asyncio
    async def test_distribute_twice_rejected(self, db_session, payroll_setup, locks):
        result = await run(db_session, payroll_setup, locks)
        payslip_id = result.payslip_ids[0]
        service = PayslipService(db_session)
        await service.distribute(payslip_id)

        with pytest.raises(StateError):
            await service.distribute(payslip_id)

    @pytest.mark.asyncio
    async def test_finalized_payslip_cannot_be_cancelled(self, db_session, payroll_setup, locks):
        result = await run(db_session, payroll_setup, locks)

        with pytest.raises(StateError):
            await PayslipService(db_session).cancel(result.payslip_ids[0])

    @pytest.mark.asyncio
    async def test_distribute_allowed_after_close(self, db_session, payroll_setup, locks):
        result = await run(db_session, payroll_setup, locks)
        await PayrollPeriodService(db_session, locks=locks).close_period(
            payroll_setup.period_id, payroll_setup.center_id,
        )

        payslip = await PayslipService(db_session).distribute(result.payslip_ids[0])

        assert payslip.status == PayslipStatus.DISTRIBUTED


class TestPayslipPreview:

    @pytest.mark.asyncio
    async def test_preview_builds_unsaved_draft(self, db_session, payroll_setup):
        payslip = await PayslipPreviewService(db_session).build(
            payroll_setup.employee_ids[0], payroll_setup.period_id, CurrencyMode.USD,
        )

        assert payslip.status == PayslipStatus.DRAFT
        assert payslip.gross_usd == Decimal("800.00")
        assert payslip.paye_usd == Decimal("60.00")
        assert payslip not in db_session

    @pytest.mark.asyncio
    async def test_preview_uses_stored_currency_mode(self, db_session, payroll_setup, locks):
        await PayrollPeriodService(db_session, locks=locks).update_currency(
            payroll_setup.period_id, payroll_setup.center_id, CurrencyMode.USD,
        )

        payslip = await PayslipPreviewService(db_session).build(
            payroll_setup.employee_ids[0], payroll_setup.period_id,
        )

        assert payslip.currency_mode == CurrencyMode.USD

    @pytest.mark.asyncio
    async def test_preview_unknown_employee(self, db_session, payroll_setup):
        with pytest.raises(NotFoundException):
            await PayslipPreviewService(db_session).build(payroll_setup.period_id, payroll_setup.period_id)
