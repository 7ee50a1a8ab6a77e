"""
ZimPay Payroll - Configuration Service Tests

Write-time validation of splits, rates, tax bands, vehicle bands and
default transactions.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.models import TaxBand, TransactionCode
from app.models.enums import CodeCategory, Currency, CurrencyMode, PeriodType
from app.services.configuration_service import ConfigurationService
from app.services.tax_calculators import PAYETaxBand
from app.utils.error_handling import (
    DuplicateEntryException,
    ErrorCode,
    InvalidSplitException,
    NotFoundException,
    ValidationException,
)


class TestCurrencySplits:

    @pytest.mark.asyncio
    async def test_valid_split_saved(self, db_session, payroll_setup):
        split = await ConfigurationService(db_session).save_currency_split(
            payroll_setup.center_id, Decimal("40"), Decimal("60"), date(2025, 3, 1),
        )

        assert split.id is not None
        assert split.is_active is True

    @pytest.mark.asyncio
    async def test_split_within_tolerance_accepted(self, db_session, payroll_setup):
        await ConfigurationService(db_session).save_currency_split(
            payroll_setup.center_id, Decimal("33.33"), Decimal("66.67"), date(2025, 3, 1),
        )

    @pytest.mark.asyncio
    async def test_split_not_totalling_100_rejected(self, db_session, payroll_setup):
        with pytest.raises(InvalidSplitException) as exc_info:
            await ConfigurationService(db_session).save_currency_split(
                payroll_setup.center_id, Decimal("30"), Decimal("60"), date(2025, 3, 1),
            )

        assert exc_info.value.code == ErrorCode.INVALID_SPLIT

    @pytest.mark.asyncio
    async def test_negative_percentage_rejected(self, db_session, payroll_setup):
        with pytest.raises(InvalidSplitException):
            await ConfigurationService(db_session).save_currency_split(
                payroll_setup.center_id, Decimal("-10"), Decimal("110"), date(2025, 3, 1),
            )

    @pytest.mark.asyncio
    async def test_duplicate_effective_date_rejected(self, db_session, payroll_setup):
        with pytest.raises(DuplicateEntryException):
            await ConfigurationService(db_session).save_currency_split(
                payroll_setup.center_id, Decimal("50"), Decimal("50"), date(2025, 1, 1),
            )

    @pytest.mark.asyncio
    async def test_unknown_center_rejected(self, db_session, payroll_setup):
        with pytest.raises(NotFoundException):
            await ConfigurationService(db_session).save_currency_split(
                payroll_setup.period_id, Decimal("50"), Decimal("50"), date(2025, 3, 1),
            )


class TestExchangeRates:

    @pytest.mark.asyncio
    async def test_rate_saved(self, db_session):
        rate = await ConfigurationService(db_session).save_exchange_rate(
            Currency.ZWG, Currency.USD, Decimal("0.04"), date(2025, 1, 1),
        )

        assert rate.rate == Decimal("0.04")

    @pytest.mark.asyncio
    async def test_same_currency_rejected(self, db_session):
        with pytest.raises(ValidationException) as exc_info:
            await ConfigurationService(db_session).save_exchange_rate(
                Currency.USD, Currency.USD, Decimal("1"), date(2025, 1, 1),
            )

        assert exc_info.value.code == ErrorCode.INVALID_RATE

    @pytest.mark.asyncio
    async def test_non_positive_rate_rejected(self, db_session):
        with pytest.raises(ValidationException):
            await ConfigurationService(db_session).save_exchange_rate(
                Currency.USD, Currency.ZWG, Decimal("0"), date(2025, 1, 1),
            )

    @pytest.mark.asyncio
    async def test_duplicate_pair_and_date_rejected(self, db_session, payroll_setup):
        with pytest.raises(DuplicateEntryException):
            await ConfigurationService(db_session).save_exchange_rate(
                Currency.USD, Currency.ZWG, Decimal("26"), date(2025, 1, 1),
            )


class TestTaxBandTables:

    @pytest.mark.asyncio
    async def test_replace_table(self, db_session, payroll_setup):
        bands = [
            PAYETaxBand(lower=Decimal("0"), upper=Decimal("300"), rate=Decimal("0")),
            PAYETaxBand(lower=Decimal("300"), upper=None, rate=Decimal("0.25")),
        ]

        rows = await ConfigurationService(db_session).replace_tax_bands(Currency.USD, PeriodType.MONTHLY, bands)

        stored = (
            await db_session.execute(
                select(TaxBand).where(TaxBand.currency == Currency.USD).order_by(TaxBand.min_salary)
            )
        ).scalars().all()
        assert len(rows) == 2
        assert [band.min_salary for band in stored] == [Decimal("0"), Decimal("300")]
        assert all(band.is_active for band in stored)

    @pytest.mark.asyncio
    async def test_invalid_table_keeps_existing(self, db_session, payroll_setup):
        bands = [
            PAYETaxBand(lower=Decimal("0"), upper=Decimal("300"), rate=Decimal("0")),
            PAYETaxBand(lower=Decimal("400"), upper=None, rate=Decimal("0.25")),
        ]

        with pytest.raises(ValidationException) as exc_info:
            await ConfigurationService(db_session).replace_tax_bands(Currency.USD, PeriodType.MONTHLY, bands)

        stored = (await db_session.execute(select(TaxBand))).scalars().all()
        assert exc_info.value.code == ErrorCode.INVALID_TAX_BANDS
        assert len(stored) == 2


class TestVehicleBands:

    @pytest.mark.asyncio
    async def test_overlap_rejected(self, db_session):
        service = ConfigurationService(db_session)
        await service.save_vehicle_band(1500, 2000, Decimal("50"), Currency.USD, PeriodType.MONTHLY)

        with pytest.raises(ValidationException) as exc_info:
            await service.save_vehicle_band(1999, None, Decimal("80"), Currency.USD, PeriodType.MONTHLY)

        assert exc_info.value.code == ErrorCode.INVALID_VEHICLE_BANDS

    @pytest.mark.asyncio
    async def test_adjacent_bands_saved(self, db_session):
        service = ConfigurationService(db_session)
        await service.save_vehicle_band(1500, 2000, Decimal("50"), Currency.USD, PeriodType.MONTHLY)

        band = await service.save_vehicle_band(2000, None, Decimal("80"), Currency.USD, PeriodType.MONTHLY)

        assert band.engine_capacity_max is None


class TestDefaultTransactions:

    @pytest.mark.asyncio
    async def test_duplicate_default_rejected(self, db_session, payroll_setup):
        housing = TransactionCode(
            code_number="E100",
            code_name="Housing",
            code_category=CodeCategory.EARNING,
            is_benefit=False,
            apply_to_tax=True,
            is_tax_deductible=False,
            is_active=True,
        )
        db_session.add(housing)
        await db_session.commit()
        code_id = housing.id
        service = ConfigurationService(db_session)
        await service.add_default_transaction(
            code_id, payroll_setup.period_id, payroll_setup.center_id, CurrencyMode.USD, Decimal("100"),
        )

        with pytest.raises(DuplicateEntryException):
            await service.add_default_transaction(
                code_id, payroll_setup.period_id, payroll_setup.center_id, CurrencyMode.USD, Decimal("120"),
            )

        other_currency = await service.add_default_transaction(
            code_id, payroll_setup.period_id, payroll_setup.center_id, CurrencyMode.ZWG, Decimal("2500"),
        )
        assert other_currency.transaction_currency == CurrencyMode.ZWG
