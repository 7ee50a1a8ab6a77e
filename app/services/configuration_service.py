"""
ZimPay Payroll - Configuration Service

Write-time validation of the tables a payroll run reads. Invalid
configuration is rejected here so it can never reach a batch:

- Currency splits must total 100% within settings.split_tolerance
- Exchange rates must be positive, one per pair and effective date
- A tax band table must partition [0, infinity) for its currency and period
- Vehicle benefit bands may not overlap within a currency and period
- One live default transaction per code, period, center and currency
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import select, and_, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.currency import CurrencySplit, ExchangeRate
from app.models.employee import CostCenter
from app.models.enums import Currency, CurrencyMode, PeriodType
from app.models.payroll import AccountingPeriod
from app.models.tax import TaxBand, VehicleBenefitBand
from app.models.transaction import DefaultTransaction, TransactionCode
from app.services.tax_calculators import PAYETaxBand, validate_band_partition, validate_vehicle_band
from app.utils.error_handling import (
    DuplicateEntryException,
    ErrorCode,
    InvalidSplitException,
    NotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class ConfigurationService:
    """Validated writes to currency, tax and transaction configuration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ===========================================
    # CURRENCY
    # ===========================================

    async def save_currency_split(
        self,
        center_id: uuid.UUID,
        zwg_percentage: Decimal,
        usd_percentage: Decimal,
        effective_date: date,
    ) -> CurrencySplit:
        """
        Add an effective-dated split for a cost center.

        Raises:
            InvalidSplitException: percentages outside 0-100 or not totalling 100
            DuplicateEntryException: an active split already starts on that date
        """
        zwg = Decimal(zwg_percentage)
        usd = Decimal(usd_percentage)
        if zwg < 0 or usd < 0 or zwg > HUNDRED or usd > HUNDRED:
            raise InvalidSplitException(zwg, usd, message="Split percentages must be between 0 and 100")
        if abs(zwg + usd - HUNDRED) > settings.split_tolerance:
            raise InvalidSplitException(zwg, usd)

        if await self.db.get(CostCenter, center_id) is None:
            raise NotFoundException("Cost center", center_id)

        existing = await self.db.execute(
            select(CurrencySplit).where(
                and_(
                    CurrencySplit.center_id == center_id,
                    CurrencySplit.effective_date == effective_date,
                    CurrencySplit.is_active == True,  # noqa: E712
                )
            )
        )
        if existing.scalar_one_or_none():
            raise DuplicateEntryException("Currency split", "effective_date", effective_date.isoformat())

        split = CurrencySplit(
            center_id=center_id,
            zwg_percentage=zwg,
            usd_percentage=usd,
            effective_date=effective_date,
            is_active=True,
        )
        self.db.add(split)
        await self.db.commit()
        logger.info(f"Currency split ZWG {zwg}/USD {usd} saved for center {center_id} from {effective_date}")
        return split

    async def save_exchange_rate(
        self,
        from_currency: Currency,
        to_currency: Currency,
        rate: Decimal,
        effective_date: date,
    ) -> ExchangeRate:
        """Add a directional exchange rate effective from a date."""
        if from_currency == to_currency:
            raise ValidationException(
                "Exchange rate currencies must differ",
                field="to_currency",
                code=ErrorCode.INVALID_RATE,
            )
        rate = Decimal(rate)
        if rate <= 0:
            raise ValidationException(
                f"Exchange rate must be positive, got {rate}",
                field="rate",
                code=ErrorCode.INVALID_RATE,
            )

        existing = await self.db.execute(
            select(ExchangeRate).where(
                and_(
                    ExchangeRate.from_currency == from_currency,
                    ExchangeRate.to_currency == to_currency,
                    ExchangeRate.effective_date == effective_date,
                )
            )
        )
        if existing.scalar_one_or_none():
            raise DuplicateEntryException(
                "Exchange rate",
                "effective_date",
                f"{from_currency.value}/{to_currency.value} {effective_date.isoformat()}",
            )

        exchange_rate = ExchangeRate(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=rate,
            effective_date=effective_date,
        )
        self.db.add(exchange_rate)
        await self.db.commit()
        logger.info(f"Exchange rate {from_currency.value}->{to_currency.value} = {rate} from {effective_date}")
        return exchange_rate

    # ===========================================
    # TAX
    # ===========================================

    async def replace_tax_bands(
        self,
        currency: Currency,
        period_type: PeriodType,
        bands: Sequence[PAYETaxBand],
    ) -> List[TaxBand]:
        """Replace the whole band table of a (currency, period type)."""
        ordered = validate_band_partition(bands)

        await self.db.execute(
            delete(TaxBand).where(
                and_(TaxBand.currency == currency, TaxBand.period_type == period_type)
            )
        )
        rows = [
            TaxBand(
                currency=currency,
                period_type=period_type,
                min_salary=band.lower,
                max_salary=band.upper,
                tax_rate=band.rate,
                tax_amount=band.base_tax,
                is_active=True,
            )
            for band in ordered
        ]
        self.db.add_all(rows)
        await self.db.commit()
        logger.info(f"Replaced {currency.value} {period_type.value} tax table with {len(rows)} bands")
        return rows

    async def save_vehicle_band(
        self,
        engine_capacity_min: int,
        engine_capacity_max: Optional[int],
        benefit_amount: Decimal,
        currency: Currency,
        period_type: PeriodType,
    ) -> VehicleBenefitBand:
        if Decimal(benefit_amount) < 0:
            raise ValidationException(
                "Vehicle benefit amount cannot be negative",
                field="benefit_amount",
                code=ErrorCode.INVALID_VEHICLE_BANDS,
            )
        band = VehicleBenefitBand(
            engine_capacity_min=engine_capacity_min,
            engine_capacity_max=engine_capacity_max,
            benefit_amount=Decimal(benefit_amount),
            currency=currency,
            period_type=period_type,
            is_active=True,
        )
        existing = (
            await self.db.execute(
                select(VehicleBenefitBand).where(
                    and_(
                        VehicleBenefitBand.currency == currency,
                        VehicleBenefitBand.period_type == period_type,
                        VehicleBenefitBand.is_active == True,  # noqa: E712
                    )
                )
            )
        ).scalars().all()
        validate_vehicle_band(band, existing)

        self.db.add(band)
        await self.db.commit()
        return band

    # ===========================================
    # DEFAULT TRANSACTIONS
    # ===========================================

    async def add_default_transaction(
        self,
        transaction_code_id: uuid.UUID,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        transaction_currency: CurrencyMode = CurrencyMode.DEFAULT,
        employee_amount: Optional[Decimal] = None,
        employer_amount: Decimal = Decimal("0.00"),
        hours_worked: Optional[Decimal] = None,
    ) -> DefaultTransaction:
        """Add a recurring line for a center's period, one per code and currency."""
        code = await self.db.get(TransactionCode, transaction_code_id)
        if code is None:
            raise NotFoundException("Transaction code", transaction_code_id)
        if await self.db.get(AccountingPeriod, period_id) is None:
            raise NotFoundException("Accounting period", period_id, code=ErrorCode.PERIOD_NOT_FOUND)

        existing = await self.db.execute(
            select(DefaultTransaction).where(
                and_(
                    DefaultTransaction.transaction_code_id == transaction_code_id,
                    DefaultTransaction.period_id == period_id,
                    DefaultTransaction.center_id == center_id,
                    DefaultTransaction.transaction_currency == transaction_currency,
                    DefaultTransaction.is_deleted == False,  # noqa: E712
                )
            )
        )
        if existing.scalar_one_or_none():
            raise DuplicateEntryException("Default transaction", "code_number", code.code_number)

        row = DefaultTransaction(
            transaction_code_id=transaction_code_id,
            period_id=period_id,
            center_id=center_id,
            transaction_currency=transaction_currency,
            employee_amount=employee_amount,
            employer_amount=employer_amount,
            hours_worked=hours_worked,
            is_deleted=False,
        )
        self.db.add(row)
        await self.db.commit()
        return row
