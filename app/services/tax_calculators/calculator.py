"""
ZimPay Payroll - Tax & Benefit Calculator

Pure calculations over a snapshot of tax configuration:
- compute_tax: progressive PAYE for a (currency, period type) table
- compute_nec_contribution: NEC employee/employer amounts
- compute_tax_credit: matching tax credits for an employee
- compute_vehicle_benefit: vehicle benefit-in-kind

The snapshot is loaded once per batch by load_tax_configuration() so the
calculator itself never touches the database.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.enums import Currency, PeriodType
from app.models.tax import NecGrade, TaxBand, TaxCredit, VehicleBenefitBand
from app.services.tax_calculators.benefit_service import (
    CreditBreakdown,
    NecContribution,
    NecRule,
    TaxCreditCalculator,
    VehicleBenefitCalculator,
    calculate_nec_contribution,
)
from app.services.tax_calculators.paye_service import PAYECalculator, PAYETaxBand
from app.utils.error_handling import NoMatchingTaxBand

logger = logging.getLogger(__name__)


@dataclass
class TaxConfiguration:
    """Read-only snapshot of the tax tables used by one batch."""
    tax_bands: Dict[Tuple[Currency, PeriodType], List[PAYETaxBand]] = field(default_factory=dict)
    nec_rules: Dict[object, NecRule] = field(default_factory=dict)
    tax_credits: List[TaxCredit] = field(default_factory=list)
    vehicle_bands: List[VehicleBenefitBand] = field(default_factory=list)
    elderly_age: int = 55

    @classmethod
    def from_rows(
        cls,
        bands: Sequence[TaxBand] = (),
        grades: Sequence[NecGrade] = (),
        credits: Sequence[TaxCredit] = (),
        vehicle_bands: Sequence[VehicleBenefitBand] = (),
        elderly_age: Optional[int] = None,
    ) -> "TaxConfiguration":
        tables: Dict[Tuple[Currency, PeriodType], List[PAYETaxBand]] = defaultdict(list)
        for band in bands:
            tables[(band.currency, band.period_type)].append(PAYETaxBand.from_model(band))
        return cls(
            tax_bands=dict(tables),
            nec_rules={grade.id: NecRule.from_model(grade) for grade in grades if grade.is_active},
            tax_credits=list(credits),
            vehicle_bands=list(vehicle_bands),
            elderly_age=elderly_age if elderly_age is not None else settings.elderly_allowance_age,
        )


class TaxBenefitCalculator:
    """Stateless calculations over a TaxConfiguration."""

    def __init__(self, configuration: TaxConfiguration):
        self.configuration = configuration
        self._paye = {
            key: PAYECalculator(bands, currency=key[0], period_type=key[1])
            for key, bands in configuration.tax_bands.items()
        }
        self._credits = TaxCreditCalculator(configuration.tax_credits, configuration.elderly_age)
        self._vehicles = VehicleBenefitCalculator(configuration.vehicle_bands)

    def compute_tax(self, income: Decimal, currency: Currency, period_type: PeriodType) -> Decimal:
        return self.tax_breakdown(income, currency, period_type)["tax"]

    def tax_breakdown(self, income: Decimal, currency: Currency, period_type: PeriodType) -> dict:
        calculator = self._paye.get((Currency(currency), PeriodType(period_type)))
        if calculator is None:
            raise NoMatchingTaxBand(income, Currency(currency).value, PeriodType(period_type).value)
        return calculator.calculate_tax_with_breakdown(income)

    def nec_rule(self, grade_id) -> Optional[NecRule]:
        return self.configuration.nec_rules.get(grade_id)

    def compute_nec_contribution(self, grade: NecRule, base_amount: Decimal) -> NecContribution:
        return calculate_nec_contribution(grade, base_amount)

    def compute_tax_credit(
        self,
        employee,
        currency: Currency,
        period_type: PeriodType,
        on_date: Optional[date] = None,
    ) -> Decimal:
        return self.tax_credit_breakdown(employee, currency, period_type, on_date).total

    def tax_credit_breakdown(
        self,
        employee,
        currency: Currency,
        period_type: PeriodType,
        on_date: Optional[date] = None,
    ) -> CreditBreakdown:
        return self._credits.calculate(employee, Currency(currency), PeriodType(period_type), on_date)

    def compute_vehicle_benefit(
        self,
        engine_capacity: Optional[int],
        currency: Currency,
        period_type: PeriodType,
    ) -> Decimal:
        return self._vehicles.calculate(engine_capacity, Currency(currency), PeriodType(period_type))


async def load_tax_configuration(db: AsyncSession) -> TaxConfiguration:
    """Snapshot every tax table the calculator needs."""
    bands = (
        await db.execute(select(TaxBand).where(TaxBand.is_active == True))  # noqa: E712
    ).scalars().all()
    grades = (
        await db.execute(
            select(NecGrade)
            .where(NecGrade.is_active == True)  # noqa: E712
            .options(selectinload(NecGrade.transaction_code))
        )
    ).scalars().all()
    credits = (
        await db.execute(select(TaxCredit).where(TaxCredit.is_active == True))  # noqa: E712
    ).scalars().all()
    vehicle_bands = (
        await db.execute(select(VehicleBenefitBand).where(VehicleBenefitBand.is_active == True))  # noqa: E712
    ).scalars().all()

    logger.debug(
        f"Loaded tax configuration: {len(bands)} bands, {len(grades)} NEC grades, "
        f"{len(credits)} credits, {len(vehicle_bands)} vehicle bands"
    )
    return TaxConfiguration.from_rows(bands, grades, credits, vehicle_bands)
