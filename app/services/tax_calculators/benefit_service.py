"""
ZimPay Payroll - Contributions, Credits and Benefits

- NEC contributions: fixed amounts or percentages (percent values) of a
  base amount, clipped to the grade's thresholds when set
- Tax credits: flat allowances matched on employee attributes
- Vehicle benefit-in-kind: banded on engine capacity, [min, max)
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from app.models.enums import ContributionType, Currency, PeriodType, TaxCreditType
from app.models.tax import NecGrade, TaxCredit, VehicleBenefitBand
from app.utils.error_handling import ErrorCode, ValidationException

TWO_PLACES = Decimal("0.01")


# ===========================================
# NEC CONTRIBUTIONS
# ===========================================

@dataclass(frozen=True)
class NecRule:
    """Snapshot of an NEC grade with its transaction code details."""
    grade_id: uuid.UUID
    grade_name: str
    contribution_type: ContributionType
    employee_contribution: Decimal
    employer_contribution: Decimal
    min_threshold: Optional[Decimal] = None
    max_threshold: Optional[Decimal] = None
    transaction_code_id: Optional[uuid.UUID] = None
    code_number: str = ""
    code_name: str = "NEC"
    is_tax_deductible: bool = False

    @classmethod
    def from_model(cls, grade: NecGrade) -> "NecRule":
        code = grade.transaction_code
        return cls(
            grade_id=grade.id,
            grade_name=grade.grade_name,
            contribution_type=grade.contribution_type,
            employee_contribution=Decimal(grade.employee_contribution or 0),
            employer_contribution=Decimal(grade.employer_contribution or 0),
            min_threshold=grade.min_threshold,
            max_threshold=grade.max_threshold,
            transaction_code_id=grade.transaction_code_id,
            code_number=code.code_number if code else "",
            code_name=code.code_name if code else grade.grade_name,
            is_tax_deductible=bool(code.is_tax_deductible) if code else False,
        )


@dataclass(frozen=True)
class NecContribution:
    employee_amount: Decimal
    employer_amount: Decimal
    base_amount: Decimal
    is_percentage: bool


def _clip(amount: Decimal, minimum: Optional[Decimal], maximum: Optional[Decimal]) -> Decimal:
    if minimum is not None and amount < minimum:
        amount = Decimal(minimum)
    if maximum is not None and amount > maximum:
        amount = Decimal(maximum)
    return amount


def calculate_nec_contribution(rule: NecRule, base_amount: Decimal) -> NecContribution:
    """Employee and employer NEC amounts for a base amount."""
    base_amount = Decimal(base_amount)
    if rule.contribution_type == ContributionType.AMOUNT:
        return NecContribution(
            employee_amount=rule.employee_contribution.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
            employer_amount=rule.employer_contribution.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
            base_amount=base_amount,
            is_percentage=False,
        )

    employee = base_amount * rule.employee_contribution / Decimal("100")
    employer = base_amount * rule.employer_contribution / Decimal("100")
    employee = _clip(employee, rule.min_threshold, rule.max_threshold)
    employer = _clip(employer, rule.min_threshold, rule.max_threshold)
    return NecContribution(
        employee_amount=employee.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        employer_amount=employer.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        base_amount=base_amount,
        is_percentage=True,
    )


# ===========================================
# TAX CREDITS
# ===========================================

@dataclass
class CreditBreakdown:
    total: Decimal = Decimal("0.00")
    items: List[dict] = field(default_factory=list)


class TaxCreditCalculator:
    """Matches active tax credit rows against employee attributes."""

    def __init__(self, credits: Sequence[TaxCredit], elderly_age: int = 55):
        self.credits = [credit for credit in credits if credit.is_active]
        self.elderly_age = elderly_age

    def _multiplier(self, credit_name: str, employee, on_date: date) -> int:
        if credit_name == TaxCreditType.PERSONAL_ALLOWANCE.value:
            return 1
        if credit_name == TaxCreditType.CHILD_ALLOWANCE.value:
            return max(int(employee.dependents or 0), 0)
        if credit_name == TaxCreditType.DISABILITY_ALLOWANCE.value:
            return 1 if employee.disability_status else 0
        if credit_name == TaxCreditType.BLIND_PERSONS_ALLOWANCE.value:
            return 1 if employee.is_blind else 0
        if credit_name == TaxCreditType.ELDERLY_ALLOWANCE.value:
            age = employee.age_on(on_date)
            return 1 if age is not None and age >= self.elderly_age else 0
        return 0

    def calculate(
        self,
        employee,
        currency: Currency,
        period_type: PeriodType,
        on_date: Optional[date] = None,
    ) -> CreditBreakdown:
        on_date = on_date or date.today()
        breakdown = CreditBreakdown()
        for credit in self.credits:
            if credit.currency != currency or credit.period_type != period_type:
                continue
            times = self._multiplier(credit.credit_name, employee, on_date)
            if times <= 0:
                continue
            amount = Decimal(credit.credit_amount) * times
            breakdown.total += amount
            breakdown.items.append({
                "credit_name": credit.credit_name,
                "unit_amount": str(credit.credit_amount),
                "count": times,
                "amount": str(amount),
            })
        breakdown.total = breakdown.total.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        return breakdown


# ===========================================
# VEHICLE BENEFIT
# ===========================================

def validate_vehicle_band(
    band: VehicleBenefitBand,
    existing: Sequence[VehicleBenefitBand],
) -> None:
    """Reject inverted bands and overlaps within the same currency and period."""
    if band.engine_capacity_min < 0:
        raise ValidationException(
            "Engine capacity minimum cannot be negative",
            field="engine_capacity_min",
            code=ErrorCode.INVALID_VEHICLE_BANDS,
        )
    if band.engine_capacity_max is not None and band.engine_capacity_max <= band.engine_capacity_min:
        raise ValidationException(
            "Engine capacity maximum must be greater than the minimum",
            field="engine_capacity_max",
            code=ErrorCode.INVALID_VEHICLE_BANDS,
        )

    new_high = band.engine_capacity_max
    for other in existing:
        if other.id is not None and other.id == band.id:
            continue
        if other.currency != band.currency or other.period_type != band.period_type:
            continue
        other_high = other.engine_capacity_max
        starts_before_other_ends = other_high is None or band.engine_capacity_min < other_high
        other_starts_before_end = new_high is None or other.engine_capacity_min < new_high
        if starts_before_other_ends and other_starts_before_end:
            raise ValidationException(
                f"Vehicle benefit band overlaps {other.engine_capacity_min}-{other_high}cc",
                field="engine_capacity_min",
                code=ErrorCode.INVALID_VEHICLE_BANDS,
                details={
                    "existing_min": other.engine_capacity_min,
                    "existing_max": other_high,
                },
            )


class VehicleBenefitCalculator:
    def __init__(self, bands: Sequence[VehicleBenefitBand]):
        self.bands = sorted(
            (band for band in bands if band.is_active),
            key=lambda band: band.engine_capacity_min,
        )

    def find_band(
        self,
        engine_capacity: int,
        currency: Currency,
        period_type: PeriodType,
    ) -> Optional[VehicleBenefitBand]:
        for band in self.bands:
            if band.currency != currency or band.period_type != period_type:
                continue
            if band.covers(engine_capacity):
                return band
        return None

    def calculate(
        self,
        engine_capacity: Optional[int],
        currency: Currency,
        period_type: PeriodType,
    ) -> Decimal:
        """Benefit amount, zero without a vehicle or a matching band."""
        if not engine_capacity:
            return Decimal("0.00")
        band = self.find_band(engine_capacity, currency, period_type)
        if band is None:
            return Decimal("0.00")
        return Decimal(band.benefit_amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
