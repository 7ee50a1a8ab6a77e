"""
ZimPay Payroll - PAYE Calculator Service

Progressive PAYE using configured tax band tables, one table per
(currency, period type). Each band covers [min_salary, max_salary) and
carries the cumulative tax of the bands below it:

    tax = band.tax_amount + (income - band.min_salary) * band.tax_rate

A table must partition [0, infinity): the first band starts at 0, each
band ends where the next begins and only the last band is open-ended.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence

from app.models.enums import Currency, PeriodType
from app.models.tax import TaxBand
from app.utils.error_handling import ErrorCode, NoMatchingTaxBand, ValidationException


@dataclass(frozen=True)
class PAYETaxBand:
    """Tax band definition."""
    lower: Decimal
    upper: Optional[Decimal]
    rate: Decimal
    base_tax: Decimal = Decimal("0")

    @classmethod
    def from_model(cls, band: TaxBand) -> "PAYETaxBand":
        return cls(
            lower=Decimal(band.min_salary),
            upper=Decimal(band.max_salary) if band.max_salary is not None else None,
            rate=Decimal(band.tax_rate),
            base_tax=Decimal(band.tax_amount or 0),
        )

    def covers(self, income: Decimal) -> bool:
        if income < self.lower:
            return False
        return self.upper is None or income < self.upper

    def calculate_tax(self, income: Decimal) -> Decimal:
        """Tax for an income that falls inside this band."""
        return self.base_tax + (income - self.lower) * self.rate


def validate_band_partition(bands: Sequence[PAYETaxBand]) -> List[PAYETaxBand]:
    """
    Check that bands partition [0, infinity) without gaps or overlaps.

    Returns the bands ordered by lower bound.
    Raises ValidationException describing the first problem found.
    """
    if not bands:
        raise ValidationException(
            "A tax band table needs at least one band",
            code=ErrorCode.INVALID_TAX_BANDS,
        )

    ordered = sorted(bands, key=lambda band: band.lower)
    if ordered[0].lower != 0:
        raise ValidationException(
            f"First tax band must start at 0, found {ordered[0].lower}",
            field="min_salary",
            code=ErrorCode.INVALID_TAX_BANDS,
        )

    for position, band in enumerate(ordered):
        is_last = position == len(ordered) - 1
        if band.rate < 0 or band.base_tax < 0:
            raise ValidationException(
                f"Tax band starting at {band.lower} has a negative rate or base tax",
                field="tax_rate",
                code=ErrorCode.INVALID_TAX_BANDS,
            )
        if band.upper is None:
            if not is_last:
                raise ValidationException(
                    f"Only the top band may be open-ended, band at {band.lower} is not the top band",
                    field="max_salary",
                    code=ErrorCode.INVALID_TAX_BANDS,
                )
            continue
        if band.upper <= band.lower:
            raise ValidationException(
                f"Tax band {band.lower}-{band.upper} must end above its start",
                field="max_salary",
                code=ErrorCode.INVALID_TAX_BANDS,
            )
        if is_last:
            raise ValidationException(
                f"Top tax band must be open-ended, found max {band.upper}",
                field="max_salary",
                code=ErrorCode.INVALID_TAX_BANDS,
            )
        following = ordered[position + 1]
        if following.lower != band.upper:
            problem = "gap" if following.lower > band.upper else "overlap"
            raise ValidationException(
                f"Tax bands have a {problem} between {band.upper} and {following.lower}",
                field="min_salary",
                code=ErrorCode.INVALID_TAX_BANDS,
                details={"band_end": str(band.upper), "next_band_start": str(following.lower)},
            )

    return ordered


class PAYECalculator:
    """
    PAYE calculator over one band table.

    Band tables are trusted at read time; they are validated when saved.
    """

    def __init__(
        self,
        tax_bands: Iterable[PAYETaxBand],
        currency: Currency = Currency.USD,
        period_type: PeriodType = PeriodType.MONTHLY,
    ):
        self.tax_bands = sorted(tax_bands, key=lambda band: band.lower)
        self.currency = currency
        self.period_type = period_type

    def find_band(self, income: Decimal) -> PAYETaxBand:
        for band in self.tax_bands:
            if band.covers(income):
                return band
        raise NoMatchingTaxBand(income, self.currency.value, self.period_type.value)

    def calculate_tax(self, taxable_income: Decimal) -> Decimal:
        """
        Calculate PAYE for a taxable income.

        Returns tax rounded to 2 decimal places.
        Raises NoMatchingTaxBand when no band covers the income.
        """
        income = Decimal(taxable_income)
        band = self.find_band(income)
        return band.calculate_tax(income).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def calculate_tax_with_breakdown(self, taxable_income: Decimal) -> Dict[str, Any]:
        income = Decimal(taxable_income)
        band = self.find_band(income)
        tax = band.calculate_tax(income).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return {
            "taxable_income": income,
            "band_lower": band.lower,
            "band_upper": band.upper,
            "band_rate": band.rate,
            "band_base_tax": band.base_tax,
            "tax": tax,
            "currency": self.currency.value,
            "period_type": self.period_type.value,
        }
