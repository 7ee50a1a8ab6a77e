"""
ZimPay Payroll - Tax Calculator Tests

Unit tests for PAYE bands, NEC contributions, tax credits and the
vehicle benefit-in-kind.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.models import TaxCredit, VehicleBenefitBand
from app.models.enums import ContributionType, Currency, PeriodType, TaxCreditType
from app.services.payroll_context import EmployeeProfile
from app.services.tax_calculators import (
    NecRule,
    PAYECalculator,
    PAYETaxBand,
    TaxBenefitCalculator,
    TaxConfiguration,
    calculate_nec_contribution,
    calculate_paye,
    validate_band_partition,
    validate_vehicle_band,
)
from app.utils.error_handling import ErrorCode, NoMatchingTaxBand, ValidationException


USD_BANDS = [
    PAYETaxBand(lower=Decimal("0"), upper=Decimal("500"), rate=Decimal("0")),
    PAYETaxBand(lower=Decimal("500"), upper=None, rate=Decimal("0.20")),
]

ZIMRA_STYLE_BANDS = [
    PAYETaxBand(lower=Decimal("0"), upper=Decimal("100"), rate=Decimal("0")),
    PAYETaxBand(lower=Decimal("100"), upper=Decimal("300"), rate=Decimal("0.20"), base_tax=Decimal("0")),
    PAYETaxBand(lower=Decimal("300"), upper=Decimal("1000"), rate=Decimal("0.25"), base_tax=Decimal("40")),
    PAYETaxBand(lower=Decimal("1000"), upper=None, rate=Decimal("0.30"), base_tax=Decimal("215")),
]


def employee(**overrides) -> EmployeeProfile:
    values = dict(
        id=uuid.uuid4(),
        emp_system_id="E100",
        full_name="Tendai Moyo",
        center_id=uuid.uuid4(),
        basic_salary=Decimal("1000"),
    )
    values.update(overrides)
    return EmployeeProfile(**values)


def credit(name: TaxCreditType, amount: str, currency=Currency.USD, period_type=PeriodType.MONTHLY) -> TaxCredit:
    return TaxCredit(
        credit_name=name.value,
        credit_amount=Decimal(amount),
        currency=currency,
        period_type=period_type,
        is_active=True,
    )


def vehicle_band(low: int, high, amount: str, currency=Currency.USD) -> VehicleBenefitBand:
    return VehicleBenefitBand(
        engine_capacity_min=low,
        engine_capacity_max=high,
        benefit_amount=Decimal(amount),
        currency=currency,
        period_type=PeriodType.MONTHLY,
        is_active=True,
    )


class TestPAYECalculation:
    """Progressive PAYE over a band table."""

    def test_tax_in_second_band(self):
        """800 USD falls in the 20% band above 500: tax is 60.00."""
        assert calculate_paye(Decimal("800"), USD_BANDS) == Decimal("60.00")

    def test_income_below_threshold_is_tax_free(self):
        assert calculate_paye(Decimal("499.99"), USD_BANDS) == Decimal("0.00")

    def test_band_lower_bound_is_inclusive(self):
        """Exactly 500 belongs to the 500+ band and pays nothing on the excess."""
        calculator = PAYECalculator(USD_BANDS)

        assert calculator.find_band(Decimal("500")).lower == Decimal("500")
        assert calculator.calculate_tax(Decimal("500")) == Decimal("0.00")

    def test_cumulative_base_tax(self):
        """1500 = 215 + 500 * 0.30 = 365."""
        assert calculate_paye(Decimal("1500"), ZIMRA_STYLE_BANDS) == Decimal("365.00")

    def test_tax_rounds_half_up(self):
        # 100.025 * 0.20 = 20.005
        assert calculate_paye(Decimal("200.025"), ZIMRA_STYLE_BANDS) == Decimal("20.01")

    def test_negative_income_matches_no_band(self):
        with pytest.raises(NoMatchingTaxBand) as exc_info:
            calculate_paye(Decimal("-1"), USD_BANDS)

        assert exc_info.value.code == ErrorCode.NO_MATCHING_TAX_BAND

    def test_breakdown_reports_band(self):
        breakdown = PAYECalculator(USD_BANDS).calculate_tax_with_breakdown(Decimal("800"))

        assert breakdown["band_lower"] == Decimal("500")
        assert breakdown["band_upper"] is None
        assert breakdown["tax"] == Decimal("60.00")


class TestBandPartition:
    """A table must cover [0, infinity) without gaps or overlaps."""

    def test_valid_table_is_returned_sorted(self):
        ordered = validate_band_partition(list(reversed(ZIMRA_STYLE_BANDS)))

        assert [band.lower for band in ordered] == [Decimal("0"), Decimal("100"), Decimal("300"), Decimal("1000")]

    def test_empty_table_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_band_partition([])

        assert exc_info.value.code == ErrorCode.INVALID_TAX_BANDS

    def test_must_start_at_zero(self):
        with pytest.raises(ValidationException):
            validate_band_partition([PAYETaxBand(lower=Decimal("1"), upper=None, rate=Decimal("0.1"))])

    def test_gap_rejected(self):
        bands = [
            PAYETaxBand(lower=Decimal("0"), upper=Decimal("500"), rate=Decimal("0")),
            PAYETaxBand(lower=Decimal("600"), upper=None, rate=Decimal("0.2")),
        ]

        with pytest.raises(ValidationException) as exc_info:
            validate_band_partition(bands)

        assert "gap" in exc_info.value.message

    def test_overlap_rejected(self):
        bands = [
            PAYETaxBand(lower=Decimal("0"), upper=Decimal("600"), rate=Decimal("0")),
            PAYETaxBand(lower=Decimal("500"), upper=None, rate=Decimal("0.2")),
        ]

        with pytest.raises(ValidationException) as exc_info:
            validate_band_partition(bands)

        assert "overlap" in exc_info.value.message

    def test_top_band_must_be_open_ended(self):
        bands = [PAYETaxBand(lower=Decimal("0"), upper=Decimal("500"), rate=Decimal("0"))]

        with pytest.raises(ValidationException):
            validate_band_partition(bands)

    def test_only_top_band_may_be_open_ended(self):
        bands = [
            PAYETaxBand(lower=Decimal("0"), upper=None, rate=Decimal("0")),
            PAYETaxBand(lower=Decimal("0"), upper=None, rate=Decimal("0.2")),
        ]

        with pytest.raises(ValidationException):
            validate_band_partition(bands)


class TestNecContribution:
    """NEC contributions by amount or percentage."""

    def _rule(self, contribution_type, employee_part, employer_part, minimum=None, maximum=None) -> NecRule:
        return NecRule(
            grade_id=uuid.uuid4(),
            grade_name="Grade A",
            contribution_type=contribution_type,
            employee_contribution=Decimal(employee_part),
            employer_contribution=Decimal(employer_part),
            min_threshold=Decimal(minimum) if minimum else None,
            max_threshold=Decimal(maximum) if maximum else None,
        )

    def test_fixed_amount(self):
        result = calculate_nec_contribution(self._rule(ContributionType.AMOUNT, "5", "7.5"), Decimal("1000"))

        assert result.employee_amount == Decimal("5.00")
        assert result.employer_amount == Decimal("7.50")
        assert result.is_percentage is False

    def test_percentage_of_base(self):
        result = calculate_nec_contribution(self._rule(ContributionType.PERCENTAGE, "1.5", "2"), Decimal("1000"))

        assert result.employee_amount == Decimal("15.00")
        assert result.employer_amount == Decimal("20.00")

    def test_percentage_clipped_to_thresholds(self):
        rule = self._rule(ContributionType.PERCENTAGE, "1", "10", minimum="20", maximum="50")

        result = calculate_nec_contribution(rule, Decimal("1000"))

        assert result.employee_amount == Decimal("20.00")
        assert result.employer_amount == Decimal("50.00")


class TestTaxCredits:
    """Credits matched on employee attributes."""

    def test_personal_and_child_allowances(self):
        calculator = TaxBenefitCalculator(TaxConfiguration(tax_credits=[
            credit(TaxCreditType.PERSONAL_ALLOWANCE, "10"),
            credit(TaxCreditType.CHILD_ALLOWANCE, "5"),
        ]))

        total = calculator.compute_tax_credit(employee(dependents=3), Currency.USD, PeriodType.MONTHLY)

        assert total == Decimal("25.00")

    def test_elderly_allowance_uses_age_on_date(self):
        calculator = TaxBenefitCalculator(TaxConfiguration(
            tax_credits=[credit(TaxCreditType.ELDERLY_ALLOWANCE, "30")],
            elderly_age=55,
        ))
        person = employee(date_of_birth=date(1970, 2, 15))

        before = calculator.compute_tax_credit(person, Currency.USD, PeriodType.MONTHLY, date(2025, 1, 31))
        after = calculator.compute_tax_credit(person, Currency.USD, PeriodType.MONTHLY, date(2025, 2, 28))

        assert before == Decimal("0.00")
        assert after == Decimal("30.00")

    def test_disability_and_blind_flags(self):
        calculator = TaxBenefitCalculator(TaxConfiguration(tax_credits=[
            credit(TaxCreditType.DISABILITY_ALLOWANCE, "15"),
            credit(TaxCreditType.BLIND_PERSONS_ALLOWANCE, "12"),
        ]))

        none = calculator.compute_tax_credit(employee(), Currency.USD, PeriodType.MONTHLY)
        both = calculator.compute_tax_credit(
            employee(disability_status=True, is_blind=True), Currency.USD, PeriodType.MONTHLY,
        )

        assert none == Decimal("0.00")
        assert both == Decimal("27.00")

    def test_credits_in_other_currency_are_ignored(self):
        calculator = TaxBenefitCalculator(TaxConfiguration(tax_credits=[
            credit(TaxCreditType.PERSONAL_ALLOWANCE, "250", currency=Currency.ZWG),
        ]))

        assert calculator.compute_tax_credit(employee(), Currency.USD, PeriodType.MONTHLY) == Decimal("0.00")


class TestVehicleBenefit:
    """Vehicle benefit-in-kind bands on engine capacity."""

    def test_band_match(self):
        """1800cc in the 1500-2000 band is a 50 USD benefit."""
        calculator = TaxBenefitCalculator(TaxConfiguration(vehicle_bands=[
            vehicle_band(0, 1500, "30"),
            vehicle_band(1500, 2000, "50"),
            vehicle_band(2000, None, "80"),
        ]))

        assert calculator.compute_vehicle_benefit(1800, Currency.USD, PeriodType.MONTHLY) == Decimal("50.00")
        assert calculator.compute_vehicle_benefit(2000, Currency.USD, PeriodType.MONTHLY) == Decimal("80.00")

    def test_no_vehicle_no_benefit(self):
        calculator = TaxBenefitCalculator(TaxConfiguration(vehicle_bands=[vehicle_band(0, None, "30")]))

        assert calculator.compute_vehicle_benefit(None, Currency.USD, PeriodType.MONTHLY) == Decimal("0.00")

    def test_overlapping_band_rejected(self):
        existing = [vehicle_band(1500, 2000, "50")]

        with pytest.raises(ValidationException) as exc_info:
            validate_vehicle_band(vehicle_band(1800, 2500, "60"), existing)

        assert exc_info.value.code == ErrorCode.INVALID_VEHICLE_BANDS

    def test_adjacent_band_allowed(self):
        validate_vehicle_band(vehicle_band(2000, 2500, "60"), [vehicle_band(1500, 2000, "50")])

    def test_band_in_other_currency_does_not_overlap(self):
        validate_vehicle_band(
            vehicle_band(1500, 2000, "1250", currency=Currency.ZWG),
            [vehicle_band(1500, 2000, "50")],
        )


class TestCalculatorConfiguration:

    def test_missing_table_for_currency_raises(self):
        calculator = TaxBenefitCalculator(TaxConfiguration(
            tax_bands={(Currency.USD, PeriodType.MONTHLY): USD_BANDS},
        ))

        with pytest.raises(NoMatchingTaxBand):
            calculator.compute_tax(Decimal("800"), Currency.ZWG, PeriodType.MONTHLY)
