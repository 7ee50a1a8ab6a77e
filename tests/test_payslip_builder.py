"""
ZimPay Payroll - Payslip Builder Tests

Payslip computation over an in-memory snapshot: currency splitting,
tagged lines, benefits, NEC, credits and YTD.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from app.models import CurrencySplit, DefaultTransaction, ExchangeRate, TaxCredit, TransactionCode
from app.models.enums import (
    CodeCategory,
    ContributionType,
    Currency,
    CurrencyMode,
    LineItemType,
    PayslipStatus,
    PeriodType,
    TaxCreditType,
    TaxMethod,
)
from app.models import VehicleBenefitBand
from app.services.currency_resolver import CurrencyTables
from app.services.payroll_context import EmployeeProfile, PeriodContext, YtdTotals
from app.services.payslip_builder import PayslipBuilder, payslip_number, tax_year_start
from app.services.tax_calculators import NecRule, PAYETaxBand, TaxBenefitCalculator, TaxConfiguration
from app.services.transaction_aggregator import CenterTransactions
from app.utils.error_handling import NoApplicableConfiguration, NoMatchingTaxBand


PERIOD_ID = uuid.uuid4()
CENTER_ID = uuid.uuid4()
PAYROLL_ID = uuid.uuid4()

USD_MONTHLY = [
    PAYETaxBand(lower=Decimal("0"), upper=Decimal("500"), rate=Decimal("0")),
    PAYETaxBand(lower=Decimal("500"), upper=None, rate=Decimal("0.20")),
]
ZWG_MONTHLY = [
    PAYETaxBand(lower=Decimal("0"), upper=Decimal("12500"), rate=Decimal("0")),
    PAYETaxBand(lower=Decimal("12500"), upper=None, rate=Decimal("0.20")),
]
USD_ANNUAL = [
    PAYETaxBand(lower=Decimal("0"), upper=Decimal("6000"), rate=Decimal("0")),
    PAYETaxBand(lower=Decimal("6000"), upper=None, rate=Decimal("0.20")),
]


def context(mode: CurrencyMode = CurrencyMode.DEFAULT, tax_method: TaxMethod = TaxMethod.MONTHLY) -> PeriodContext:
    return PeriodContext(
        period_id=PERIOD_ID,
        payroll_id=PAYROLL_ID,
        center_id=CENTER_ID,
        period_start=date(2025, 1, 1),
        period_end=date(2025, 1, 31),
        period_year=2025,
        month_index=1,
        month_name="January",
        payroll_currency=Currency.USD,
        tax_method=tax_method,
        currency_mode=mode,
    )


def currency_tables(
    with_split: bool = True,
    with_rate: bool = True,
    zwg: str = "30",
    usd: str = "70",
) -> CurrencyTables:
    splits = []
    rates = []
    if with_split:
        splits.append(CurrencySplit(
            center_id=CENTER_ID,
            zwg_percentage=Decimal(zwg),
            usd_percentage=Decimal(usd),
            effective_date=date(2025, 1, 1),
            is_active=True,
        ))
    if with_rate:
        rates.append(ExchangeRate(
            from_currency=Currency.USD,
            to_currency=Currency.ZWG,
            rate=Decimal("25"),
            effective_date=date(2025, 1, 1),
        ))
    return CurrencyTables(splits=splits, rates=rates)


def employee(basic: str = "800", **overrides) -> EmployeeProfile:
    values = dict(
        id=uuid.uuid4(),
        emp_system_id="E001",
        full_name="Farai Ncube",
        center_id=CENTER_ID,
        basic_salary=Decimal(basic),
    )
    values.update(overrides)
    return EmployeeProfile(**values)


def earning_code(number: str = "E100", name: str = "Allowance") -> TransactionCode:
    return TransactionCode(
        id=uuid.uuid4(),
        code_number=number,
        code_name=name,
        code_category=CodeCategory.EARNING,
        is_benefit=False,
        apply_to_tax=True,
        is_tax_deductible=False,
        is_active=True,
    )


def default_row(code: TransactionCode, amount: str, currency=CurrencyMode.DEFAULT) -> DefaultTransaction:
    return DefaultTransaction(
        id=uuid.uuid4(),
        transaction_code_id=code.id,
        transaction_code=code,
        period_id=PERIOD_ID,
        center_id=CENTER_ID,
        transaction_currency=currency,
        employee_amount=Decimal(amount),
        employer_amount=Decimal("0"),
        is_deleted=False,
    )


def builder(
    mode: CurrencyMode = CurrencyMode.DEFAULT,
    configuration: Optional[TaxConfiguration] = None,
    transactions: Optional[CenterTransactions] = None,
    tables: Optional[CurrencyTables] = None,
    tax_method: TaxMethod = TaxMethod.MONTHLY,
    ytd=None,
) -> PayslipBuilder:
    configuration = configuration or TaxConfiguration(tax_bands={
        (Currency.USD, PeriodType.MONTHLY): USD_MONTHLY,
        (Currency.ZWG, PeriodType.MONTHLY): ZWG_MONTHLY,
    })
    return PayslipBuilder(
        context(mode, tax_method),
        tables or currency_tables(),
        TaxBenefitCalculator(configuration),
        transactions or CenterTransactions(PERIOD_ID, CENTER_ID),
        ytd,
    )


def line(draft, description: str):
    return next(priced for priced in draft.lines if priced.line.description == description)


class TestCurrencySplit:
    """Untagged lines are divided by the center split."""

    def test_default_transaction_split_30_70(self):
        """1000 USD earning: 700 USD and 300 USD worth of ZWG at 25."""
        allowance = earning_code()
        transactions = CenterTransactions(PERIOD_ID, CENTER_ID, defaults=[default_row(allowance, "1000")])

        draft = builder(transactions=transactions).build_for(employee(basic="0"))
        priced = line(draft, "Allowance")

        assert priced.base_amount == Decimal("1000.00")
        assert priced.amount_usd == Decimal("700.00")
        assert priced.amount_zwg == Decimal("7500.00")

    def test_totals_in_both_currencies(self):
        draft = builder().build_for(employee(basic="800"))

        assert draft.taxable_income == Decimal("800.00")
        assert draft.totals["gross_usd"] == Decimal("560.00")
        assert draft.totals["gross_zwg"] == Decimal("6000.00")
        assert draft.totals["paye_usd"] == Decimal("42.00")
        assert draft.totals["paye_zwg"] == Decimal("450.00")
        assert draft.totals["net_usd"] == Decimal("518.00")
        assert draft.totals["net_zwg"] == Decimal("5550.00")
        assert draft.exchange_rate == Decimal("25.000000")
        assert draft.split.zwg_percentage == Decimal("30")

    def test_usd_mode_pays_everything_in_usd(self):
        draft = builder(mode=CurrencyMode.USD).build_for(employee(basic="800"))

        assert draft.totals["gross_usd"] == Decimal("800.00")
        assert draft.totals["gross_zwg"] == Decimal("0.00")
        assert draft.totals["paye_usd"] == Decimal("60.00")
        assert draft.totals["net_usd"] == Decimal("740.00")
        assert draft.exchange_rate == Decimal("1")

    def test_zwg_mode_taxes_in_zwg(self):
        """800 USD = 20000 ZWG, tax (20000 - 12500) * 0.20 = 1500."""
        draft = builder(mode=CurrencyMode.ZWG).build_for(employee(basic="800"))

        assert draft.base_currency == Currency.ZWG
        assert draft.taxable_income == Decimal("20000.00")
        assert draft.totals["paye_zwg"] == Decimal("1500.00")
        assert draft.totals["gross_usd"] == Decimal("0.00")

    def test_missing_split_raises(self):
        with pytest.raises(NoApplicableConfiguration):
            builder(tables=currency_tables(with_split=False)).build_for(employee())

    def test_missing_rate_raises(self):
        with pytest.raises(NoApplicableConfiguration):
            builder(tables=currency_tables(with_rate=False)).build_for(employee())

    def test_missing_band_table_raises(self):
        configuration = TaxConfiguration(tax_bands={(Currency.USD, PeriodType.MONTHLY): USD_MONTHLY})

        with pytest.raises(NoMatchingTaxBand):
            builder(mode=CurrencyMode.ZWG, configuration=configuration).build_for(employee())


class TestTaggedLines:
    """Lines with an explicit currency are not split."""

    def test_tagged_line_stays_in_its_currency(self):
        bonus = earning_code("E500", "USD Bonus")
        transactions = CenterTransactions(PERIOD_ID, CENTER_ID, defaults=[
            default_row(bonus, "50", CurrencyMode.USD),
        ])

        draft = builder(transactions=transactions).build_for(employee(basic="0"))
        priced = line(draft, "USD Bonus")

        assert priced.line.currency == Currency.USD
        assert priced.amount_usd == Decimal("50.00")
        assert priced.amount_zwg == Decimal("0.00")

    def test_zwg_tagged_line_converted_to_base_for_tax(self):
        """2500 ZWG is 100 USD of taxable income but is paid whole in ZWG."""
        bonus = earning_code("E600", "ZWG Bonus")
        transactions = CenterTransactions(PERIOD_ID, CENTER_ID, defaults=[
            default_row(bonus, "2500", CurrencyMode.ZWG),
        ])

        draft = builder(transactions=transactions).build_for(employee(basic="800"))
        priced = line(draft, "ZWG Bonus")

        assert priced.base_amount == Decimal("100.00")
        assert priced.amount_zwg == Decimal("2500.00")
        assert priced.amount_usd == Decimal("0.00")
        assert draft.taxable_income == Decimal("900.00")

    def test_tagged_currency_without_share_is_converted(self):
        """With a 100/0 split a USD-tagged line is converted in full to ZWG."""
        bonus = earning_code("E500", "USD Bonus")
        transactions = CenterTransactions(PERIOD_ID, CENTER_ID, defaults=[
            default_row(bonus, "50", CurrencyMode.USD),
        ])

        draft = builder(
            transactions=transactions,
            tables=currency_tables(zwg="100", usd="0"),
        ).build_for(employee(basic="800"))
        priced = line(draft, "USD Bonus")

        assert priced.amount_usd == Decimal("0.00")
        assert priced.amount_zwg == Decimal("1250.00")


class TestBenefitsAndContributions:

    def test_vehicle_benefit_is_taxable_but_not_paid(self):
        """1800cc adds 50 USD to taxable income, not to gross."""
        configuration = TaxConfiguration(
            tax_bands={(Currency.USD, PeriodType.MONTHLY): USD_MONTHLY},
            vehicle_bands=[VehicleBenefitBand(
                engine_capacity_min=1500,
                engine_capacity_max=2000,
                benefit_amount=Decimal("50"),
                currency=Currency.USD,
                period_type=PeriodType.MONTHLY,
                is_active=True,
            )],
        )

        draft = builder(mode=CurrencyMode.USD, configuration=configuration).build_for(
            employee(basic="800", vehicle_engine_capacity=1800)
        )

        assert line(draft, "Vehicle Benefit").line.item_type == LineItemType.BENEFIT
        assert draft.taxable_income == Decimal("850.00")
        assert draft.totals["paye_usd"] == Decimal("70.00")
        assert draft.totals["gross_usd"] == Decimal("800.00")
        assert draft.totals["net_usd"] == Decimal("730.00")

    def test_nec_contribution_reduces_taxable_income(self):
        grade_id = uuid.uuid4()
        configuration = TaxConfiguration(
            tax_bands={(Currency.USD, PeriodType.MONTHLY): USD_MONTHLY},
            nec_rules={grade_id: NecRule(
                grade_id=grade_id,
                grade_name="NEC Commercial",
                contribution_type=ContributionType.PERCENTAGE,
                employee_contribution=Decimal("1.5"),
                employer_contribution=Decimal("2"),
                code_number="N100",
                code_name="NEC Levy",
                is_tax_deductible=True,
            )},
        )

        draft = builder(mode=CurrencyMode.USD, configuration=configuration).build_for(
            employee(basic="800", nec_grade_ids=(grade_id,))
        )
        nec = line(draft, "NEC Levy")

        assert nec.amount_usd == Decimal("12.00")
        assert nec.employer_base == Decimal("16.00")
        assert draft.taxable_income == Decimal("788.00")
        assert draft.totals["paye_usd"] == Decimal("57.60")
        assert draft.totals["deductions_usd"] == Decimal("69.60")
        assert draft.totals["net_usd"] == Decimal("730.40")

    def test_credits_capped_at_tax(self):
        configuration = TaxConfiguration(
            tax_bands={(Currency.USD, PeriodType.MONTHLY): USD_MONTHLY},
            tax_credits=[TaxCredit(
                credit_name=TaxCreditType.PERSONAL_ALLOWANCE.value,
                credit_amount=Decimal("100"),
                currency=Currency.USD,
                period_type=PeriodType.MONTHLY,
                is_active=True,
            )],
        )

        draft = builder(mode=CurrencyMode.USD, configuration=configuration).build_for(employee(basic="800"))

        assert draft.totals["paye_usd"] == Decimal("60.00")
        assert draft.totals["credits_usd"] == Decimal("60.00")
        assert draft.totals["net_usd"] == Decimal("800.00")
        assert line(draft, "PAYE").line.metadata["credits_available"] == "100.00"

    def test_paye_line_records_band_and_credit_items(self):
        configuration = TaxConfiguration(
            tax_bands={(Currency.USD, PeriodType.MONTHLY): USD_MONTHLY},
            tax_credits=[TaxCredit(
                credit_name=TaxCreditType.CHILD_ALLOWANCE.value,
                credit_amount=Decimal("10"),
                currency=Currency.USD,
                period_type=PeriodType.MONTHLY,
                is_active=True,
            )],
        )

        draft = builder(mode=CurrencyMode.USD, configuration=configuration).build_for(
            employee(basic="800", dependents=2)
        )

        band = line(draft, "PAYE").line.metadata["band"]
        assert band["band_lower"] == "500"
        assert band["band_upper"] is None
        assert band["band_rate"] == "0.20"
        assert band["tax"] == "60.00"
        credit_items = line(draft, "Tax Credits").line.metadata["credits"]
        assert credit_items == [{
            "credit_name": TaxCreditType.CHILD_ALLOWANCE.value,
            "unit_amount": "10",
            "count": 2,
            "amount": "20",
        }]


class TestTaxMethods:

    def test_annualised_tax(self):
        """800 * 12 = 9600; (9600 - 6000) * 0.20 / 12 = 60."""
        configuration = TaxConfiguration(tax_bands={(Currency.USD, PeriodType.ANNUAL): USD_ANNUAL})

        draft = builder(
            mode=CurrencyMode.USD,
            configuration=configuration,
            tax_method=TaxMethod.ANNUALISED,
        ).build_for(employee(basic="800"))

        assert draft.totals["paye_usd"] == Decimal("60.00")


class TestDraftOutput:

    def test_ytd_adds_prior_totals(self):
        person = employee(basic="800")
        prior = {person.id: YtdTotals(gross_usd=Decimal("800.00"), paye_usd=Decimal("60.00"))}

        draft = builder(mode=CurrencyMode.USD, ytd=prior).build_for(person)

        assert draft.ytd.gross_usd == Decimal("1600.00")
        assert draft.ytd.paye_usd == Decimal("120.00")

    def test_build_is_deterministic(self):
        person = employee(basic="987.65")
        payroll_builder = builder()

        first = payroll_builder.build_for(person)
        second = payroll_builder.build_for(person)

        assert first.totals == second.totals
        assert [(p.line.description, p.amount_zwg, p.amount_usd) for p in first.lines] == [
            (p.line.description, p.amount_zwg, p.amount_usd) for p in second.lines
        ]

    def test_to_model_builds_draft_payslip(self):
        draft = builder().build_for(employee(basic="800"))

        payslip = draft.to_model()

        assert payslip.status == PayslipStatus.DRAFT
        assert payslip.payslip_number == "PS-E001-202501"
        assert payslip.gross_usd == Decimal("560.00")
        assert [t.display_order for t in payslip.transactions] == list(range(1, len(payslip.transactions) + 1))
        assert payslip.transactions[0].description == "Basic Salary"

    def test_payslip_number_and_tax_year(self):
        assert payslip_number("E042", 2025, 3) == "PS-E042-202503"
        assert tax_year_start(date(2025, 3, 1), start_month=1) == date(2025, 1, 1)
        assert tax_year_start(date(2025, 2, 1), start_month=4) == date(2024, 4, 1)
