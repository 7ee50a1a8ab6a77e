"""
ZimPay Payroll - Payslip Builder

Builds one employee's payslip for a period from a batch snapshot.

Calculation (all in the resolved base currency):
1. Lines: basic salary, aggregated default/custom transactions,
   vehicle benefit-in-kind, NEC contributions
2. Taxable income = taxable earnings + benefits - tax-deductible lines
3. PAYE from the band table; tax credits capped at PAYE owed
4. Net = gross - (PAYE + contributions + deductions) + credits

Each untagged line is divided between ZWG and USD with the resolved split.
A line tagged with an explicit currency stays whole in that currency when
the split pays any of it, otherwise it is converted in full to the other
currency.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.employee import Employee
from app.models.enums import (
    CalculationBasis,
    Currency,
    CurrencyMode,
    LineItemType,
    PayslipStatus,
    PeriodType,
    TaxMethod,
)
from app.models.payroll import (
    AccountingPeriod,
    CenterPeriodStatus,
    Payslip,
    PayslipTransaction,
    payroll_employees,
)
from app.services.currency_resolver import CurrencyResolver, CurrencyTables, SplitResult
from app.services.payroll_context import EmployeeProfile, PeriodContext, YtdTotals
from app.services.tax_calculators import TaxBenefitCalculator, load_tax_configuration
from app.services.transaction_aggregator import (
    CenterTransactions,
    LineItem,
    TransactionAggregator,
    aggregate_lines,
)
from app.utils.error_handling import ErrorCode, NotFoundException

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
RATE_PLACES = Decimal("0.000001")
HUNDRED = Decimal("100")
MONTHS_PER_YEAR = Decimal("12")

DEDUCTION_TYPES = (LineItemType.DEDUCTION, LineItemType.CONTRIBUTION, LineItemType.TAX)


def _money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _other(currency: Currency) -> Currency:
    return Currency.USD if currency == Currency.ZWG else Currency.ZWG


def payslip_number(emp_system_id: str, year: int, month: int) -> str:
    return f"PS-{emp_system_id}-{year}{month:02d}"


def tax_year_start(period_start: date, start_month: Optional[int] = None) -> date:
    """First day of the tax year containing period_start."""
    start_month = start_month or settings.tax_year_start_month
    year = period_start.year if period_start.month >= start_month else period_start.year - 1
    return date(year, start_month, 1)


# ===========================================
# RESULT TYPES
# ===========================================

@dataclass
class PricedLine:
    """A line with its base-currency amount and ZWG/USD amounts."""
    line: LineItem
    base_amount: Decimal
    amount_zwg: Decimal
    amount_usd: Decimal
    employer_base: Decimal
    display_order: int = 0

    def amount_in(self, currency: Currency) -> Decimal:
        return self.amount_zwg if currency == Currency.ZWG else self.amount_usd


@dataclass
class PayslipDraft:
    """Unsaved payslip computed for one employee."""
    employee: EmployeeProfile
    context: PeriodContext
    payslip_number: str
    base_currency: Currency
    split: SplitResult
    exchange_rate: Decimal
    lines: List[PricedLine]
    taxable_income: Decimal
    totals: Dict[str, Decimal]
    ytd: YtdTotals

    def _apply_amounts(self, payslip: Payslip) -> None:
        payslip.currency_mode = self.context.currency_mode
        payslip.base_currency = self.base_currency
        payslip.zwg_percentage = self.split.zwg_percentage
        payslip.usd_percentage = self.split.usd_percentage
        payslip.exchange_rate = self.exchange_rate
        payslip.taxable_income = self.taxable_income
        for name, value in self.totals.items():
            setattr(payslip, name, value)
        payslip.ytd_gross_zwg = _money(self.ytd.gross_zwg)
        payslip.ytd_gross_usd = _money(self.ytd.gross_usd)
        payslip.ytd_paye_zwg = _money(self.ytd.paye_zwg)
        payslip.ytd_paye_usd = _money(self.ytd.paye_usd)

    def build_transactions(self) -> List[PayslipTransaction]:
        transactions = []
        for priced in self.lines:
            line = priced.line
            transactions.append(PayslipTransaction(
                transaction_code_id=line.transaction_code_id,
                description=line.description,
                transaction_type=line.item_type,
                currency=line.currency,
                base_amount=priced.base_amount,
                amount_zwg=priced.amount_zwg,
                amount_usd=priced.amount_usd,
                employer_amount=priced.employer_base,
                is_taxable=line.is_taxable,
                is_recurring=line.is_recurring,
                is_manual=False,
                days=line.days,
                hours=line.hours,
                rate=line.rate,
                quantity=line.quantity,
                calculation_basis=line.calculation_basis,
                is_calculated=True,
                manual_override=False,
                calculation_metadata=dict(line.metadata) or None,
                display_order=priced.display_order,
            ))
        return transactions

    def to_model(self) -> Payslip:
        """New draft Payslip with its transactions."""
        payslip = Payslip(
            employee_id=self.employee.id,
            period_id=self.context.period_id,
            payroll_id=self.context.payroll_id,
            center_id=self.context.center_id,
            payslip_number=self.payslip_number,
            status=PayslipStatus.DRAFT,
        )
        self._apply_amounts(payslip)
        payslip.transactions = self.build_transactions()
        return payslip

    def apply_to(self, payslip: Payslip) -> Payslip:
        """Overwrite an existing payslip's amounts and lines in place."""
        payslip.payslip_number = self.payslip_number
        payslip.center_id = self.context.center_id
        payslip.payroll_id = self.context.payroll_id
        self._apply_amounts(payslip)
        payslip.transactions = self.build_transactions()
        return payslip


# ===========================================
# BUILDER
# ===========================================

class _RateTracker:
    """Converts through the currency tables and remembers the rates used."""

    def __init__(self, tables: CurrencyTables, on_date: date):
        self.tables = tables
        self.on_date = on_date
        self.used: Dict[Tuple[Currency, Currency], Decimal] = {}

    def convert(self, amount: Decimal, from_currency: Currency, to_currency: Currency) -> Decimal:
        if from_currency == to_currency or amount == 0:
            return _money(amount)
        converted, rate = self.tables.convert(amount, from_currency, to_currency, self.on_date)
        self.used[(from_currency, to_currency)] = rate
        return converted

    def zwg_per_usd(self) -> Decimal:
        if (Currency.USD, Currency.ZWG) in self.used:
            return self.used[(Currency.USD, Currency.ZWG)].quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
        if (Currency.ZWG, Currency.USD) in self.used:
            rate = self.used[(Currency.ZWG, Currency.USD)]
            return (Decimal("1") / rate).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
        return Decimal("1")


class PayslipBuilder:
    """
    Pure payslip computation over a batch snapshot.

    Holds no mutable state shared between employees, so build_for() may run
    concurrently for different employees.
    """

    def __init__(
        self,
        context: PeriodContext,
        currency_tables: CurrencyTables,
        calculator: TaxBenefitCalculator,
        transactions: CenterTransactions,
        ytd: Optional[Dict[uuid.UUID, YtdTotals]] = None,
    ):
        self.context = context
        self.currency_tables = currency_tables
        self.calculator = calculator
        self.transactions = transactions
        self.ytd = ytd or {}

    @property
    def period_type(self) -> PeriodType:
        if self.context.tax_method == TaxMethod.ANNUALISED:
            return PeriodType.ANNUAL
        return PeriodType.MONTHLY

    def _price(
        self,
        line: LineItem,
        base_amount: Decimal,
        employer_base: Decimal,
        split: SplitResult,
        rates: _RateTracker,
        base_currency: Currency,
    ) -> PricedLine:
        if line.currency is not None:
            tagged = line.currency
            if split.share(tagged) > 0:
                amount_tagged = _money(line.amount)
                amount_other = Decimal("0.00")
            else:
                amount_tagged = Decimal("0.00")
                amount_other = rates.convert(line.amount, tagged, _other(tagged))
            amounts = {tagged: amount_tagged, _other(tagged): amount_other}
        else:
            other = _other(base_currency)
            other_share_base = _money(base_amount * split.share(other) / HUNDRED)
            amounts = {
                base_currency: _money(base_amount - other_share_base),
                other: rates.convert(other_share_base, base_currency, other),
            }

        return PricedLine(
            line=line,
            base_amount=_money(base_amount),
            amount_zwg=amounts[Currency.ZWG],
            amount_usd=amounts[Currency.USD],
            employer_base=_money(employer_base),
        )

    def _nec_lines(self, employee: EmployeeProfile, basic_base: Decimal) -> List[LineItem]:
        rules = [self.calculator.nec_rule(grade_id) for grade_id in employee.nec_grade_ids]
        rules = sorted((rule for rule in rules if rule is not None), key=lambda r: (r.code_number, str(r.grade_id)))

        lines = []
        for rule in rules:
            contribution = self.calculator.compute_nec_contribution(rule, basic_base)
            lines.append(LineItem(
                description=rule.code_name,
                item_type=LineItemType.CONTRIBUTION,
                amount=contribution.employee_amount,
                employer_amount=contribution.employer_amount,
                is_tax_deductible=rule.is_tax_deductible,
                is_recurring=True,
                calculation_basis=(
                    CalculationBasis.PERCENTAGE if contribution.is_percentage else CalculationBasis.AMOUNT
                ),
                rate=rule.employee_contribution if contribution.is_percentage else None,
                transaction_code_id=rule.transaction_code_id,
                code_number=rule.code_number,
                metadata={
                    "nec_grade": rule.grade_name,
                    "contribution_type": rule.contribution_type.value,
                    "base_amount": str(contribution.base_amount),
                },
            ))
        return lines

    def _tax_and_credits(
        self,
        employee: EmployeeProfile,
        taxable_income: Decimal,
        base_currency: Currency,
    ) -> Tuple[Decimal, Decimal, Dict[str, object], List[dict]]:
        """PAYE, applied credits, PAYE line metadata and matched credit items."""
        on_date = self.context.period_end
        period_type = self.period_type
        # Annualised tax runs the annual tables on twelve times the month
        income = taxable_income * MONTHS_PER_YEAR if period_type == PeriodType.ANNUAL else taxable_income
        band = self.calculator.tax_breakdown(income, base_currency, period_type)
        credit_breakdown = self.calculator.tax_credit_breakdown(employee, base_currency, period_type, on_date)
        if period_type == PeriodType.ANNUAL:
            tax = _money(band["tax"] / MONTHS_PER_YEAR)
            credits = _money(credit_breakdown.total / MONTHS_PER_YEAR)
        else:
            tax = band["tax"]
            credits = credit_breakdown.total

        applied = min(credits, tax)
        metadata = {
            "taxable_income": str(taxable_income),
            "tax_method": self.context.tax_method.value,
            "credits_available": str(credits),
            "band": {
                key: str(value) if value is not None else None
                for key, value in band.items()
            },
        }
        return tax, applied, metadata, list(credit_breakdown.items)

    def build_for(self, employee: EmployeeProfile) -> PayslipDraft:
        """
        Compute a draft payslip for one employee.

        Raises ConfigurationError subclasses for missing tax bands, splits,
        rates or invalid custom transaction hours.
        """
        context = self.context
        base_currency = context.base_currency
        payroll_currency = context.payroll_currency
        split = self.currency_tables.split_for_mode(context.currency_mode, context.center_id, context.period_end)
        rates = _RateTracker(self.currency_tables, context.period_end)

        # Earnings, deductions and contributions in their own currency
        lines: List[LineItem] = []
        if employee.basic_salary:
            lines.append(LineItem(
                description="Basic Salary",
                item_type=LineItemType.EARNING,
                amount=_money(employee.basic_salary),
                is_taxable=True,
                is_recurring=True,
                calculation_basis=CalculationBasis.AMOUNT,
            ))
        lines.extend(aggregate_lines(employee, self.transactions, context.currency_mode))

        # (line, amount in base currency, employer amount in base currency)
        entries: List[Tuple[LineItem, Decimal, Decimal]] = []
        for line in lines:
            source = line.currency or payroll_currency
            entries.append((
                line,
                rates.convert(line.amount, source, base_currency),
                rates.convert(line.employer_amount, source, base_currency),
            ))

        # Lines computed directly in the base currency
        basic_base = rates.convert(employee.basic_salary, payroll_currency, base_currency)
        derived: List[LineItem] = []

        vehicle_benefit = self.calculator.compute_vehicle_benefit(
            employee.vehicle_engine_capacity, base_currency, self.period_type,
        )
        if self.period_type == PeriodType.ANNUAL:
            vehicle_benefit = _money(vehicle_benefit / MONTHS_PER_YEAR)
        if vehicle_benefit > 0:
            derived.append(LineItem(
                description="Vehicle Benefit",
                item_type=LineItemType.BENEFIT,
                amount=vehicle_benefit,
                is_taxable=True,
                is_recurring=True,
                calculation_basis=CalculationBasis.AMOUNT,
                metadata={"engine_capacity": employee.vehicle_engine_capacity},
            ))
        derived.extend(self._nec_lines(employee, basic_base))
        entries.extend((line, line.amount, line.employer_amount) for line in derived)

        taxable_earnings = sum(
            (amount for line, amount, _ in entries if line.is_taxable),
            Decimal("0"),
        )
        deductible = sum(
            (amount for line, amount, _ in entries if line.is_tax_deductible),
            Decimal("0"),
        )
        taxable_income = _money(max(taxable_earnings - deductible, Decimal("0")))

        tax, credits_applied, tax_metadata, credit_items = self._tax_and_credits(employee, taxable_income, base_currency)
        entries.append((
            LineItem(
                description="PAYE",
                item_type=LineItemType.TAX,
                amount=tax,
                calculation_basis=CalculationBasis.AMOUNT,
                metadata=tax_metadata,
            ),
            tax,
            Decimal("0"),
        ))
        if credits_applied > 0:
            entries.append((
                LineItem(
                    description="Tax Credits",
                    item_type=LineItemType.CREDIT,
                    amount=credits_applied,
                    calculation_basis=CalculationBasis.AMOUNT,
                    metadata={"credits": credit_items},
                ),
                credits_applied,
                Decimal("0"),
            ))

        priced = []
        for order, (line, amount, employer_amount) in enumerate(entries, start=1):
            priced_line = self._price(line, amount, employer_amount, split, rates, base_currency)
            priced_line.display_order = order
            priced.append(priced_line)

        totals = self._totals(priced)
        prior = self.ytd.get(employee.id, YtdTotals())
        ytd = YtdTotals(
            gross_zwg=prior.gross_zwg + totals["gross_zwg"],
            gross_usd=prior.gross_usd + totals["gross_usd"],
            paye_zwg=prior.paye_zwg + totals["paye_zwg"],
            paye_usd=prior.paye_usd + totals["paye_usd"],
        )

        return PayslipDraft(
            employee=employee,
            context=context,
            payslip_number=payslip_number(employee.emp_system_id, context.period_year, context.month_index),
            base_currency=base_currency,
            split=split,
            exchange_rate=rates.zwg_per_usd(),
            lines=priced,
            taxable_income=taxable_income,
            totals=totals,
            ytd=ytd,
        )

    @staticmethod
    def _totals(priced: Sequence[PricedLine]) -> Dict[str, Decimal]:
        totals: Dict[str, Decimal] = {}
        for currency in (Currency.ZWG, Currency.USD):
            suffix = currency.value.lower()
            gross = sum(
                (p.amount_in(currency) for p in priced if p.line.item_type == LineItemType.EARNING),
                Decimal("0"),
            )
            deductions = sum(
                (p.amount_in(currency) for p in priced if p.line.item_type in DEDUCTION_TYPES),
                Decimal("0"),
            )
            paye = sum(
                (p.amount_in(currency) for p in priced if p.line.item_type == LineItemType.TAX),
                Decimal("0"),
            )
            credits = sum(
                (p.amount_in(currency) for p in priced if p.line.item_type == LineItemType.CREDIT),
                Decimal("0"),
            )
            totals[f"gross_{suffix}"] = _money(gross)
            totals[f"deductions_{suffix}"] = _money(deductions)
            totals[f"paye_{suffix}"] = _money(paye)
            totals[f"credits_{suffix}"] = _money(credits)
            totals[f"net_{suffix}"] = _money(gross - deductions + credits)
        return totals


# ===========================================
# SNAPSHOT LOADING
# ===========================================

@dataclass
class PayrollSnapshot:
    """Everything a batch reads, captured before any employee is processed."""
    context: PeriodContext
    builder: PayslipBuilder
    employees: List[EmployeeProfile] = field(default_factory=list)


class PayrollSnapshotLoader:
    """Loads the read-only inputs of a batch for one (period, center)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_period(self, period_id: uuid.UUID) -> AccountingPeriod:
        result = await self.db.execute(
            select(AccountingPeriod)
            .where(AccountingPeriod.id == period_id)
            .options(selectinload(AccountingPeriod.payroll))
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise NotFoundException("Accounting period", period_id, code=ErrorCode.PERIOD_NOT_FOUND)
        return period

    async def get_active_employees(
        self,
        period: AccountingPeriod,
        center_id: uuid.UUID,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> List[Employee]:
        """Active employees of the period's payroll assigned to the center."""
        query = (
            select(Employee)
            .join(payroll_employees, payroll_employees.c.employee_id == Employee.id)
            .where(
                and_(
                    payroll_employees.c.payroll_id == period.payroll_id,
                    payroll_employees.c.is_active == True,  # noqa: E712
                    Employee.center_id == center_id,
                    Employee.is_active == True,  # noqa: E712
                )
            )
            .options(selectinload(Employee.nec_grades))
            .order_by(Employee.emp_system_id)
        )
        if employee_ids is not None:
            query = query.where(Employee.id.in_(list(employee_ids)))

        employees = (await self.db.execute(query)).scalars().all()
        return [employee for employee in employees if employee.is_payable_on(period.period_start)]

    async def load_ytd(
        self,
        period: AccountingPeriod,
        employee_ids: Sequence[uuid.UUID],
    ) -> Dict[uuid.UUID, YtdTotals]:
        """Sums of prior finalized payslips within the period's tax year."""
        if not employee_ids:
            return {}
        year_start = tax_year_start(period.period_start)
        result = await self.db.execute(
            select(Payslip)
            .join(AccountingPeriod, AccountingPeriod.id == Payslip.period_id)
            .where(
                and_(
                    Payslip.employee_id.in_(list(employee_ids)),
                    Payslip.status.in_([PayslipStatus.FINALIZED, PayslipStatus.DISTRIBUTED]),
                    AccountingPeriod.period_start >= year_start,
                    AccountingPeriod.period_start < period.period_start,
                )
            )
        )
        totals: Dict[uuid.UUID, YtdTotals] = {}
        for payslip in result.scalars().all():
            totals.setdefault(payslip.employee_id, YtdTotals()).add(
                payslip.gross_zwg, payslip.gross_usd, payslip.paye_zwg, payslip.paye_usd,
            )
        return totals

    async def load(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        currency_mode: CurrencyMode,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> PayrollSnapshot:
        period = await self.get_period(period_id)
        context = PeriodContext.build(period, period.payroll, center_id, currency_mode)

        employees = await self.get_active_employees(period, center_id, employee_ids)
        profiles = [EmployeeProfile.from_model(employee) for employee in employees]

        currency_tables = await CurrencyResolver(self.db).load_tables(center_ids=[center_id])
        calculator = TaxBenefitCalculator(await load_tax_configuration(self.db))
        transactions = await TransactionAggregator(self.db).load_center_transactions(period_id, center_id)
        ytd = await self.load_ytd(period, [profile.id for profile in profiles])

        builder = PayslipBuilder(context, currency_tables, calculator, transactions, ytd)
        logger.debug(
            f"Snapshot for period {period.display_name}, center {center_id}: "
            f"{len(profiles)} employees, mode {context.currency_mode.value}"
        )
        return PayrollSnapshot(context=context, builder=builder, employees=profiles)


class PayslipPreviewService:
    """Builds unsaved draft payslips for inspection."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.loader = PayrollSnapshotLoader(db)

    async def build(
        self,
        employee_id: uuid.UUID,
        period_id: uuid.UUID,
        currency_mode: Optional[CurrencyMode] = None,
    ) -> Payslip:
        """Draft payslip for one employee; nothing is added to the session."""
        employee = await self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id, code=ErrorCode.EMPLOYEE_NOT_FOUND)
        if employee.center_id is None:
            raise NotFoundException(
                "Cost center",
                message=f"Employee {employee.emp_system_id} is not assigned to a cost center",
            )

        if currency_mode is None:
            status = (
                await self.db.execute(
                    select(CenterPeriodStatus).where(
                        and_(
                            CenterPeriodStatus.period_id == period_id,
                            CenterPeriodStatus.center_id == employee.center_id,
                        )
                    )
                )
            ).scalar_one_or_none()
            currency_mode = status.period_currency if status else CurrencyMode.DEFAULT

        snapshot = await self.loader.load(
            period_id, employee.center_id, currency_mode, employee_ids=[employee_id],
        )
        if not snapshot.employees:
            raise NotFoundException(
                "Employee",
                employee_id,
                message=f"Employee {employee.emp_system_id} is not payable in this period",
                code=ErrorCode.EMPLOYEE_NOT_FOUND,
            )
        draft = snapshot.builder.build_for(snapshot.employees[0])
        return draft.to_model()
