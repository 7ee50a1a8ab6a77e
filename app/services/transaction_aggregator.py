"""
ZimPay Payroll - Transaction Aggregator

Collects the pay lines of one employee for one period and center:
1. Default (recurring) transactions of the center and period whose
   currency matches the center's mode
2. Custom (ad-hoc) transactions assigned to the employee, expanded once
   per tagged transaction code

Custom amount = source * worked_hours / base_hours where source is the
employee's basic salary (use_basic) or the transaction's base amount.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.employee import Employee
from app.models.enums import CalculationBasis, CodeCategory, Currency, CurrencyMode, LineItemType
from app.models.payroll import CenterPeriodStatus
from app.models.transaction import CustomTransaction, DefaultTransaction, TransactionCode
from app.services.payroll_context import EmployeeProfile
from app.utils.error_handling import InvalidHourRatio, NotFoundException, ErrorCode

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")

CATEGORY_TYPES = {
    CodeCategory.EARNING: LineItemType.EARNING,
    CodeCategory.DEDUCTION: LineItemType.DEDUCTION,
    CodeCategory.CONTRIBUTION: LineItemType.CONTRIBUTION,
}


@dataclass
class LineItem:
    """
    One normalized pay line.

    amount is in `currency` when the line carries an explicit currency,
    otherwise in the payroll currency.
    """
    description: str
    item_type: LineItemType
    amount: Decimal
    currency: Optional[Currency] = None
    employer_amount: Decimal = field(default_factory=lambda: Decimal("0.00"))
    is_taxable: bool = False
    is_tax_deductible: bool = False
    is_recurring: bool = False
    calculation_basis: CalculationBasis = CalculationBasis.AMOUNT
    hours: Optional[Decimal] = None
    days: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    quantity: Optional[Decimal] = None
    transaction_code_id: Optional[uuid.UUID] = None
    code_number: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_cash(self) -> bool:
        return self.item_type != LineItemType.BENEFIT


@dataclass
class CustomAssignment:
    """Custom transaction with its employee set and codes."""
    transaction: CustomTransaction
    employee_ids: FrozenSet[uuid.UUID]
    codes: Tuple[TransactionCode, ...]


@dataclass
class CenterTransactions:
    """Every default and custom transaction of one (period, center)."""
    period_id: uuid.UUID
    center_id: uuid.UUID
    defaults: List[DefaultTransaction] = field(default_factory=list)
    customs: List[CustomAssignment] = field(default_factory=list)


def _currency_matches(row_currency: CurrencyMode, mode: CurrencyMode) -> bool:
    if mode == CurrencyMode.DEFAULT or row_currency == CurrencyMode.DEFAULT:
        return True
    return row_currency == mode


def _code_line_type(code: TransactionCode) -> LineItemType:
    if code.is_benefit:
        return LineItemType.BENEFIT
    return CATEGORY_TYPES[CodeCategory(code.code_category)]


def _code_flags(code: TransactionCode) -> Tuple[bool, bool]:
    """(is_taxable, is_tax_deductible) for lines of this code."""
    category = CodeCategory(code.code_category)
    if code.is_benefit:
        return True, False
    if category == CodeCategory.EARNING:
        return bool(code.apply_to_tax), False
    return False, bool(code.is_tax_deductible)


def calculate_custom_amount(custom: CustomTransaction, basic_salary: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Amount of a custom transaction for one employee.

    Returns (amount, source_amount). Raises InvalidHourRatio on zero base hours.
    """
    base_hours = Decimal(custom.base_hours or 0)
    if base_hours == 0:
        raise InvalidHourRatio(custom.id, custom.worked_hours, custom.base_hours)

    worked_hours = Decimal(custom.worked_hours or 0)
    source = Decimal(basic_salary) if custom.use_basic else Decimal(custom.base_amount or 0)
    amount = (source * worked_hours / base_hours).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return amount, source


def default_line(row: DefaultTransaction, employee: EmployeeProfile) -> LineItem:
    code = row.transaction_code
    is_taxable, is_tax_deductible = _code_flags(code)
    currency = None if row.transaction_currency == CurrencyMode.DEFAULT else Currency(row.transaction_currency.value)

    if row.employee_amount is not None:
        amount = Decimal(row.employee_amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        basis = CalculationBasis.AMOUNT
    else:
        amount = code.calculate_amount(employee.basic_salary)
        basis = CalculationBasis.PERCENTAGE if code.is_percentage_based else CalculationBasis.AMOUNT

    hours = None
    rate = None
    if row.hours_worked:
        hours = Decimal(row.hours_worked)
        rate = (amount / hours).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
        basis = CalculationBasis.HOURS

    metadata: Dict[str, Any] = {"default_transaction_id": str(row.id)}
    if basis == CalculationBasis.PERCENTAGE:
        metadata["percentage"] = str(code.code_percentage)
        metadata["base_amount"] = str(employee.basic_salary)

    return LineItem(
        description=code.code_name,
        item_type=_code_line_type(code),
        amount=amount,
        currency=currency,
        employer_amount=Decimal(row.employer_amount or 0).quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        is_taxable=is_taxable,
        is_tax_deductible=is_tax_deductible,
        is_recurring=True,
        calculation_basis=basis,
        hours=hours,
        rate=rate,
        quantity=hours,
        transaction_code_id=code.id,
        code_number=code.code_number,
        metadata=metadata,
    )


def custom_lines(assignment: CustomAssignment, employee: EmployeeProfile) -> List[LineItem]:
    custom = assignment.transaction
    amount, source = calculate_custom_amount(custom, employee.basic_salary)
    worked_hours = Decimal(custom.worked_hours or 0)
    hourly_rate = (source / Decimal(custom.base_hours)).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)

    lines = []
    for code in sorted(assignment.codes, key=lambda c: c.code_number):
        is_taxable, is_tax_deductible = _code_flags(code)
        lines.append(LineItem(
            description=custom.description or code.code_name,
            item_type=_code_line_type(code),
            amount=amount,
            is_taxable=is_taxable,
            is_tax_deductible=is_tax_deductible,
            is_recurring=False,
            calculation_basis=CalculationBasis.HOURS,
            hours=worked_hours,
            rate=hourly_rate,
            quantity=worked_hours,
            transaction_code_id=code.id,
            code_number=code.code_number,
            metadata={
                "custom_transaction_id": str(custom.id),
                "worked_hours": str(worked_hours),
                "base_hours": str(custom.base_hours),
                "use_basic": bool(custom.use_basic),
                "source_amount": str(source),
            },
        ))
    return lines


def aggregate_lines(
    employee: EmployeeProfile,
    transactions: CenterTransactions,
    mode: CurrencyMode,
) -> List[LineItem]:
    """Deterministically ordered lines for one employee."""
    lines: List[LineItem] = []

    defaults = [
        row for row in transactions.defaults
        if not row.is_deleted and _currency_matches(row.transaction_currency, mode)
    ]
    defaults.sort(key=lambda row: (row.transaction_code.code_number, row.transaction_currency.value, str(row.id)))
    for row in defaults:
        lines.append(default_line(row, employee))

    assignments = [a for a in transactions.customs if employee.id in a.employee_ids]
    assignments.sort(key=lambda a: str(a.transaction.id))
    for assignment in assignments:
        lines.extend(custom_lines(assignment, employee))

    return lines


class TransactionAggregator:
    """Loads and normalizes the transactions of a period and center."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_center_transactions(
        self,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
    ) -> CenterTransactions:
        defaults_result = await self.db.execute(
            select(DefaultTransaction)
            .where(
                and_(
                    DefaultTransaction.period_id == period_id,
                    DefaultTransaction.center_id == center_id,
                    DefaultTransaction.is_deleted == False,  # noqa: E712
                )
            )
            .options(selectinload(DefaultTransaction.transaction_code))
        )
        customs_result = await self.db.execute(
            select(CustomTransaction)
            .where(
                and_(
                    CustomTransaction.period_id == period_id,
                    CustomTransaction.center_id == center_id,
                )
            )
            .options(
                selectinload(CustomTransaction.employees),
                selectinload(CustomTransaction.transaction_codes),
            )
        )

        customs = [
            CustomAssignment(
                transaction=custom,
                employee_ids=frozenset(employee.id for employee in custom.employees),
                codes=tuple(custom.transaction_codes),
            )
            for custom in customs_result.scalars().all()
        ]
        defaults = list(defaults_result.scalars().all())

        logger.debug(
            f"Loaded {len(defaults)} default and {len(customs)} custom transactions "
            f"for period {period_id}, center {center_id}"
        )
        return CenterTransactions(
            period_id=period_id,
            center_id=center_id,
            defaults=defaults,
            customs=customs,
        )

    async def aggregate(
        self,
        employee_id: uuid.UUID,
        period_id: uuid.UUID,
        center_id: uuid.UUID,
        mode: Optional[CurrencyMode] = None,
    ) -> List[LineItem]:
        """Lines for one employee; mode defaults to the center's stored mode."""
        employee = (
            await self.db.execute(
                select(Employee)
                .where(Employee.id == employee_id)
                .options(selectinload(Employee.nec_grades))
            )
        ).scalar_one_or_none()
        if employee is None:
            raise NotFoundException("Employee", employee_id, code=ErrorCode.EMPLOYEE_NOT_FOUND)

        if mode is None:
            status = (
                await self.db.execute(
                    select(CenterPeriodStatus).where(
                        and_(
                            CenterPeriodStatus.period_id == period_id,
                            CenterPeriodStatus.center_id == center_id,
                        )
                    )
                )
            ).scalar_one_or_none()
            mode = status.period_currency if status else CurrencyMode.DEFAULT

        transactions = await self.load_center_transactions(period_id, center_id)
        return aggregate_lines(EmployeeProfile.from_model(employee), transactions, mode)
