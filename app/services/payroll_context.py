"""
ZimPay Payroll - Processing Context

Plain snapshots of the rows a payslip computation reads. They are taken
before a batch starts so per-employee work never touches the session.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple

from app.models.employee import Employee, calculate_age
from app.models.enums import Currency, CurrencyMode, TaxMethod
from app.models.payroll import AccountingPeriod, Payroll


@dataclass(frozen=True)
class EmployeeProfile:
    """Employee attributes used in payslip calculation."""
    id: uuid.UUID
    emp_system_id: str
    full_name: str
    center_id: Optional[uuid.UUID]
    basic_salary: Decimal
    date_of_birth: Optional[date] = None
    dependents: int = 0
    disability_status: bool = False
    is_blind: bool = False
    vehicle_engine_capacity: Optional[int] = None
    nec_grade_ids: Tuple[uuid.UUID, ...] = ()

    @classmethod
    def from_model(cls, employee: Employee) -> "EmployeeProfile":
        """Requires employee.nec_grades to be loaded."""
        return cls(
            id=employee.id,
            emp_system_id=employee.emp_system_id,
            full_name=employee.full_name,
            center_id=employee.center_id,
            basic_salary=Decimal(employee.basic_salary or 0),
            date_of_birth=employee.date_of_birth,
            dependents=employee.dependents or 0,
            disability_status=bool(employee.disability_status),
            is_blind=bool(employee.is_blind),
            vehicle_engine_capacity=employee.vehicle_engine_capacity,
            nec_grade_ids=tuple(sorted((grade.id for grade in employee.nec_grades), key=str)),
        )

    def age_on(self, on_date: date) -> Optional[int]:
        return calculate_age(self.date_of_birth, on_date)


@dataclass(frozen=True)
class PeriodContext:
    """Period, payroll and center settings shared by every payslip of a batch."""
    period_id: uuid.UUID
    payroll_id: uuid.UUID
    center_id: uuid.UUID
    period_start: date
    period_end: date
    period_year: int
    month_index: int
    month_name: str
    payroll_currency: Currency
    tax_method: TaxMethod
    currency_mode: CurrencyMode

    @classmethod
    def build(
        cls,
        period: AccountingPeriod,
        payroll: Payroll,
        center_id: uuid.UUID,
        currency_mode: CurrencyMode,
    ) -> "PeriodContext":
        return cls(
            period_id=period.id,
            payroll_id=payroll.id,
            center_id=center_id,
            period_start=period.period_start,
            period_end=period.period_end,
            period_year=period.period_year,
            month_index=period.month_index,
            month_name=period.month_name,
            payroll_currency=Currency(payroll.payroll_currency),
            tax_method=TaxMethod(payroll.tax_method),
            currency_mode=CurrencyMode(currency_mode),
        )

    @property
    def base_currency(self) -> Currency:
        """Currency amounts are computed in before splitting."""
        if self.currency_mode == CurrencyMode.USD:
            return Currency.USD
        if self.currency_mode == CurrencyMode.ZWG:
            return Currency.ZWG
        return self.payroll_currency


@dataclass
class YtdTotals:
    """Year-to-date sums of finalized payslips."""
    gross_zwg: Decimal = field(default_factory=lambda: Decimal("0.00"))
    gross_usd: Decimal = field(default_factory=lambda: Decimal("0.00"))
    paye_zwg: Decimal = field(default_factory=lambda: Decimal("0.00"))
    paye_usd: Decimal = field(default_factory=lambda: Decimal("0.00"))

    def add(self, gross_zwg: Decimal, gross_usd: Decimal, paye_zwg: Decimal, paye_usd: Decimal) -> None:
        self.gross_zwg += Decimal(gross_zwg)
        self.gross_usd += Decimal(gross_usd)
        self.paye_zwg += Decimal(paye_zwg)
        self.paye_usd += Decimal(paye_usd)
