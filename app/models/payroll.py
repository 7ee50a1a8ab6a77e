"""
ZimPay Payroll - Payroll Models

Payroll processing records:
- Payroll: named payroll configuration and its employees
- AccountingPeriod: one calendar month of a payroll
- CenterPeriodStatus: run/refresh/close record per (period, cost center)
- Payslip / PayslipTransaction: computed results in ZWG and USD

Payslip lifecycle:
1. draft      - built, amounts mutable
2. finalized  - persisted by a period run, amounts frozen
3. distributed - delivered to the employee
A draft may instead be cancelled.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional, List

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Table, Text, Uuid,
    Enum as SQLEnum, JSON, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.base import BaseModel, EXCHANGE_RATE, PERCENTAGE, money_column
from app.models.enums import (
    CalculationBasis,
    Currency,
    CurrencyMode,
    LineItemType,
    PayrollType,
    PayslipStatus,
    PeriodClassification,
    PeriodState,
    TaxMethod,
)
from app.utils.error_handling import StateError

if TYPE_CHECKING:
    from app.models.employee import CostCenter, Employee
    from app.models.transaction import TransactionCode


payroll_employees = Table(
    "payroll_employees",
    Base.metadata,
    Column("payroll_id", Uuid(as_uuid=True), ForeignKey("payrolls.id", ondelete="CASCADE"), primary_key=True),
    Column("employee_id", Uuid(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), primary_key=True),
    Column("is_active", Boolean, default=True, nullable=False),
)


# ===========================================
# PAYROLL
# ===========================================

class Payroll(BaseModel):
    """Named payroll configuration."""

    __tablename__ = "payrolls"

    payroll_name: Mapped[str] = mapped_column(String(150), nullable=False)
    payroll_type: Mapped[PayrollType] = mapped_column(
        SQLEnum(PayrollType), default=PayrollType.PERIOD, nullable=False,
    )
    payroll_period: Mapped[int] = mapped_column(
        Integer, default=12, nullable=False,
        comment="Pay periods per year: 12, 26 or 52",
    )
    tax_method: Mapped[TaxMethod] = mapped_column(
        SQLEnum(TaxMethod), default=TaxMethod.MONTHLY, nullable=False,
    )
    payroll_currency: Mapped[Currency] = mapped_column(
        SQLEnum(Currency), default=Currency.USD, nullable=False,
        comment="Currency of basic salaries and untagged transaction amounts",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    periods: Mapped[List["AccountingPeriod"]] = relationship(
        "AccountingPeriod",
        back_populates="payroll",
        cascade="all, delete-orphan",
        order_by="AccountingPeriod.period_start",
    )
    employees: Mapped[List["Employee"]] = relationship(
        "Employee", secondary=payroll_employees, viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<Payroll(name={self.payroll_name}, currency={self.payroll_currency.value})>"


# ===========================================
# ACCOUNTING PERIOD
# ===========================================

class AccountingPeriod(BaseModel):
    """One calendar month of a payroll."""

    __tablename__ = "accounting_periods"

    payroll_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payrolls.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    month_name: Mapped[str] = mapped_column(String(20), nullable=False)
    month_index: Mapped[int] = mapped_column(Integer, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    payroll: Mapped["Payroll"] = relationship("Payroll", back_populates="periods")
    center_statuses: Mapped[List["CenterPeriodStatus"]] = relationship(
        "CenterPeriodStatus",
        back_populates="period",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint('payroll_id', 'period_year', 'month_index', name='uq_accounting_period_month'),
    )

    @property
    def display_name(self) -> str:
        return f"{self.month_name} {self.period_year}"

    def classify(self, today: Optional[date] = None) -> PeriodClassification:
        """Current/Future/Past relative to today. Informational only."""
        today = today or date.today()
        if self.period_start <= today <= self.period_end:
            return PeriodClassification.CURRENT
        if self.period_start > today:
            return PeriodClassification.FUTURE
        return PeriodClassification.PAST

    def __repr__(self) -> str:
        return f"<AccountingPeriod({self.display_name}, payroll_id={self.payroll_id})>"


# ===========================================
# CENTER PERIOD STATUS
# ===========================================

class CenterPeriodStatus(BaseModel):
    """
    Processing record for one (period, cost center).

    NotStarted -> (run) -> Completed -> (refresh)* -> (close) -> Closed
    """

    __tablename__ = "center_period_statuses"

    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounting_periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    center_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("cost_centers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_currency: Mapped[CurrencyMode] = mapped_column(
        SQLEnum(CurrencyMode), default=CurrencyMode.DEFAULT, nullable=False,
    )
    period_run_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    pay_run_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
        comment="Last time payslips were (re)computed",
    )
    is_closed_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    employee_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    period: Mapped["AccountingPeriod"] = relationship(
        "AccountingPeriod", back_populates="center_statuses",
    )
    center: Mapped["CostCenter"] = relationship("CostCenter")

    __table_args__ = (
        UniqueConstraint('period_id', 'center_id', name='uq_center_period_status'),
    )

    @property
    def can_be_run(self) -> bool:
        return self.period_run_date is None

    @property
    def can_be_refreshed(self) -> bool:
        return self.period_run_date is not None and not self.is_closed_confirmed

    @property
    def can_be_closed(self) -> bool:
        return self.period_run_date is not None and not self.is_closed_confirmed

    @property
    def state(self) -> PeriodState:
        if self.is_closed_confirmed:
            return PeriodState.CLOSED
        if self.period_run_date is not None:
            return PeriodState.COMPLETED
        return PeriodState.NOT_STARTED

    @property
    def status_display(self) -> str:
        if self.is_closed_confirmed:
            return "Completed"
        if self.period_run_date is not None:
            return "Processed"
        return "Pending"

    def __repr__(self) -> str:
        return (
            f"<CenterPeriodStatus(period_id={self.period_id}, center_id={self.center_id}, "
            f"state={self.state.value})>"
        )


# ===========================================
# PAYSLIP
# ===========================================

class Payslip(BaseModel):
    """
    Employee payslip for one accounting period.

    Amounts are held in both currencies; exchange_rate is ZWG per 1 USD.
    """

    __tablename__ = "payslips"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounting_periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payroll_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payrolls.id", ondelete="CASCADE"),
        nullable=False,
    )
    center_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("cost_centers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    payslip_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[PayslipStatus] = mapped_column(
        SQLEnum(PayslipStatus), default=PayslipStatus.DRAFT, nullable=False,
    )

    # Currency resolution used for this payslip
    currency_mode: Mapped[CurrencyMode] = mapped_column(SQLEnum(CurrencyMode), nullable=False)
    base_currency: Mapped[Currency] = mapped_column(SQLEnum(Currency), nullable=False)
    zwg_percentage: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    usd_percentage: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(
        EXCHANGE_RATE, default=Decimal("1"), nullable=False,
    )

    taxable_income: Mapped[Decimal] = money_column(
        comment="In base currency",
    )

    gross_zwg: Mapped[Decimal] = money_column()
    gross_usd: Mapped[Decimal] = money_column()
    deductions_zwg: Mapped[Decimal] = money_column()
    deductions_usd: Mapped[Decimal] = money_column()
    paye_zwg: Mapped[Decimal] = money_column()
    paye_usd: Mapped[Decimal] = money_column()
    credits_zwg: Mapped[Decimal] = money_column()
    credits_usd: Mapped[Decimal] = money_column()
    net_zwg: Mapped[Decimal] = money_column()
    net_usd: Mapped[Decimal] = money_column()

    # Year to date, including this payslip
    ytd_gross_zwg: Mapped[Decimal] = money_column()
    ytd_gross_usd: Mapped[Decimal] = money_column()
    ytd_paye_zwg: Mapped[Decimal] = money_column()
    ytd_paye_usd: Mapped[Decimal] = money_column()

    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    distributed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    employee: Mapped["Employee"] = relationship("Employee", back_populates="payslips")
    period: Mapped["AccountingPeriod"] = relationship("AccountingPeriod")
    transactions: Mapped[List["PayslipTransaction"]] = relationship(
        "PayslipTransaction",
        back_populates="payslip",
        cascade="all, delete-orphan",
        order_by="PayslipTransaction.display_order",
    )

    __table_args__ = (
        UniqueConstraint('employee_id', 'period_id', name='uq_payslip_employee_period'),
    )

    def finalize(self) -> None:
        if self.status != PayslipStatus.DRAFT:
            raise StateError(
                f"Payslip {self.payslip_number} cannot be finalized from {self.status.value}",
                current_state=self.status.value,
                operation="finalize",
            )
        self.status = PayslipStatus.FINALIZED
        self.finalized_at = datetime.utcnow()

    def mark_distributed(self) -> None:
        if self.status != PayslipStatus.FINALIZED:
            raise StateError(
                f"Only finalized payslips can be distributed, {self.payslip_number} is {self.status.value}",
                current_state=self.status.value,
                operation="distribute",
            )
        self.status = PayslipStatus.DISTRIBUTED
        self.distributed_at = datetime.utcnow()

    def cancel(self) -> None:
        if self.status != PayslipStatus.DRAFT:
            raise StateError(
                f"Only draft payslips can be cancelled, {self.payslip_number} is {self.status.value}",
                current_state=self.status.value,
                operation="cancel",
            )
        self.status = PayslipStatus.CANCELLED
        self.cancelled_at = datetime.utcnow()

    def __repr__(self) -> str:
        return (
            f"<Payslip(number={self.payslip_number}, status={self.status.value}, "
            f"net_usd={self.net_usd}, net_zwg={self.net_zwg})>"
        )


# ===========================================
# PAYSLIP TRANSACTION (LINE ITEM)
# ===========================================

class PayslipTransaction(BaseModel):
    """Computed line on a payslip with its calculation audit trail."""

    __tablename__ = "payslip_transactions"

    payslip_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payslips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    transaction_code_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("transaction_codes.id", ondelete="SET NULL"),
        nullable=True,
    )

    description: Mapped[str] = mapped_column(String(200), nullable=False)
    transaction_type: Mapped[LineItemType] = mapped_column(SQLEnum(LineItemType), nullable=False)
    currency: Mapped[Optional[Currency]] = mapped_column(
        SQLEnum(Currency), nullable=True,
        comment="Explicit currency tag; NULL when the line follows the split",
    )

    base_amount: Mapped[Decimal] = money_column(
        comment="Amount in the payslip's base currency before splitting",
    )
    amount_zwg: Mapped[Decimal] = money_column()
    amount_usd: Mapped[Decimal] = money_column()
    employer_amount: Mapped[Decimal] = money_column()

    is_taxable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_manual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Calculation audit trail
    days: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=8, scale=2), nullable=True)
    hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=8, scale=2), nullable=True)
    rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=15, scale=4), nullable=True)
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=15, scale=4), nullable=True)
    calculation_basis: Mapped[CalculationBasis] = mapped_column(
        SQLEnum(CalculationBasis), default=CalculationBasis.AMOUNT, nullable=False,
    )
    is_calculated: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    manual_override: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    calculation_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    payslip: Mapped["Payslip"] = relationship("Payslip", back_populates="transactions")
    transaction_code: Mapped[Optional["TransactionCode"]] = relationship("TransactionCode")

    def __repr__(self) -> str:
        return (
            f"<PayslipTransaction({self.transaction_type.value} {self.description}: "
            f"usd={self.amount_usd}, zwg={self.amount_zwg})>"
        )
