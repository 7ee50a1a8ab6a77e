"""
ZimPay Payroll - Transaction Models

Transaction codes plus the two sources of payslip lines:
- DefaultTransaction: recurring lines per (code, period, center, currency)
- CustomTransaction: ad-hoc hours/amount lines for an explicit employee set
"""

import uuid
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Numeric, String, Table, Text, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.base import BaseModel, money_column
from app.models.enums import CodeCategory, CurrencyMode

if TYPE_CHECKING:
    from app.models.employee import CostCenter, Employee
    from app.models.payroll import AccountingPeriod


custom_transaction_employees = Table(
    "custom_transaction_employees",
    Base.metadata,
    Column("custom_transaction_id", Uuid(as_uuid=True), ForeignKey("custom_transactions.id", ondelete="CASCADE"), primary_key=True),
    Column("employee_id", Uuid(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), primary_key=True),
)

custom_transaction_codes = Table(
    "custom_transaction_codes",
    Base.metadata,
    Column("custom_transaction_id", Uuid(as_uuid=True), ForeignKey("custom_transactions.id", ondelete="CASCADE"), primary_key=True),
    Column("transaction_code_id", Uuid(as_uuid=True), ForeignKey("transaction_codes.id", ondelete="CASCADE"), primary_key=True),
)


# ===========================================
# TRANSACTION CODE
# ===========================================

class TransactionCode(BaseModel):
    """
    Reusable pay code.

    Amount rules when no explicit amount is given:
    - code_amount (fixed) wins
    - otherwise base * code_percentage / 100, clipped to the thresholds
    """

    __tablename__ = "transaction_codes"

    code_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    code_name: Mapped[str] = mapped_column(String(150), nullable=False)
    code_category: Mapped[CodeCategory] = mapped_column(SQLEnum(CodeCategory), nullable=False)

    is_benefit: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="Non-cash benefit: taxable but not paid out",
    )
    apply_to_tax: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
        comment="Earning counts towards taxable income",
    )
    is_tax_deductible: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="Deduction/contribution reduces taxable income",
    )

    code_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    code_percentage: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=7, scale=4), nullable=True,
    )
    minimum_threshold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    maximum_threshold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def is_percentage_based(self) -> bool:
        return self.code_amount is None and self.code_percentage is not None

    def calculate_amount(self, base_amount: Decimal) -> Decimal:
        """Derive the code's amount from a base amount (usually basic salary)."""
        if self.code_amount is not None:
            return Decimal(self.code_amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if self.code_percentage is None:
            return Decimal("0.00")

        amount = Decimal(base_amount) * Decimal(self.code_percentage) / Decimal("100")
        if self.minimum_threshold is not None and amount < self.minimum_threshold:
            amount = Decimal(self.minimum_threshold)
        if self.maximum_threshold is not None and amount > self.maximum_threshold:
            amount = Decimal(self.maximum_threshold)
        return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def __repr__(self) -> str:
        return f"<TransactionCode({self.code_number} {self.code_name} {self.code_category.value})>"


# ===========================================
# DEFAULT (RECURRING) TRANSACTION
# ===========================================

class DefaultTransaction(BaseModel):
    """
    Recurring line applied to every employee of a center for a period.

    transaction_currency ZWG/USD tags the line with an explicit currency;
    DEFAULT lines are in the payroll currency and follow the split.
    """

    __tablename__ = "default_transactions"

    transaction_code_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("transaction_codes.id", ondelete="RESTRICT"),
        nullable=False,
    )
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
    transaction_currency: Mapped[CurrencyMode] = mapped_column(
        SQLEnum(CurrencyMode), default=CurrencyMode.DEFAULT, nullable=False,
    )

    employee_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    employer_amount: Mapped[Decimal] = money_column()
    hours_worked: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=8, scale=2), nullable=True,
    )

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    transaction_code: Mapped["TransactionCode"] = relationship("TransactionCode")
    period: Mapped["AccountingPeriod"] = relationship("AccountingPeriod")
    center: Mapped["CostCenter"] = relationship("CostCenter")

    def soft_delete(self) -> None:
        self.is_deleted = True
        self.deleted_at = datetime.utcnow()

    def __repr__(self) -> str:
        return f"<DefaultTransaction(code_id={self.transaction_code_id}, currency={self.transaction_currency.value})>"


# ===========================================
# CUSTOM (AD-HOC) TRANSACTION
# ===========================================

class CustomTransaction(BaseModel):
    """
    Ad-hoc hours or amount based line for selected employees.

    Amount per employee:
    - use_basic: basic_salary * worked_hours / base_hours
    - otherwise: base_amount * worked_hours / base_hours
    """

    __tablename__ = "custom_transactions"

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
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    worked_hours: Mapped[Decimal] = mapped_column(
        Numeric(precision=8, scale=2), default=Decimal("0"), nullable=False,
    )
    base_hours: Mapped[Decimal] = mapped_column(
        Numeric(precision=8, scale=2), default=Decimal("0"), nullable=False,
    )
    base_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    use_basic: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    employees: Mapped[List["Employee"]] = relationship(
        "Employee", secondary=custom_transaction_employees,
    )
    transaction_codes: Mapped[List["TransactionCode"]] = relationship(
        "TransactionCode", secondary=custom_transaction_codes,
    )

    def __repr__(self) -> str:
        return (
            f"<CustomTransaction(id={self.id}, worked={self.worked_hours}, "
            f"base={self.base_hours}, use_basic={self.use_basic})>"
        )
