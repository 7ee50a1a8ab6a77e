"""
ZimPay Payroll - Tax Configuration Models

Progressive PAYE bands, NEC grades, tax credits and vehicle benefit bands.
All are read-only to the processing engine.
"""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    Boolean, Column, ForeignKey, Integer, Numeric, String, Table, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.base import BaseModel
from app.models.enums import ContributionType, Currency, PeriodType

if TYPE_CHECKING:
    from app.models.employee import Employee
    from app.models.transaction import TransactionCode


nec_grade_employees = Table(
    "nec_grade_employees",
    Base.metadata,
    Column("nec_grade_id", Uuid(as_uuid=True), ForeignKey("nec_grades.id", ondelete="CASCADE"), primary_key=True),
    Column("employee_id", Uuid(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), primary_key=True),
)


class TaxBand(BaseModel):
    """
    One bracket of a progressive PAYE table.

    A band covers [min_salary, max_salary); the top band has no max.
    Tax for income in the band = tax_amount + (income - min_salary) * tax_rate.
    """

    __tablename__ = "tax_bands"

    currency: Mapped[Currency] = mapped_column(SQLEnum(Currency), nullable=False, index=True)
    period_type: Mapped[PeriodType] = mapped_column(SQLEnum(PeriodType), nullable=False)
    min_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    max_salary: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=7, scale=4),
        nullable=False,
        comment="Fraction, 0.20 = 20%",
    )
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Cumulative tax of the bands below",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<TaxBand({self.currency.value} {self.period_type.value} "
            f"{self.min_salary}-{self.max_salary} @ {self.tax_rate})>"
        )


class NecGrade(BaseModel):
    """
    National Employment Council contribution scheme.

    Contributions are either fixed amounts or percentages (stored as
    percent values) of a base amount, clipped to the thresholds when set.
    """

    __tablename__ = "nec_grades"

    grade_name: Mapped[str] = mapped_column(String(100), nullable=False)
    transaction_code_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("transaction_codes.id", ondelete="RESTRICT"),
        nullable=False,
    )
    contribution_type: Mapped[ContributionType] = mapped_column(
        SQLEnum(ContributionType), nullable=False,
    )
    employee_contribution: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=4), default=Decimal("0"), nullable=False,
    )
    employer_contribution: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=4), default=Decimal("0"), nullable=False,
    )
    min_threshold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    max_threshold: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    transaction_code: Mapped["TransactionCode"] = relationship("TransactionCode")
    employees: Mapped[List["Employee"]] = relationship(
        "Employee",
        secondary=nec_grade_employees,
        back_populates="nec_grades",
    )

    def __repr__(self) -> str:
        return f"<NecGrade(name={self.grade_name}, type={self.contribution_type.value})>"


class TaxCredit(BaseModel):
    """Flat allowance deducted from tax owed for qualifying employees."""

    __tablename__ = "tax_credits"

    credit_name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="PERSONAL_ALLOWANCE, CHILD_ALLOWANCE, ELDERLY_ALLOWANCE, ...",
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    currency: Mapped[Currency] = mapped_column(SQLEnum(Currency), nullable=False)
    period_type: Mapped[PeriodType] = mapped_column(SQLEnum(PeriodType), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<TaxCredit({self.credit_name} {self.credit_amount} {self.currency.value})>"


class VehicleBenefitBand(BaseModel):
    """Benefit-in-kind for company vehicle use, banded on engine capacity."""

    __tablename__ = "vehicle_benefit_bands"

    engine_capacity_min: Mapped[int] = mapped_column(Integer, nullable=False)
    engine_capacity_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    benefit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    currency: Mapped[Currency] = mapped_column(SQLEnum(Currency), nullable=False)
    period_type: Mapped[PeriodType] = mapped_column(SQLEnum(PeriodType), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def covers(self, engine_capacity: int) -> bool:
        if engine_capacity < self.engine_capacity_min:
            return False
        return self.engine_capacity_max is None or engine_capacity < self.engine_capacity_max

    def __repr__(self) -> str:
        return (
            f"<VehicleBenefitBand({self.engine_capacity_min}-{self.engine_capacity_max}cc "
            f"{self.benefit_amount} {self.currency.value})>"
        )
