"""
ZimPay Payroll - Employee Models

Cost centers and employee master records. The processing engine only reads
these; they are maintained by the HR administration workflow.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.currency import CurrencySplit
    from app.models.payroll import Payslip
    from app.models.tax import NecGrade


def calculate_age(date_of_birth: Optional[date], on_date: date) -> Optional[int]:
    """Age in whole years on the given date, None without a birth date."""
    if date_of_birth is None:
        return None
    had_birthday = (on_date.month, on_date.day) >= (date_of_birth.month, date_of_birth.day)
    return on_date.year - date_of_birth.year - (0 if had_birthday else 1)


# ===========================================
# COST CENTER
# ===========================================

class CostCenter(BaseModel):
    """Organizational unit with its own currency split."""

    __tablename__ = "cost_centers"

    center_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    center_name: Mapped[str] = mapped_column(String(150), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    employees: Mapped[List["Employee"]] = relationship(
        "Employee", back_populates="center",
    )
    currency_splits: Mapped[List["CurrencySplit"]] = relationship(
        "CurrencySplit",
        back_populates="center",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<CostCenter(code={self.center_code}, name={self.center_name})>"


# ===========================================
# EMPLOYEE
# ===========================================

class Employee(BaseModel):
    """
    Employee master record.

    Fields read by the payroll engine:
    - basic_salary (in the payroll currency)
    - date_of_birth (elderly allowance)
    - dependents, disability_status, is_blind (tax credits)
    - vehicle_engine_capacity (vehicle benefit-in-kind)
    - NEC grade membership
    - center_id and the active flags
    """

    __tablename__ = "employees"

    emp_system_id: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Staff number shown on payslips",
    )
    firstname: Mapped[str] = mapped_column(String(100), nullable=False)
    surname: Mapped[str] = mapped_column(String(100), nullable=False)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    center_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("cost_centers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    basic_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    # Tax credit attributes
    dependents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    disability_status: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_blind: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    vehicle_engine_capacity: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Engine capacity (cc) of a company vehicle, if any",
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_ex: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="Employee has exited the organization",
    )
    is_ex_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Relationships
    center: Mapped[Optional["CostCenter"]] = relationship(
        "CostCenter", back_populates="employees",
    )
    nec_grades: Mapped[List["NecGrade"]] = relationship(
        "NecGrade",
        secondary="nec_grade_employees",
        back_populates="employees",
    )
    payslips: Mapped[List["Payslip"]] = relationship(
        "Payslip",
        back_populates="employee",
        cascade="all, delete-orphan",
    )

    @property
    def full_name(self) -> str:
        """Get employee's full name."""
        return f"{self.firstname} {self.surname}"

    def age_on(self, on_date: date) -> Optional[int]:
        """Age in whole years on the given date, None without a birth date."""
        return calculate_age(self.date_of_birth, on_date)

    def is_payable_on(self, on_date: date) -> bool:
        """Active and not exited before the given date."""
        if not self.is_active:
            return False
        if self.is_ex and (self.is_ex_on is None or self.is_ex_on < on_date):
            return False
        return True

    def __repr__(self) -> str:
        return f"<Employee(id={self.id}, emp_system_id={self.emp_system_id}, name={self.full_name})>"
