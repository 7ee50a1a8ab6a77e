"""
ZimPay Payroll - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin
from app.models.enums import (
    CalculationBasis,
    CodeCategory,
    ContributionType,
    Currency,
    CurrencyMode,
    LineItemType,
    PayrollType,
    PayslipStatus,
    PeriodClassification,
    PeriodState,
    PeriodType,
    TaxCreditType,
    TaxMethod,
)
from app.models.employee import CostCenter, Employee
from app.models.currency import CurrencySplit, ExchangeRate
from app.models.tax import (
    NecGrade,
    TaxBand,
    TaxCredit,
    VehicleBenefitBand,
    nec_grade_employees,
)
from app.models.transaction import (
    CustomTransaction,
    DefaultTransaction,
    TransactionCode,
    custom_transaction_codes,
    custom_transaction_employees,
)
from app.models.payroll import (
    AccountingPeriod,
    CenterPeriodStatus,
    Payroll,
    Payslip,
    PayslipTransaction,
    payroll_employees,
)

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    # Enums
    "CalculationBasis",
    "CodeCategory",
    "ContributionType",
    "Currency",
    "CurrencyMode",
    "LineItemType",
    "PayrollType",
    "PayslipStatus",
    "PeriodClassification",
    "PeriodState",
    "PeriodType",
    "TaxCreditType",
    "TaxMethod",
    # Master data
    "CostCenter",
    "Employee",
    # Currency
    "CurrencySplit",
    "ExchangeRate",
    # Tax configuration
    "NecGrade",
    "TaxBand",
    "TaxCredit",
    "VehicleBenefitBand",
    "nec_grade_employees",
    # Transactions
    "CustomTransaction",
    "DefaultTransaction",
    "TransactionCode",
    "custom_transaction_codes",
    "custom_transaction_employees",
    # Payroll processing
    "AccountingPeriod",
    "CenterPeriodStatus",
    "Payroll",
    "Payslip",
    "PayslipTransaction",
    "payroll_employees",
]
