"""
ZimPay Payroll - Shared Enums

Enumerations shared by the payroll, tax, currency and transaction models.
"""

from enum import Enum


class Currency(str, Enum):
    """Currencies a payslip can be paid in."""
    ZWG = "ZWG"
    USD = "USD"


class CurrencyMode(str, Enum):
    """
    How a center's period is paid.

    ZWG/USD pay wholly in that currency; DEFAULT uses the center's
    effective-dated currency split.
    """
    ZWG = "ZWG"
    USD = "USD"
    DEFAULT = "DEFAULT"


class PeriodType(str, Enum):
    """Period a tax table, credit or benefit band is expressed for."""
    MONTHLY = "monthly"
    ANNUAL = "annual"


class TaxMethod(str, Enum):
    """How PAYE is computed for a payroll."""
    MONTHLY = "monthly"
    ANNUALISED = "annualised"


class PayrollType(str, Enum):
    PERIOD = "Period"
    DAILY = "Daily"
    HOURLY = "Hourly"


class CodeCategory(str, Enum):
    """Transaction code classification."""
    EARNING = "Earning"
    DEDUCTION = "Deduction"
    CONTRIBUTION = "Contribution"


class ContributionType(str, Enum):
    """NEC grade contribution rule."""
    AMOUNT = "Amount"
    PERCENTAGE = "Percentage"


class TaxCreditType(str, Enum):
    PERSONAL_ALLOWANCE = "PERSONAL_ALLOWANCE"
    CHILD_ALLOWANCE = "CHILD_ALLOWANCE"
    DISABILITY_ALLOWANCE = "DISABILITY_ALLOWANCE"
    ELDERLY_ALLOWANCE = "ELDERLY_ALLOWANCE"
    BLIND_PERSONS_ALLOWANCE = "BLIND_PERSONS_ALLOWANCE"


class LineItemType(str, Enum):
    """Payslip line classification."""
    EARNING = "earning"
    DEDUCTION = "deduction"
    CONTRIBUTION = "contribution"
    BENEFIT = "benefit"
    TAX = "tax"
    CREDIT = "credit"


class CalculationBasis(str, Enum):
    """Audit trail of how a line amount was derived."""
    DAYS = "days"
    HOURS = "hours"
    AMOUNT = "amount"
    PERCENTAGE = "percentage"


class PayslipStatus(str, Enum):
    """Payslip lifecycle."""
    DRAFT = "draft"
    FINALIZED = "finalized"
    DISTRIBUTED = "distributed"
    CANCELLED = "cancelled"


class PeriodState(str, Enum):
    """Processing state of one (period, center)."""
    NOT_STARTED = "NotStarted"
    RUNNING = "Running"
    COMPLETED = "Completed"
    CLOSED = "Closed"


class PeriodClassification(str, Enum):
    CURRENT = "Current"
    FUTURE = "Future"
    PAST = "Past"
