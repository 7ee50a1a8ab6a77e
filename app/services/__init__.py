"""
ZimPay Payroll - Services Package

Business logic services.
"""

from app.services.currency_resolver import CurrencyResolver, CurrencyTables, SplitResult
from app.services.transaction_aggregator import LineItem, TransactionAggregator
from app.services.payslip_builder import PayslipBuilder, PayslipPreviewService, PayrollSnapshotLoader
from app.services.period_lock import PeriodLockRegistry, period_locks
from app.services.payroll_service import PayrollPeriodService, PeriodRunResult
from app.services.payslip_service import PayslipService
from app.services.configuration_service import ConfigurationService

# Tax Calculators
from app.services.tax_calculators import TaxBenefitCalculator, PAYECalculator

__all__ = [
    "CurrencyResolver",
    "CurrencyTables",
    "SplitResult",
    "LineItem",
    "TransactionAggregator",
    "PayslipBuilder",
    "PayslipPreviewService",
    "PayrollSnapshotLoader",
    "PeriodLockRegistry",
    "period_locks",
    "PayrollPeriodService",
    "PeriodRunResult",
    "PayslipService",
    "ConfigurationService",
    "TaxBenefitCalculator",
    "PAYECalculator",
]
