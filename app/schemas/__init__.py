"""
ZimPay Payroll - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.payroll import (
    # Period processing
    CurrencyModeRequest,
    PeriodRunRequest,
    AsyncRunRequest,
    AsyncRunResponse,
    PeriodRunResponse,
    CenterStatusResponse,
    PeriodSummaryResponse,
    GeneratePeriodsRequest,
    AccountingPeriodResponse,
    # Payslips
    PayslipTransactionResponse,
    PayslipResponse,
    PayslipListResponse,
    # Configuration
    CurrencySplitCreate,
    CurrencySplitResponse,
    ExchangeRateCreate,
    ExchangeRateResponse,
    TaxBandItem,
    TaxBandTableRequest,
    TaxBandResponse,
    VehicleBenefitBandCreate,
    VehicleBenefitBandResponse,
)

__all__ = [
    "CurrencyModeRequest",
    "PeriodRunRequest",
    "AsyncRunRequest",
    "AsyncRunResponse",
    "PeriodRunResponse",
    "CenterStatusResponse",
    "PeriodSummaryResponse",
    "GeneratePeriodsRequest",
    "AccountingPeriodResponse",
    "PayslipTransactionResponse",
    "PayslipResponse",
    "PayslipListResponse",
    "CurrencySplitCreate",
    "CurrencySplitResponse",
    "ExchangeRateCreate",
    "ExchangeRateResponse",
    "TaxBandItem",
    "TaxBandTableRequest",
    "TaxBandResponse",
    "VehicleBenefitBandCreate",
    "VehicleBenefitBandResponse",
]
