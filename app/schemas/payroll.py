"""
ZimPay Payroll - Payroll Schemas

Pydantic schemas for period processing requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.enums import (
    CalculationBasis,
    Currency,
    CurrencyMode,
    LineItemType,
    PayslipStatus,
    PeriodClassification,
    PeriodState,
    PeriodType,
)


# ===========================================
# PERIOD PROCESSING
# ===========================================

class CurrencyModeRequest(BaseModel):
    """New stored currency mode of a (period, center)."""
    currency_mode: CurrencyMode


class PeriodRunRequest(BaseModel):
    """Run or refresh request; without a mode the stored one is used."""
    currency_mode: Optional[CurrencyMode] = None


class AsyncRunRequest(BaseModel):
    """Queue a run or refresh as a background job."""
    action: Literal["run", "refresh"] = "run"
    currency_mode: Optional[CurrencyMode] = None


class AsyncRunResponse(BaseModel):
    task_id: str
    action: str
    period_id: UUID
    center_id: UUID


class PeriodRunResponse(BaseModel):
    """Committed run or refresh."""
    period_id: UUID
    center_id: UUID
    operation: str
    state: PeriodState
    currency_mode: CurrencyMode
    employee_count: int
    payslip_ids: List[UUID] = []
    removed_payslips: int = 0
    duration_seconds: float
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CenterStatusResponse(BaseModel):
    period_id: UUID
    center_id: UUID
    center_code: str
    center_name: str
    state: PeriodState
    status_display: str
    period_currency: CurrencyMode
    period_run_date: Optional[datetime] = None
    pay_run_date: Optional[datetime] = None
    is_closed_confirmed: bool
    closed_at: Optional[datetime] = None
    employee_count: int
    can_be_run: bool
    can_be_refreshed: bool
    can_be_closed: bool

    model_config = ConfigDict(from_attributes=True)


class PeriodSummaryResponse(BaseModel):
    """Every active center of a period with completion progress."""
    period_id: UUID
    payroll_id: UUID
    display_name: str
    period_start: date
    period_end: date
    classification: PeriodClassification
    completion_percentage: Decimal
    centers: List[CenterStatusResponse] = []
    active_operations: List[Dict[str, str]] = []

    model_config = ConfigDict(from_attributes=True)


class GeneratePeriodsRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)


class AccountingPeriodResponse(BaseModel):
    id: UUID
    payroll_id: UUID
    month_name: str
    month_index: int
    period_year: int
    period_start: date
    period_end: date

    model_config = ConfigDict(from_attributes=True)


# ===========================================
# PAYSLIPS
# ===========================================

class PayslipTransactionResponse(BaseModel):
    """One payslip line."""
    transaction_code_id: Optional[UUID] = None
    description: str
    transaction_type: LineItemType
    currency: Optional[Currency] = None
    base_amount: Decimal
    amount_zwg: Decimal
    amount_usd: Decimal
    employer_amount: Decimal
    is_taxable: bool
    is_recurring: bool
    days: Optional[Decimal] = None
    hours: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    quantity: Optional[Decimal] = None
    calculation_basis: CalculationBasis
    calculation_metadata: Optional[Dict[str, Any]] = None
    display_order: int

    model_config = ConfigDict(from_attributes=True)


class PayslipResponse(BaseModel):
    """Payslip with amounts in both currencies."""
    id: Optional[UUID] = None
    employee_id: UUID
    period_id: UUID
    center_id: UUID
    payslip_number: str
    status: PayslipStatus

    currency_mode: CurrencyMode
    base_currency: Currency
    zwg_percentage: Decimal
    usd_percentage: Decimal
    exchange_rate: Decimal
    taxable_income: Decimal

    gross_zwg: Decimal
    gross_usd: Decimal
    deductions_zwg: Decimal
    deductions_usd: Decimal
    paye_zwg: Decimal
    paye_usd: Decimal
    credits_zwg: Decimal
    credits_usd: Decimal
    net_zwg: Decimal
    net_usd: Decimal

    ytd_gross_zwg: Decimal
    ytd_gross_usd: Decimal
    ytd_paye_zwg: Decimal
    ytd_paye_usd: Decimal

    finalized_at: Optional[datetime] = None
    distributed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    transactions: List[PayslipTransactionResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PayslipListResponse(BaseModel):
    payslips: List[PayslipResponse]
    total: int


# ===========================================
# CONFIGURATION
# ===========================================

class CurrencySplitCreate(BaseModel):
    """Effective-dated ZWG/USD split for a cost center."""
    center_id: UUID
    zwg_percentage: Decimal = Field(..., ge=0, le=100)
    usd_percentage: Decimal = Field(..., ge=0, le=100)
    effective_date: date


class CurrencySplitResponse(BaseModel):
    id: UUID
    center_id: UUID
    zwg_percentage: Decimal
    usd_percentage: Decimal
    effective_date: date
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ExchangeRateCreate(BaseModel):
    """Units of to_currency per 1 from_currency."""
    from_currency: Currency
    to_currency: Currency
    rate: Decimal = Field(..., gt=0)
    effective_date: date


class ExchangeRateResponse(BaseModel):
    id: UUID
    from_currency: Currency
    to_currency: Currency
    rate: Decimal
    effective_date: date

    model_config = ConfigDict(from_attributes=True)


class TaxBandItem(BaseModel):
    """One band; tax = tax_amount + (income - min_salary) * tax_rate."""
    min_salary: Decimal = Field(..., ge=0)
    max_salary: Optional[Decimal] = None
    tax_rate: Decimal = Field(..., ge=0, le=1)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)


class TaxBandTableRequest(BaseModel):
    """Full band table for one currency and period type."""
    currency: Currency
    period_type: PeriodType = PeriodType.MONTHLY
    bands: List[TaxBandItem] = Field(..., min_length=1)


class TaxBandResponse(BaseModel):
    id: UUID
    currency: Currency
    period_type: PeriodType
    min_salary: Decimal
    max_salary: Optional[Decimal] = None
    tax_rate: Decimal
    tax_amount: Decimal
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class VehicleBenefitBandCreate(BaseModel):
    """Engine capacity range [min, max) in cc; open-ended when max is omitted."""
    engine_capacity_min: int = Field(..., ge=0)
    engine_capacity_max: Optional[int] = None
    benefit_amount: Decimal = Field(..., ge=0)
    currency: Currency
    period_type: PeriodType = PeriodType.MONTHLY

    @model_validator(mode='after')
    def check_range(self):
        if self.engine_capacity_max is not None and self.engine_capacity_max <= self.engine_capacity_min:
            raise ValueError("engine_capacity_max must be greater than engine_capacity_min")
        return self


class VehicleBenefitBandResponse(BaseModel):
    id: UUID
    engine_capacity_min: int
    engine_capacity_max: Optional[int] = None
    benefit_amount: Decimal
    currency: Currency
    period_type: PeriodType
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
