"""
ZimPay Payroll - Payroll Router

API endpoints for period processing, payslips and payroll configuration.
"""

import uuid
from typing import Optional, List

from fastapi import APIRouter, Depends, status, Query

from app.dependencies import (
    get_configuration_service,
    get_payslip_service,
    get_period_service,
    get_preview_service,
)
from app.models.enums import CurrencyMode, PayslipStatus
from app.services.configuration_service import ConfigurationService
from app.services.payroll_service import PayrollPeriodService
from app.services.payslip_builder import PayslipPreviewService
from app.services.payslip_service import PayslipService
from app.services.tax_calculators import PAYETaxBand
from app.schemas.payroll import (
    # Period processing
    AccountingPeriodResponse,
    AsyncRunRequest,
    AsyncRunResponse,
    CenterStatusResponse,
    CurrencyModeRequest,
    GeneratePeriodsRequest,
    PeriodRunRequest,
    PeriodRunResponse,
    PeriodSummaryResponse,
    # Payslips
    PayslipListResponse,
    PayslipResponse,
    # Configuration
    CurrencySplitCreate,
    CurrencySplitResponse,
    ExchangeRateCreate,
    ExchangeRateResponse,
    TaxBandResponse,
    TaxBandTableRequest,
    VehicleBenefitBandCreate,
    VehicleBenefitBandResponse,
)


router = APIRouter()


# ===========================================
# PERIOD PROCESSING ENDPOINTS
# ===========================================

@router.post(
    "/periods/{period_id}/centers/{center_id}/run",
    response_model=PeriodRunResponse,
    summary="Run a payroll period for a cost center",
    description="Compute and finalize payslips for every payable employee. All or nothing.",
)
async def run_period(
    period_id: uuid.UUID,
    center_id: uuid.UUID,
    data: Optional[PeriodRunRequest] = None,
    service: PayrollPeriodService = Depends(get_period_service),
):
    currency_mode = data.currency_mode if data else None
    result = await service.run_period(period_id, center_id, currency_mode)
    return PeriodRunResponse.model_validate(result)


@router.post(
    "/periods/{period_id}/centers/{center_id}/refresh",
    response_model=PeriodRunResponse,
    summary="Recompute a run payroll period",
)
async def refresh_period(
    period_id: uuid.UUID,
    center_id: uuid.UUID,
    data: Optional[PeriodRunRequest] = None,
    service: PayrollPeriodService = Depends(get_period_service),
):
    currency_mode = data.currency_mode if data else None
    result = await service.refresh_period(period_id, center_id, currency_mode)
    return PeriodRunResponse.model_validate(result)


@router.post(
    "/periods/{period_id}/centers/{center_id}/close",
    response_model=CenterStatusResponse,
    summary="Close a payroll period for a cost center",
    description="Terminal. Payslip amounts of a closed period can no longer change.",
)
async def close_period(
    period_id: uuid.UUID,
    center_id: uuid.UUID,
    service: PayrollPeriodService = Depends(get_period_service),
):
    await service.close_period(period_id, center_id)
    return await service.center_status(period_id, center_id)


@router.put(
    "/periods/{period_id}/centers/{center_id}/currency",
    response_model=CenterStatusResponse,
    summary="Set the currency mode before the period is run",
)
async def update_currency(
    period_id: uuid.UUID,
    center_id: uuid.UUID,
    data: CurrencyModeRequest,
    service: PayrollPeriodService = Depends(get_period_service),
):
    await service.update_currency(period_id, center_id, data.currency_mode)
    return await service.center_status(period_id, center_id)


@router.get(
    "/periods/{period_id}/centers/{center_id}/status",
    response_model=CenterStatusResponse,
    summary="Processing status of a cost center's period",
)
async def get_center_status(
    period_id: uuid.UUID,
    center_id: uuid.UUID,
    service: PayrollPeriodService = Depends(get_period_service),
):
    return await service.center_status(period_id, center_id)


@router.get(
    "/periods/{period_id}/status",
    response_model=PeriodSummaryResponse,
    summary="Processing status of every cost center of a period",
)
async def get_period_summary(
    period_id: uuid.UUID,
    service: PayrollPeriodService = Depends(get_period_service),
):
    return await service.period_summary(period_id)


@router.post(
    "/periods/{period_id}/centers/{center_id}/run-async",
    response_model=AsyncRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a run or refresh as a background job",
)
async def run_period_async(
    period_id: uuid.UUID,
    center_id: uuid.UUID,
    data: AsyncRunRequest,
):
    from app.tasks.celery_tasks import process_payroll_period_task

    task = process_payroll_period_task.delay(
        str(period_id),
        str(center_id),
        data.action,
        data.currency_mode.value if data.currency_mode else None,
    )
    return AsyncRunResponse(
        task_id=task.id,
        action=data.action,
        period_id=period_id,
        center_id=center_id,
    )


@router.post(
    "/payrolls/{payroll_id}/periods/generate",
    response_model=List[AccountingPeriodResponse],
    summary="Create the monthly periods of a year",
)
async def generate_periods(
    payroll_id: uuid.UUID,
    data: GeneratePeriodsRequest,
    service: PayrollPeriodService = Depends(get_period_service),
):
    return await service.generate_periods(payroll_id, data.year)


# ===========================================
# PAYSLIP ENDPOINTS
# ===========================================

@router.get(
    "/periods/{period_id}/centers/{center_id}/payslips",
    response_model=PayslipListResponse,
    summary="Payslips of a cost center's period",
)
async def list_center_payslips(
    period_id: uuid.UUID,
    center_id: uuid.UUID,
    payslip_status: Optional[PayslipStatus] = Query(None, alias="status"),
    service: PayslipService = Depends(get_payslip_service),
):
    payslips = await service.list_center_payslips(period_id, center_id, payslip_status)
    return PayslipListResponse(
        payslips=[PayslipResponse.model_validate(payslip) for payslip in payslips],
        total=len(payslips),
    )


@router.get(
    "/employees/{employee_id}/periods/{period_id}/preview",
    response_model=PayslipResponse,
    summary="Preview an employee's payslip without saving it",
)
async def preview_payslip(
    employee_id: uuid.UUID,
    period_id: uuid.UUID,
    currency_mode: Optional[CurrencyMode] = Query(None),
    service: PayslipPreviewService = Depends(get_preview_service),
):
    payslip = await service.build(employee_id, period_id, currency_mode)
    return PayslipResponse.model_validate(payslip)


@router.post(
    "/payslips/{payslip_id}/distribute",
    response_model=PayslipResponse,
    summary="Mark a finalized payslip as distributed",
)
async def distribute_payslip(
    payslip_id: uuid.UUID,
    service: PayslipService = Depends(get_payslip_service),
):
    return await service.distribute(payslip_id)


@router.post(
    "/payslips/{payslip_id}/cancel",
    response_model=PayslipResponse,
    summary="Cancel a draft payslip",
)
async def cancel_payslip(
    payslip_id: uuid.UUID,
    service: PayslipService = Depends(get_payslip_service),
):
    return await service.cancel(payslip_id)


# ===========================================
# CONFIGURATION ENDPOINTS
# ===========================================

@router.post(
    "/config/currency-splits",
    response_model=CurrencySplitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an effective-dated currency split for a cost center",
)
async def create_currency_split(
    data: CurrencySplitCreate,
    service: ConfigurationService = Depends(get_configuration_service),
):
    return await service.save_currency_split(
        data.center_id, data.zwg_percentage, data.usd_percentage, data.effective_date,
    )


@router.post(
    "/config/exchange-rates",
    response_model=ExchangeRateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an effective-dated exchange rate",
)
async def create_exchange_rate(
    data: ExchangeRateCreate,
    service: ConfigurationService = Depends(get_configuration_service),
):
    return await service.save_exchange_rate(
        data.from_currency, data.to_currency, data.rate, data.effective_date,
    )


@router.put(
    "/config/tax-bands",
    response_model=List[TaxBandResponse],
    summary="Replace the tax band table of a currency and period type",
)
async def replace_tax_bands(
    data: TaxBandTableRequest,
    service: ConfigurationService = Depends(get_configuration_service),
):
    bands = [
        PAYETaxBand(
            lower=band.min_salary,
            upper=band.max_salary,
            rate=band.tax_rate,
            base_tax=band.tax_amount,
        )
        for band in data.bands
    ]
    return await service.replace_tax_bands(data.currency, data.period_type, bands)


@router.post(
    "/config/vehicle-benefit-bands",
    response_model=VehicleBenefitBandResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a vehicle benefit-in-kind band",
)
async def create_vehicle_band(
    data: VehicleBenefitBandCreate,
    service: ConfigurationService = Depends(get_configuration_service),
):
    return await service.save_vehicle_band(
        data.engine_capacity_min,
        data.engine_capacity_max,
        data.benefit_amount,
        data.currency,
        data.period_type,
    )
