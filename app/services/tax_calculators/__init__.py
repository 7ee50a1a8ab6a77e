"""
ZimPay Payroll - Tax Calculators Package

Tax and benefit calculation services.

Modules:
- paye_service: progressive PAYE over configured band tables
- benefit_service: NEC contributions, tax credits, vehicle benefit-in-kind
- calculator: TaxBenefitCalculator facade over a configuration snapshot
"""

from decimal import Decimal
from typing import Iterable

from app.services.tax_calculators.paye_service import (
    PAYECalculator,
    PAYETaxBand,
    validate_band_partition,
)
from app.services.tax_calculators.benefit_service import (
    NecContribution,
    NecRule,
    TaxCreditCalculator,
    VehicleBenefitCalculator,
    calculate_nec_contribution,
    validate_vehicle_band,
)
from app.services.tax_calculators.calculator import (
    TaxBenefitCalculator,
    TaxConfiguration,
    load_tax_configuration,
)


# ===========================================
# CONVENIENCE FUNCTIONS
# ===========================================

def calculate_paye(taxable_income: Decimal, bands: Iterable[PAYETaxBand]) -> Decimal:
    """
    Calculate PAYE on a taxable income with the given band table.

    Args:
        taxable_income: Taxable income for the period
        bands: Band table covering [0, infinity)

    Returns:
        PAYE rounded to 2 decimal places
    """
    return PAYECalculator(bands).calculate_tax(taxable_income)


__all__ = [
    "PAYECalculator",
    "PAYETaxBand",
    "validate_band_partition",
    "NecContribution",
    "NecRule",
    "TaxCreditCalculator",
    "VehicleBenefitCalculator",
    "calculate_nec_contribution",
    "validate_vehicle_band",
    "TaxBenefitCalculator",
    "TaxConfiguration",
    "load_tax_configuration",
    "calculate_paye",
]
