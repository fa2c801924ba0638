"""
Tax schemas for API request/response validation.

WHAT: Pydantic schemas for tax calculations, quarterly returns and the
annual summary.

WHY: Display figures are in the requested currency; the breakdown is
always in PHP, the currency BIR brackets are defined in.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from chaching.models.invoice import CurrencyCode
from chaching.services.tax_service import IncomeType


# ============================================================================
# Request Schemas
# ============================================================================


class TaxCalculationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    gross_income: Decimal = Field(..., ge=0)
    currency: CurrencyCode = Field(default=CurrencyCode.PHP)
    income_type: IncomeType = Field(default=IncomeType.PROFESSIONAL)
    is_vat_registered: bool = Field(default=False)
    deductions: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Itemized deductions in the same currency as gross_income",
    )


# ============================================================================
# Response Schemas
# ============================================================================


class IncomeTaxDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bracket: int
    base_amount: Decimal
    excess_amount: Decimal
    tax_on_excess: Decimal
    total_tax: Decimal


class VatDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_vat_registered: bool
    vatable_amount: Decimal
    vat_exempt_amount: Decimal
    output_vat: Decimal
    input_vat: Decimal
    net_vat: Decimal


class WithholdingDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    rate: Decimal
    withheld_amount: Decimal


class DeductionDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    standard_deduction: Decimal
    itemized_deductions: Decimal
    optional_standard_deduction: Decimal
    total_deductions: Decimal


class TaxBreakdownResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    income_tax: IncomeTaxDetailsResponse
    vat: VatDetailsResponse
    withholding: WithholdingDetailsResponse
    deductions: DeductionDetailsResponse
    percentage_tax: Decimal


class TaxCalculationResponse(BaseModel):
    """
    Result of a tax calculation.

    net_income = gross_income - (income_tax + vat_amount + percentage_tax);
    withholding_tax is disclosed, not subtracted.
    """

    model_config = ConfigDict(from_attributes=True)

    gross_income: Decimal
    taxable_income: Decimal
    income_tax: Decimal
    vat_amount: Decimal
    withholding_tax: Decimal
    percentage_tax: Decimal
    total_tax: Decimal
    net_income: Decimal
    effective_tax_rate: Decimal
    currency: CurrencyCode
    php_equivalent: Decimal
    exchange_rate: Decimal
    rate_source: str
    rate_is_stale: bool
    income_type: IncomeType
    tax_bracket: str
    breakdown: TaxBreakdownResponse


class QuarterlyTaxReturnResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quarter: int
    year: int
    period_start: date
    period_end: date
    due_date: date
    gross_income: Decimal
    taxable_income: Decimal
    income_tax: Decimal
    vat_payable: Decimal
    percentage_tax: Decimal
    withholding_tax: Decimal
    previous_payments: Decimal
    balance_due: Decimal
    transaction_count: int


class AnnualTaxSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    year: int
    total_gross_income: Decimal
    total_taxable_income: Decimal
    total_income_tax: Decimal
    total_vat: Decimal
    total_percentage_tax: Decimal
    total_withholding_tax: Decimal
    net_income: Decimal
    effective_rate: Decimal
    quarterly_returns: List[QuarterlyTaxReturnResponse]
    total_quarterly_payments: Decimal
    refund_due: Decimal
    additional_tax_due: Decimal


class TaxQuarterResponse(BaseModel):
    """Current filing quarter and whether a return is due soon."""

    model_config = ConfigDict(from_attributes=True)

    quarter: int
    year: int
    period_start: date
    period_end: date
    due_date: date
    next_filing_quarter: int
    next_filing_year: int
    next_filing_due_date: date
    is_filing_due_soon: bool


class TaxpayerInfoRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    tin: str = Field(..., description="BIR TIN, NNN-NNN-NNN-NNN")
    name: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1, max_length=1000)
    business_type: str = Field(..., min_length=1, max_length=100)


class BirFormRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    calculation: TaxCalculationRequest
    taxpayer: TaxpayerInfoRequest


class TaxPeriodResponse(BaseModel):
    quarter: int
    year: int
    due_date: date


class BirFormResponse(BaseModel):
    """Figures to copy into the BIR quarterly return, in PHP."""

    taxpayer: TaxpayerInfoRequest
    tax_period: TaxPeriodResponse
    gross_income: Decimal
    taxable_income: Decimal
    income_tax: Decimal
    vat_payable: Decimal
    withholding_tax: Decimal
    percentage_tax: Decimal
    net_tax_due: Decimal
    effective_rate: Decimal
    tax_bracket: str
