"""
Philippine tax API endpoints.

WHAT: Tax estimates, quarterly returns, the annual summary, the filing
calendar and BIR form figures.

WHY: Freelancers file quarterly income tax returns with the BIR; these
endpoints give the numbers to file from the recorded income.

HOW: Calculations go through PhilippineTaxService (any currency) and
TaxReportService (the owner's completed income transactions).
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from chaching.core.deps import get_current_user_id, get_tax_report_service, get_tax_service
from chaching.core.money import ZERO
from chaching.models.invoice import utc_today
from chaching.schemas.tax import (
    AnnualTaxSummaryResponse,
    BirFormRequest,
    BirFormResponse,
    QuarterlyTaxReturnResponse,
    TaxCalculationRequest,
    TaxCalculationResponse,
    TaxQuarterResponse,
)
from chaching.services.tax_report_service import TaxReportService
from chaching.services.tax_service import (
    IncomeType,
    PhilippineTaxService,
    TaxpayerInfo,
    generate_bir_form_data,
    get_current_tax_quarter,
    get_next_filing_deadline,
    is_filing_due_soon,
)


router = APIRouter(prefix="/taxes", tags=["taxes"])


@router.post(
    "/calculate",
    response_model=TaxCalculationResponse,
    summary="Calculate taxes",
    description="Estimate income tax, VAT, percentage tax and withholding for a gross income",
)
async def calculate_tax(
    data: TaxCalculationRequest,
    user_id: str = Depends(get_current_user_id),
    service: PhilippineTaxService = Depends(get_tax_service),
) -> TaxCalculationResponse:
    """
    Calculate taxes for a gross income.

    WHAT: Figures are in the requested currency; the breakdown is in PHP.
    """
    calculation = await service.calculate_tax(
        data.gross_income,
        currency=data.currency,
        income_type=data.income_type,
        is_vat_registered=data.is_vat_registered,
        deductions=data.deductions,
    )
    return TaxCalculationResponse.model_validate(calculation)


@router.get(
    "/quarterly",
    response_model=QuarterlyTaxReturnResponse,
    summary="Quarterly tax return",
)
async def get_quarterly_return(
    quarter: int = Query(..., ge=1, le=4),
    year: int = Query(..., ge=2000, le=2100),
    previous_payments: Decimal = Query(default=ZERO, ge=0, description="Tax already paid this year"),
    income_type: IncomeType = Query(default=IncomeType.PROFESSIONAL),
    is_vat_registered: bool = Query(default=False),
    service: TaxReportService = Depends(get_tax_report_service),
) -> QuarterlyTaxReturnResponse:
    """
    Quarterly return from completed income recorded in the quarter.

    Returns:
        Return figures in PHP with the balance due
    """
    tax_return = await service.get_quarterly_return(
        quarter,
        year,
        previous_payments=previous_payments,
        income_type=income_type,
        is_vat_registered=is_vat_registered,
    )
    return QuarterlyTaxReturnResponse.model_validate(tax_return)


@router.get(
    "/annual",
    response_model=AnnualTaxSummaryResponse,
    summary="Annual tax summary",
)
async def get_annual_summary(
    year: int = Query(..., ge=2000, le=2100),
    quarterly_payments: Optional[List[Decimal]] = Query(
        default=None,
        description="Quarterly tax payments made (up to four)",
    ),
    income_type: IncomeType = Query(default=IncomeType.PROFESSIONAL),
    is_vat_registered: bool = Query(default=False),
    service: TaxReportService = Depends(get_tax_report_service),
) -> AnnualTaxSummaryResponse:
    """
    Annual summary with refund or additional tax due.

    Raises:
        ValidationError (400): More than four or negative quarterly payments
    """
    summary = await service.get_annual_summary(
        year,
        quarterly_payments=quarterly_payments,
        income_type=income_type,
        is_vat_registered=is_vat_registered,
    )
    return AnnualTaxSummaryResponse.model_validate(summary)


@router.get(
    "/current-quarter",
    response_model=TaxQuarterResponse,
    summary="Current tax quarter",
)
async def get_current_quarter(
    user_id: str = Depends(get_current_user_id),
) -> TaxQuarterResponse:
    """
    Current quarter and the next filing deadline.

    WHY: The previous quarter's return stays due until its deadline, so the
    next deadline is not always the current quarter's.
    """
    today = utc_today()
    current = get_current_tax_quarter(today)
    next_filing = get_next_filing_deadline(today)
    return TaxQuarterResponse(
        quarter=current.quarter,
        year=current.year,
        period_start=current.period_start,
        period_end=current.period_end,
        due_date=current.due_date,
        next_filing_quarter=next_filing.quarter,
        next_filing_year=next_filing.year,
        next_filing_due_date=next_filing.due_date,
        is_filing_due_soon=is_filing_due_soon(today=today),
    )


@router.post(
    "/bir-form",
    response_model=BirFormResponse,
    summary="BIR form figures",
    description="Figures for the current quarter's BIR return",
)
async def get_bir_form_data(
    data: BirFormRequest,
    user_id: str = Depends(get_current_user_id),
    service: PhilippineTaxService = Depends(get_tax_service),
) -> BirFormResponse:
    """
    Assemble BIR return figures for a calculation.

    Raises:
        ValidationError (400): Malformed TIN
    """
    request = data.calculation
    calculation = await service.calculate_tax(
        request.gross_income,
        currency=request.currency,
        income_type=request.income_type,
        is_vat_registered=request.is_vat_registered,
        deductions=request.deductions,
    )
    taxpayer = TaxpayerInfo(**data.taxpayer.model_dump())
    return BirFormResponse.model_validate(generate_bir_form_data(calculation, taxpayer))
