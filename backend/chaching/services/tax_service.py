"""
Philippine Tax Service.

WHAT: BIR income tax, VAT, percentage tax and withholding tax calculations
for individual freelancers and professionals.

WHY: Freelancers invoicing in USD or EUR still file in PHP. The calculator:
1. Converts gross income to PHP at the current rate
2. Applies the TRAIN-law progressive brackets to taxable income
3. Estimates VAT (registered) or 3% percentage tax (non-registered above ₱3M)
4. Discloses the withholding a client is expected to deduct
5. Reports figures back in the caller's currency at the same rate

HOW: The arithmetic is a set of pure functions working in PHP;
PhilippineTaxService wraps them with the currency conversion step.
Every figure is a Decimal rounded to cents, half away from zero.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from chaching.core.config import settings
from chaching.core.exceptions import ValidationError
from chaching.core.money import ONE_HUNDRED, ZERO, round_money, to_decimal
from chaching.models.invoice import CurrencyCode, utc_today
from chaching.services.exchange_rate_service import (
    ExchangeRateService,
    SOURCE_API,
    get_exchange_rate_service,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================


class IncomeType(str, Enum):
    """Kinds of income the calculator knows withholding rules for."""

    PROFESSIONAL = "professional"
    BUSINESS = "business"
    EMPLOYMENT = "employment"
    RENTAL = "rental"
    FREELANCER = "freelancer"


@dataclass(frozen=True)
class TaxBracket:
    """
    One row of the graduated income tax table.

    Tax for taxable income in (minimum, maximum] is
    base + (taxable - minimum) * rate. maximum is None for the top bracket.
    """

    number: int
    minimum: Decimal
    maximum: Optional[Decimal]
    rate: Decimal
    base: Decimal

    def contains(self, taxable_income: Decimal) -> bool:
        if taxable_income <= self.minimum and self.number != 1:
            return False
        return self.maximum is None or taxable_income <= self.maximum


# TRAIN law graduated rates for individuals (2023 onwards)
TAX_BRACKETS: Tuple[TaxBracket, ...] = (
    TaxBracket(1, Decimal("0"), Decimal("250000"), Decimal("0"), Decimal("0")),
    TaxBracket(2, Decimal("250000"), Decimal("400000"), Decimal("0.15"), Decimal("0")),
    TaxBracket(3, Decimal("400000"), Decimal("800000"), Decimal("0.20"), Decimal("22500")),
    TaxBracket(4, Decimal("800000"), Decimal("2000000"), Decimal("0.25"), Decimal("102500")),
    TaxBracket(5, Decimal("2000000"), Decimal("8000000"), Decimal("0.30"), Decimal("402500")),
    TaxBracket(6, Decimal("8000000"), None, Decimal("0.35"), Decimal("2202500")),
)

OUTPUT_VAT_RATE = Decimal("0.12")
VAT_EXEMPT_THRESHOLD = Decimal("3000000")
PERCENTAGE_TAX_RATE = Decimal("0.03")

STANDARD_DEDUCTION = Decimal("50000")
OPTIONAL_STANDARD_DEDUCTION_RATE = Decimal("0.40")

PROFESSIONAL_WITHHOLDING_RATE = Decimal("0.10")
RENTAL_WITHHOLDING_RATE = Decimal("0.05")
FREELANCER_WITHHOLDING_RATE = Decimal("0.08")
FREELANCER_MONTHLY_THRESHOLD = Decimal("25000")

TIN_PATTERN = re.compile(r"^\d{3}-\d{3}-\d{3}-\d{3}$")

Number = Union[Decimal, int, str, float]


# ============================================================================
# Result types
# ============================================================================


@dataclass
class IncomeTaxDetails:
    bracket: int
    base_amount: Decimal
    excess_amount: Decimal
    tax_on_excess: Decimal
    total_tax: Decimal


@dataclass
class VatDetails:
    is_vat_registered: bool
    vatable_amount: Decimal
    vat_exempt_amount: Decimal
    output_vat: Decimal
    input_vat: Decimal
    net_vat: Decimal


@dataclass
class WithholdingDetails:
    type: str
    rate: Decimal
    withheld_amount: Decimal


@dataclass
class DeductionDetails:
    standard_deduction: Decimal
    itemized_deductions: Decimal
    optional_standard_deduction: Decimal
    total_deductions: Decimal


@dataclass
class TaxBreakdown:
    """Intermediate figures of a calculation, always in PHP."""

    income_tax: IncomeTaxDetails
    vat: VatDetails
    withholding: WithholdingDetails
    deductions: DeductionDetails
    percentage_tax: Decimal


@dataclass
class TaxCalculation:
    """
    Result of a tax calculation.

    Display figures are in `currency`; php_equivalent and breakdown are in
    PHP. net_income == gross_income - (income_tax + vat_amount +
    percentage_tax) holds exactly in both currencies. Withholding is
    disclosed, not subtracted.

    Attributes:
        gross_income: Gross income as supplied, in `currency`
        exchange_rate: PHP per unit of `currency`
        rate_is_stale: True when the rate came from a cache or fallback
            because live rates were unavailable
        effective_tax_rate: total_tax / gross PHP * 100
    """

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
    income_type: IncomeType
    breakdown: TaxBreakdown
    rate_source: str = SOURCE_API
    rate_is_stale: bool = False

    @property
    def taxable_income_php(self) -> Decimal:
        return max(ZERO, self.php_equivalent - self.breakdown.deductions.total_deductions)

    @property
    def tax_bracket(self) -> str:
        return get_tax_bracket_description(self.taxable_income_php)


@dataclass
class TaxQuarter:
    """A BIR filing quarter and its deadline."""

    quarter: int
    year: int
    period_start: date
    period_end: date
    due_date: date

    @property
    def months(self) -> List[int]:
        first = (self.quarter - 1) * 3 + 1
        return [first, first + 1, first + 2]

    def includes(self, on_date: date) -> bool:
        return self.period_start <= on_date <= self.period_end


@dataclass
class TaxpayerInfo:
    tin: str
    name: str
    address: str
    business_type: str


# ============================================================================
# Calculations (PHP)
# ============================================================================


def find_tax_bracket(taxable_income: Number) -> TaxBracket:
    """Bracket whose (minimum, maximum] range holds the income; 0 is bracket 1."""
    taxable_income = to_decimal(taxable_income)
    for bracket in TAX_BRACKETS:
        if bracket.contains(taxable_income):
            return bracket
    return TAX_BRACKETS[-1]


def calculate_income_tax(taxable_income: Number) -> IncomeTaxDetails:
    """
    Graduated income tax on taxable income in PHP.

    Examples:
        0 -> 0; 300,000 -> 7,500; 500,000 -> 42,500

    Raises:
        ValidationError: If taxable income is negative
    """
    taxable_income = to_decimal(taxable_income)
    if taxable_income < 0:
        raise ValidationError(message="Taxable income cannot be negative", taxable_income=taxable_income)

    bracket = find_tax_bracket(taxable_income)
    excess = max(ZERO, taxable_income - bracket.minimum)
    tax_on_excess = round_money(excess * bracket.rate)

    return IncomeTaxDetails(
        bracket=bracket.number,
        base_amount=round_money(bracket.base),
        excess_amount=round_money(excess),
        tax_on_excess=tax_on_excess,
        total_tax=round_money(bracket.base) + tax_on_excess,
    )


def calculate_vat(
    gross_income: Decimal,
    is_vat_registered: bool = False,
    input_vat_ratio: Optional[Decimal] = None,
) -> VatDetails:
    """
    Estimate VAT payable.

    Output VAT is 12% of gross. Input VAT is not tracked, so it is estimated
    as a configurable share of output VAT.
    """
    ratio = input_vat_ratio if input_vat_ratio is not None else settings.INPUT_VAT_ESTIMATE_RATIO

    if not is_vat_registered:
        return VatDetails(
            is_vat_registered=False,
            vatable_amount=ZERO,
            vat_exempt_amount=round_money(gross_income),
            output_vat=round_money(ZERO),
            input_vat=round_money(ZERO),
            net_vat=round_money(ZERO),
        )

    output_vat = round_money(gross_income * OUTPUT_VAT_RATE)
    input_vat = round_money(output_vat * to_decimal(ratio))
    return VatDetails(
        is_vat_registered=True,
        vatable_amount=round_money(gross_income),
        vat_exempt_amount=round_money(ZERO),
        output_vat=output_vat,
        input_vat=input_vat,
        net_vat=max(round_money(ZERO), output_vat - input_vat),
    )


def calculate_percentage_tax(gross_income: Decimal, is_vat_registered: bool = False) -> Decimal:
    """3% of gross for non-VAT-registered taxpayers above the ₱3M threshold."""
    if is_vat_registered or gross_income <= VAT_EXEMPT_THRESHOLD:
        return round_money(ZERO)
    return round_money(gross_income * PERCENTAGE_TAX_RATE)


def calculate_withholding_tax(gross_income: Decimal, income_type: IncomeType) -> WithholdingDetails:
    """
    Withholding a payer is expected to deduct.

    professional 10% (BIR Form 2307), rental 5%, freelancer 8% once
    average monthly income exceeds ₱25,000; nothing otherwise.
    """
    income_type = IncomeType(income_type)
    rate = ZERO
    description = "No withholding required"

    if income_type == IncomeType.PROFESSIONAL:
        rate = PROFESSIONAL_WITHHOLDING_RATE
        description = "Professional Services (BIR Form 2307)"
    elif income_type == IncomeType.RENTAL:
        rate = RENTAL_WITHHOLDING_RATE
        description = "Rental Income"
    elif income_type == IncomeType.FREELANCER:
        if gross_income / 12 > FREELANCER_MONTHLY_THRESHOLD:
            rate = FREELANCER_WITHHOLDING_RATE
            description = "Freelancer Compensation"

    return WithholdingDetails(
        type=description,
        rate=rate,
        withheld_amount=round_money(gross_income * rate),
    )


def calculate_deductions(gross_income: Decimal, itemized_deductions: Optional[Number] = None) -> DeductionDetails:
    """
    Best available deduction.

    The larger of the ₱50,000 standard deduction, the itemized deductions
    and the 40% optional standard deduction.

    Raises:
        ValidationError: If itemized deductions are negative
    """
    itemized = round_money(itemized_deductions if itemized_deductions is not None else ZERO)
    if itemized < 0:
        raise ValidationError(message="Deductions cannot be negative", deductions=itemized)

    optional = round_money(gross_income * OPTIONAL_STANDARD_DEDUCTION_RATE)
    standard = round_money(STANDARD_DEDUCTION)

    return DeductionDetails(
        standard_deduction=standard,
        itemized_deductions=itemized,
        optional_standard_deduction=optional,
        total_deductions=max(standard, itemized, optional),
    )


def calculate_php_tax(
    gross_income_php: Number,
    income_type: IncomeType = IncomeType.PROFESSIONAL,
    is_vat_registered: bool = False,
    deductions: Optional[Number] = None,
    input_vat_ratio: Optional[Decimal] = None,
) -> TaxCalculation:
    """
    Full calculation for an amount already in PHP.

    Args:
        gross_income_php: Gross income in PHP
        income_type: Drives the withholding rule
        is_vat_registered: VAT instead of percentage tax
        deductions: Itemized deductions in PHP
        input_vat_ratio: Override for the input VAT estimate

    Returns:
        TaxCalculation in PHP

    Raises:
        ValidationError: Negative gross income or deductions
    """
    gross = round_money(gross_income_php)
    if gross < 0:
        raise ValidationError(message="Gross income cannot be negative", gross_income=gross)
    income_type = IncomeType(income_type)

    deduction_details = calculate_deductions(gross, deductions)
    taxable = max(round_money(ZERO), gross - deduction_details.total_deductions)

    income_tax = calculate_income_tax(taxable)
    vat = calculate_vat(gross, is_vat_registered, input_vat_ratio)
    withholding = calculate_withholding_tax(gross, income_type)
    percentage_tax = calculate_percentage_tax(gross, is_vat_registered)

    total_tax = income_tax.total_tax + vat.net_vat + percentage_tax
    effective_rate = round_money(total_tax / gross * ONE_HUNDRED) if gross > 0 else round_money(ZERO)

    return TaxCalculation(
        gross_income=gross,
        taxable_income=taxable,
        income_tax=income_tax.total_tax,
        vat_amount=vat.net_vat,
        withholding_tax=withholding.withheld_amount,
        percentage_tax=percentage_tax,
        total_tax=total_tax,
        net_income=gross - total_tax,
        effective_tax_rate=effective_rate,
        currency=CurrencyCode.PHP,
        php_equivalent=gross,
        exchange_rate=Decimal("1"),
        income_type=income_type,
        breakdown=TaxBreakdown(
            income_tax=income_tax,
            vat=vat,
            withholding=withholding,
            deductions=deduction_details,
            percentage_tax=percentage_tax,
        ),
    )


# ============================================================================
# Filing calendar
# ============================================================================


def get_tax_quarter(on_date: date) -> TaxQuarter:
    """Filing quarter containing a date."""
    return quarter_period((on_date.month - 1) // 3 + 1, on_date.year)


def quarter_period(quarter: int, year: int) -> TaxQuarter:
    """
    Period and deadline of a quarter.

    Q1 Jan-Mar due Apr 15, Q2 Apr-Jun due Jul 15, Q3 Jul-Sep due Oct 15,
    Q4 Oct-Dec due Apr 15 of the following year.

    Raises:
        ValidationError: If quarter is not 1-4
    """
    if quarter not in (1, 2, 3, 4):
        raise ValidationError(message="Quarter must be between 1 and 4", quarter=quarter)

    first_month = (quarter - 1) * 3 + 1
    start = date(year, first_month, 1)
    if quarter == 4:
        end = date(year, 12, 31)
        due = date(year + 1, 4, 15)
    else:
        end = date(year, first_month + 3, 1) - timedelta(days=1)
        due = date(year, first_month + 3, 15)

    return TaxQuarter(quarter=quarter, year=year, period_start=start, period_end=end, due_date=due)


def get_current_tax_quarter(today: Optional[date] = None) -> TaxQuarter:
    return get_tax_quarter(today or utc_today())


def get_next_filing_deadline(today: Optional[date] = None) -> TaxQuarter:
    """
    Quarter whose return is due next.

    The previous quarter's return stays due until its deadline passes;
    after that the current quarter is next.
    """
    today = today or utc_today()
    current = get_tax_quarter(today)
    previous = get_tax_quarter(current.period_start - timedelta(days=1))
    if previous.due_date >= today:
        return previous
    return current


def is_filing_due_soon(days_ahead: int = 7, today: Optional[date] = None) -> bool:
    """True when the next filing deadline is within days_ahead days (inclusive)."""
    today = today or utc_today()
    days_left = (get_next_filing_deadline(today).due_date - today).days
    return 0 <= days_left <= days_ahead


# ============================================================================
# Helpers
# ============================================================================


def get_tax_bracket_description(taxable_income: Number) -> str:
    bracket = find_tax_bracket(taxable_income)
    if bracket.rate == 0:
        return "Tax-free bracket"
    return f"{(bracket.rate * ONE_HUNDRED).normalize():f}% tax bracket"


def validate_tin(tin: str) -> bool:
    """Check the BIR TIN format NNN-NNN-NNN-NNN."""
    return bool(tin) and TIN_PATTERN.match(tin) is not None


def generate_bir_form_data(
    calculation: TaxCalculation,
    taxpayer: TaxpayerInfo,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Assemble the figures a BIR quarterly return asks for.

    WHY: Filing itself happens on the BIR portal; this gathers the values
    to copy into it, in PHP.

    Raises:
        ValidationError: If the TIN is malformed
    """
    if not validate_tin(taxpayer.tin):
        raise ValidationError(message="TIN must match NNN-NNN-NNN-NNN", tin=taxpayer.tin)

    breakdown = calculation.breakdown
    period = get_current_tax_quarter(today)
    taxable_income = calculation.taxable_income_php
    net_tax_due = breakdown.income_tax.total_tax + breakdown.vat.net_vat + breakdown.percentage_tax

    return {
        "taxpayer": {
            "tin": taxpayer.tin,
            "name": taxpayer.name,
            "address": taxpayer.address,
            "business_type": taxpayer.business_type,
        },
        "tax_period": {
            "quarter": period.quarter,
            "year": period.year,
            "due_date": period.due_date.isoformat(),
        },
        "gross_income": calculation.php_equivalent,
        "taxable_income": taxable_income,
        "income_tax": breakdown.income_tax.total_tax,
        "vat_payable": breakdown.vat.net_vat,
        "withholding_tax": breakdown.withholding.withheld_amount,
        "percentage_tax": breakdown.percentage_tax,
        "net_tax_due": net_tax_due,
        "effective_rate": calculation.effective_tax_rate,
        "tax_bracket": get_tax_bracket_description(taxable_income),
    }


# ============================================================================
# Service
# ============================================================================


class PhilippineTaxService:
    """
    Tax calculations in any supported currency.

    WHAT: Converts gross income to PHP, runs calculate_php_tax and converts
    the display figures back at the same rate.

    WHY: BIR brackets are defined in PHP; a USD freelancer still wants to
    see the result in USD.

    HOW: One conversion rate per calculation, so the display figures and
    the PHP breakdown always agree.
    """

    def __init__(
        self,
        exchange_rate_service: Optional[ExchangeRateService] = None,
        input_vat_ratio: Optional[Decimal] = None,
    ):
        """
        Initialize PhilippineTaxService.

        Args:
            exchange_rate_service: Converter (defaults to the process-wide one)
            input_vat_ratio: Input VAT estimate (defaults to settings)
        """
        self.exchange_rate_service = exchange_rate_service or get_exchange_rate_service()
        self.input_vat_ratio = input_vat_ratio

    async def calculate_tax(
        self,
        gross_income: Number,
        currency: CurrencyCode = CurrencyCode.PHP,
        income_type: IncomeType = IncomeType.PROFESSIONAL,
        is_vat_registered: bool = False,
        deductions: Optional[Number] = None,
    ) -> TaxCalculation:
        """
        Calculate Philippine taxes for a gross income.

        Args:
            gross_income: Gross income in `currency`
            currency: Currency of gross_income and deductions
            income_type: professional, business, employment, rental or freelancer
            is_vat_registered: Taxpayer is VAT-registered
            deductions: Itemized deductions in `currency`

        Returns:
            TaxCalculation with display figures in `currency`

        Raises:
            ValidationError: Negative gross income or deductions
        """
        gross = round_money(gross_income)
        if gross < 0:
            raise ValidationError(message="Gross income cannot be negative", gross_income=gross)
        currency = CurrencyCode(currency)

        conversion = await self.exchange_rate_service.convert(gross, currency, CurrencyCode.PHP)
        rate = conversion.rate
        deductions_php = None
        if deductions is not None:
            deductions_php = round_money(to_decimal(deductions) * rate)

        php = calculate_php_tax(
            conversion.converted_amount,
            income_type=income_type,
            is_vat_registered=is_vat_registered,
            deductions=deductions_php,
            input_vat_ratio=self.input_vat_ratio,
        )

        if conversion.is_stale:
            logger.warning(
                "Tax calculated with stale exchange rate",
                extra={"currency": currency.value, "rate": str(rate), "source": conversion.source},
            )

        if currency == CurrencyCode.PHP:
            return php

        def to_display(amount_php: Decimal) -> Decimal:
            return round_money(amount_php / rate)

        income_tax = to_display(php.income_tax)
        vat_amount = to_display(php.vat_amount)
        percentage_tax = to_display(php.percentage_tax)
        total_tax = income_tax + vat_amount + percentage_tax

        return TaxCalculation(
            gross_income=gross,
            taxable_income=to_display(php.taxable_income),
            income_tax=income_tax,
            vat_amount=vat_amount,
            withholding_tax=to_display(php.withholding_tax),
            percentage_tax=percentage_tax,
            total_tax=total_tax,
            net_income=gross - total_tax,
            effective_tax_rate=php.effective_tax_rate,
            currency=currency,
            php_equivalent=php.php_equivalent,
            exchange_rate=rate,
            income_type=php.income_type,
            breakdown=php.breakdown,
            rate_source=conversion.source,
            rate_is_stale=conversion.is_stale,
        )
