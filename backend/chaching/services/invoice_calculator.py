"""
Invoice Calculator.

WHAT: Pure functions computing line-item amounts, subtotal, discount, tax,
total and the BIR VAT/withholding figures of an invoice.

WHY: The same arithmetic runs on create, on update and when verifying a
stored invoice. Keeping it free of I/O makes it trivially testable and
guarantees that recomputing from stored inputs reproduces stored totals.

HOW:
- Inputs are normalized to their stored precision first (rate and money
  to cents, quantity to 4 dp) so stored inputs are exactly what was used
- Sums are exact in Decimal; each stored figure is rounded once,
  half away from zero
- total is assembled from already-rounded parts so
  total == max(0, subtotal - discount_amount) + tax_amount holds exactly
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence, Union

from chaching.core.exceptions import ValidationError
from chaching.core.money import ONE_HUNDRED, ZERO, percent_of, round_money, sum_money, to_decimal
from chaching.models.client import ClientType
from chaching.models.invoice import DiscountType


# BIR rates applied in VAT-aware mode
VAT_RATE = Decimal("12")
BUSINESS_WITHHOLDING_RATE = Decimal("10")

QUANTITY_QUANTUM = Decimal("0.0001")

Number = Union[Decimal, int, str, float]


@dataclass
class LineItemInput:
    """A line item as supplied by the caller (amount is never supplied)."""

    description: str
    quantity: Number
    rate: Number
    is_taxable: bool = True
    tax_rate: Optional[Number] = None


@dataclass
class CalculatedLineItem:
    position: int
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal
    is_taxable: bool = True
    tax_rate: Optional[Decimal] = None


@dataclass
class InvoiceTotals:
    """
    Stored figures of an invoice, all in the invoice currency.

    Attributes:
        line_items: Normalized items with their rounded amounts
        subtotal: round(sum(quantity * rate))
        discount_amount: Resolved discount, never above subtotal
        discounted_subtotal: subtotal - discount_amount
        tax_rate: Rate actually applied (12 in VAT mode)
        tax_amount: round(discounted_subtotal * tax_rate / 100)
        total: discounted_subtotal + tax_amount
        withholding_tax_amount: 10% of discounted_subtotal for business clients in VAT mode
        net_amount_due: total - withholding_tax_amount
    """

    line_items: List[CalculatedLineItem]
    subtotal: Decimal
    discount_type: Optional[DiscountType]
    discount_value: Optional[Decimal]
    discount_amount: Decimal
    discounted_subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    is_vat_registered: bool = False
    withholding_tax_amount: Decimal = field(default=ZERO)
    net_amount_due: Decimal = field(default=ZERO)


def normalize_quantity(value: Number) -> Decimal:
    return to_decimal(value).quantize(QUANTITY_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_line_amount(quantity: Number, rate: Number) -> Decimal:
    """round(quantity * rate) at stored precision."""
    return round_money(normalize_quantity(quantity) * round_money(rate))


def calculate_subtotal(items: Iterable[LineItemInput]) -> Decimal:
    """
    Exact sum of quantity * rate, rounded once.

    WHY: Rounding each line first and summing would drift from the exact
    sum by up to half a cent per line.
    """
    return round_money(
        sum_money(normalize_quantity(item.quantity) * round_money(item.rate) for item in items)
    )


def calculate_discount(
    subtotal: Decimal,
    discount_type: Optional[DiscountType],
    discount_value: Optional[Number],
) -> Decimal:
    """
    Resolve a discount against a subtotal.

    percentage: subtotal * value / 100; fixed: min(value, subtotal).
    The result is clamped to [0, subtotal].

    Raises:
        ValidationError: Negative value or unknown discount type
    """
    if discount_type is None or discount_value is None:
        return ZERO

    value = round_money(discount_value)
    if value < 0:
        raise ValidationError(message="Discount cannot be negative", discount_value=value)

    try:
        discount_type = DiscountType(discount_type)
    except ValueError:
        raise ValidationError(message="Unknown discount type", discount_type=discount_type)

    if discount_type == DiscountType.PERCENTAGE:
        amount = round_money(percent_of(subtotal, value))
    else:
        amount = value

    return max(ZERO, min(amount, subtotal))


def calculate_invoice_totals(
    items: Sequence[LineItemInput],
    tax_rate: Number = 0,
    discount_type: Optional[DiscountType] = None,
    discount_value: Optional[Number] = None,
    is_vat_registered: bool = False,
    client_type: ClientType = ClientType.INDIVIDUAL,
) -> InvoiceTotals:
    """
    Compute every stored figure of an invoice.

    WHAT: subtotal, discount, tax, total and, in VAT mode, withholding and
    net amount due.

    WHY: Only arithmetic impossibilities are rejected here; business
    validation (positive quantities, due dates) happens before this stage.

    Args:
        items: Line items in display order
        tax_rate: Percentage 0-100 (replaced by 12 in VAT mode)
        discount_type: percentage or fixed
        discount_value: Discount input
        is_vat_registered: Issuer is VAT-registered
        client_type: Business clients withhold 10% in VAT mode

    Returns:
        InvoiceTotals

    Raises:
        ValidationError: Empty items, tax rate outside 0-100, negative or
            unknown discount
    """
    if not items:
        raise ValidationError(message="An invoice needs at least one line item")

    applied_rate = VAT_RATE if is_vat_registered else round_money(tax_rate)
    if applied_rate < 0 or applied_rate > ONE_HUNDRED:
        raise ValidationError(message="Tax rate must be between 0 and 100", tax_rate=applied_rate)

    line_items = [
        CalculatedLineItem(
            position=position,
            description=item.description,
            quantity=normalize_quantity(item.quantity),
            rate=round_money(item.rate),
            amount=calculate_line_amount(item.quantity, item.rate),
            is_taxable=item.is_taxable,
            tax_rate=to_decimal(item.tax_rate) if item.tax_rate is not None else None,
        )
        for position, item in enumerate(items)
    ]

    subtotal = calculate_subtotal(items)
    discount_amount = calculate_discount(subtotal, discount_type, discount_value)
    discounted_subtotal = max(ZERO, subtotal - discount_amount)
    tax_amount = round_money(percent_of(discounted_subtotal, applied_rate))
    total = discounted_subtotal + tax_amount

    withholding = ZERO
    if is_vat_registered and ClientType(client_type) == ClientType.BUSINESS:
        withholding = round_money(percent_of(discounted_subtotal, BUSINESS_WITHHOLDING_RATE))

    return InvoiceTotals(
        line_items=line_items,
        subtotal=subtotal,
        discount_type=DiscountType(discount_type) if discount_type and discount_value is not None else None,
        discount_value=round_money(discount_value) if discount_type and discount_value is not None else None,
        discount_amount=discount_amount,
        discounted_subtotal=discounted_subtotal,
        tax_rate=applied_rate,
        tax_amount=tax_amount,
        total=total,
        is_vat_registered=is_vat_registered,
        withholding_tax_amount=withholding,
        net_amount_due=total - withholding,
    )


def calculate_payment_percentage(total_paid: Decimal, total: Decimal) -> Decimal:
    """min(100, total_paid / total * 100) rounded to 2 dp; 0 for a zero total."""
    if total <= 0:
        return ZERO
    return round_money(min(ONE_HUNDRED, total_paid / total * ONE_HUNDRED))


def calculate_remaining_balance(total: Decimal, total_paid: Decimal) -> Decimal:
    return max(ZERO, total - total_paid)
