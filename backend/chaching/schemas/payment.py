"""
Payment schemas for API request/response validation.

WHAT: Pydantic schemas for recording payments and reading payment history.

WHY: amount carries no range constraint here. The payment engine checks
the invoice state before the amount, so a payment on a cancelled invoice
reports the cancellation even when the amount is also invalid.
"""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from chaching.models.invoice import CurrencyCode
from chaching.models.payment import PaymentMethod, PaymentStatus
from chaching.models.transaction import TransactionType
from chaching.schemas.invoice import InvoiceResponse


# ============================================================================
# Request Schemas
# ============================================================================


class PaymentCreate(BaseModel):
    """Schema for recording a payment against an invoice."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    amount: Decimal = Field(..., description="Amount received in the invoice currency")
    payment_date: date = Field(..., description="Date the money was received")
    payment_method: PaymentMethod
    reference: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=5000)
    allow_overpayment: bool = Field(
        default=False,
        description="Accept an amount above the remaining balance",
    )
    send_confirmation_email: bool = Field(default=True)


# ============================================================================
# Response Schemas
# ============================================================================


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_id: str
    amount: Decimal
    currency: CurrencyCode
    amount_php: Decimal
    exchange_rate: Decimal
    rate_source: Optional[str] = None
    payment_date: date
    payment_method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    status: PaymentStatus
    transaction_id: Optional[str] = None
    recorded_at: datetime


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TransactionType
    amount: Decimal
    currency: CurrencyCode
    amount_php: Decimal
    category: str
    date: dt.date
    description: str


class PaymentResultResponse(BaseModel):
    """
    Response for a recorded payment.

    WHY: warnings reports post-commit problems (such as a failed
    confirmation email); the payment is recorded regardless.
    """

    payment: PaymentResponse
    invoice: InvoiceResponse
    transaction: TransactionResponse
    overpaid_amount: Decimal
    warnings: List[str] = Field(default_factory=list)


class PaymentSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invoice_id: str
    currency: CurrencyCode
    total: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    payment_percentage: Decimal
    is_fully_paid: bool
    is_partially_paid: bool
    payment_count: int
    last_payment_date: Optional[date] = None
    overpaid_amount: Decimal
