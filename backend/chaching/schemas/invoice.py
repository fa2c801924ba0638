"""
Invoice schemas for API request/response validation.

WHAT: Pydantic schemas for invoice data validation.

WHY: Schemas provide:
1. Type-safe request/response handling
2. Automatic validation with clear error messages
3. OpenAPI documentation generation
4. Data serialization/deserialization

HOW: Uses Pydantic v2 with Field constraints and model_config. Request
schemas forbid unknown fields, so derived values (line item amounts,
totals, the invoice number) can never be supplied by a caller. Money is
Decimal and serializes as a string with two decimal places.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Dict

from pydantic import BaseModel, Field, ConfigDict

from chaching.models.client import ClientType
from chaching.models.invoice import (
    CurrencyCode,
    DiscountType,
    Invoice,
    InvoiceStatus,
    ReminderType,
)


# ============================================================================
# Request Schemas
# ============================================================================


class LineItemCreate(BaseModel):
    """
    One line item as supplied by the caller.

    WHY: amount is derived (quantity * rate); supplying it is rejected.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    description: str = Field(..., min_length=1, max_length=2000)
    quantity: Decimal = Field(..., gt=0, description="Quantity (up to 4 decimal places)")
    rate: Decimal = Field(..., gt=0, description="Unit price in the invoice currency")
    is_taxable: bool = Field(default=True)
    tax_rate: Optional[Decimal] = Field(
        default=None,
        ge=0,
        le=100,
        description="Informational per-line tax rate override",
    )


class InvoiceCreate(BaseModel):
    """
    Schema for creating an invoice.

    Cross-field rules (due date not before issue date, percentage discount
    at most 100) are checked by the service.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    client_id: str = Field(..., min_length=1, max_length=36)
    issue_date: Optional[date] = Field(
        default=None,
        description="Invoice issue date (defaults to today, UTC)",
    )
    due_date: Optional[date] = Field(
        default=None,
        description="Payment due date (defaults to issue date plus the default payment terms)",
    )
    currency: CurrencyCode = Field(default=CurrencyCode.PHP)
    line_items: List[LineItemCreate] = Field(..., min_length=1)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100, description="Tax percentage")
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, gt=0)
    is_vat_registered: bool = Field(
        default=False,
        description="Issuer is VAT-registered (12% VAT, 10% withholding for business clients)",
    )
    payment_terms: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=5000)


class InvoiceUpdate(BaseModel):
    """
    Schema for updating an invoice.

    WHY: Amount inputs (items, tax, discount, currency, VAT flag), notes,
    terms and due date are editable until the invoice is paid or cancelled.
    id, owner, created_at and invoice_number are not fields here, so
    attempts to change them are rejected as unknown.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    line_items: Optional[List[LineItemCreate]] = Field(default=None, min_length=1)
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, gt=0)
    currency: Optional[CurrencyCode] = None
    is_vat_registered: Optional[bool] = None
    due_date: Optional[date] = None
    payment_terms: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=5000)


class ReminderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reminder_type: ReminderType = Field(default=ReminderType.GENTLE)


# ============================================================================
# Response Schemas
# ============================================================================


class LineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    position: int
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal
    is_taxable: bool
    tax_rate: Optional[Decimal] = None


class ReminderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reminder_type: ReminderType
    email_id: Optional[str] = None
    subject: Optional[str] = None
    sent_at: datetime


class InvoiceResponse(BaseModel):
    """
    Schema for invoice response data.

    WHY: status is the effective status, so a sent invoice past its due
    date reads as overdue.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_number: str
    status: InvoiceStatus

    # Client snapshot
    client_id: str
    client_name: str
    client_email: Optional[str] = None
    client_address: Optional[str] = None
    client_type: ClientType

    # Dates
    issue_date: date
    due_date: date

    # Amounts
    currency: CurrencyCode
    line_items: List[LineItemResponse]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    discount_amount: Decimal
    total: Decimal
    total_php: Optional[Decimal] = None
    exchange_rate: Optional[Decimal] = None
    is_vat_registered: bool
    withholding_tax_amount: Decimal
    net_amount_due: Decimal

    # Payment tracking
    total_paid: Decimal
    remaining_balance: Decimal
    payment_percentage: Decimal

    reminders_sent: List[ReminderResponse] = Field(default_factory=list)
    pdf_url: Optional[str] = None
    payment_terms: Optional[str] = None
    notes: Optional[str] = None

    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    last_payment_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    version: int

    # Computed properties
    is_editable: bool
    is_overdue: bool

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "InvoiceResponse":
        """Build a response with the effective status in place of the stored one."""
        response = cls.model_validate(invoice)
        response.status = invoice.effective_status
        return response


class InvoiceListResponse(BaseModel):
    """
    Paginated list response for invoices.

    WHY: Standard pagination structure for list endpoints.
    """

    items: List[InvoiceResponse]
    total: int
    skip: int
    limit: int


class CurrencyBreakdown(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int
    amount: Decimal


class InvoiceAnalytics(BaseModel):
    """
    Invoice figures for a period.

    WHY: total_amount, paid_amount, overdue_amount and outstanding_balance
    add up nominal amounts across currencies, as the dashboard shows them;
    total_amount_php is the converted headline figure and
    currency_breakdown keeps each currency apart.
    """

    model_config = ConfigDict(from_attributes=True)

    total_invoices: int
    total_amount: Decimal
    total_amount_php: Decimal
    paid_count: int
    paid_amount: Decimal
    overdue_count: int
    overdue_amount: Decimal
    outstanding_balance: Decimal
    status_breakdown: Dict[str, int]
    currency_breakdown: Dict[str, CurrencyBreakdown]
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class SendInvoiceResponse(BaseModel):
    invoice: InvoiceResponse
    email_id: Optional[str] = None
    pdf_url: Optional[str] = None


class ReminderSentResponse(BaseModel):
    invoice: InvoiceResponse
    reminder: ReminderResponse
