"""
Invoice model for billing and payment tracking.

WHAT: SQLAlchemy models for invoices, their line items and the reminders
sent for them.

WHY: Invoices are financial documents that:
1. Track amounts owed by clients in PHP, USD or EUR
2. Record running payment totals maintained by the payment engine
3. Carry the BIR VAT/withholding figures for VAT-registered issuers
4. Snapshot the client at issue time so later client edits don't rewrite history

HOW: Uses SQLAlchemy 2.0 with:
- Stored lifecycle status; "overdue" is derived from the due date, never stored
- Numeric columns for all money (never floats)
- An ORM version counter so concurrent payment writes fail instead of
  overwriting each other
"""

from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Date,
    ForeignKey,
    Numeric,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, Mapped

from chaching.models.base import Base, PrimaryKeyMixin, TimestampMixin, enum_column_type
from chaching.models.client import ClientType

if TYPE_CHECKING:
    from chaching.models.client import Client


class InvoiceStatus(str, Enum):
    """
    Invoice lifecycle status.

    WHY: Tracks the invoice through the billing process:
    - DRAFT: Created, editable, deletable
    - SENT: Emailed to the client
    - VIEWED: Client opened the invoice
    - PAID: Completed payments reached the total
    - OVERDUE: Never stored; reported for sent/viewed invoices past due date
    - CANCELLED: Voided, accepts no payments, cannot be reactivated
    """

    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


# Stored statuses that read as overdue once the due date has passed
OPEN_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.VIEWED)


class CurrencyCode(str, Enum):
    """Supported invoice and payment currencies."""

    PHP = "PHP"
    USD = "USD"
    EUR = "EUR"


class DiscountType(str, Enum):
    """How discount_value is interpreted."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ReminderType(str, Enum):
    """Escalation level of a payment reminder."""

    GENTLE = "gentle"
    FIRM = "firm"
    FINAL = "final"


def utc_today() -> date:
    """Current calendar date in UTC."""
    return datetime.utcnow().date()


class Invoice(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Invoice issued by a user to one of their clients.

    Attributes:
        user_id: Owner (the "sub" of the bearer token)
        invoice_number: INV-YYYY-MM-NNN, unique per owner, immutable
        client_id: Billed client
        client_name, client_email, client_address, client_type: Snapshot at issue time

        Amounts (in the invoice currency):
        subtotal: Sum of line item amounts
        tax_rate: Percentage applied to the discounted subtotal
        discount_type, discount_value: Discount inputs
        discount_amount: Resolved discount
        total: max(0, subtotal - discount_amount) + tax_amount
        total_php, exchange_rate: PHP equivalent for non-PHP invoices
        is_vat_registered: Issuer is VAT-registered (12% VAT mode)
        withholding_tax_amount: 10% withheld by business clients in VAT mode
        net_amount_due: total - withholding_tax_amount

        Payment tracking (maintained by the payment engine):
        total_paid: Sum of completed payments
        remaining_balance: max(0, total - total_paid)
        payment_percentage: min(100, total_paid / total * 100)

        version: Optimistic concurrency counter
    """

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("user_id", "invoice_number", name="uq_invoices_user_invoice_number"),
    )

    user_id: Mapped[str] = Column(String(64), nullable=False, index=True)
    invoice_number: Mapped[str] = Column(
        String(20),
        nullable=False,
        index=True,
        comment="Owner-scoped sequential number (INV-YYYY-MM-NNN)",
    )

    # Client snapshot
    client_id: Mapped[str] = Column(
        String(36),
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    client_name: Mapped[str] = Column(String(255), nullable=False)
    client_email: Mapped[Optional[str]] = Column(String(255), nullable=True)
    client_address: Mapped[Optional[str]] = Column(Text, nullable=True)
    client_type: Mapped[ClientType] = Column(
        enum_column_type(ClientType, "clienttype"),
        nullable=False,
        default=ClientType.INDIVIDUAL,
    )

    status: Mapped[InvoiceStatus] = Column(
        enum_column_type(InvoiceStatus, "invoicestatus"),
        nullable=False,
        default=InvoiceStatus.DRAFT,
        index=True,
        comment="Stored lifecycle status (overdue is derived)",
    )

    issue_date: Mapped[date] = Column(Date, nullable=False, default=utc_today)
    due_date: Mapped[date] = Column(Date, nullable=False, index=True)
    currency: Mapped[CurrencyCode] = Column(
        enum_column_type(CurrencyCode, "currencycode", length=3),
        nullable=False,
        default=CurrencyCode.PHP,
    )

    # Amounts
    subtotal: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False, default=0)
    tax_rate: Mapped[Decimal] = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False, default=0)
    discount_type: Mapped[Optional[DiscountType]] = Column(
        enum_column_type(DiscountType, "discounttype"),
        nullable=True,
    )
    discount_value: Mapped[Optional[Decimal]] = Column(Numeric(14, 2), nullable=True)
    discount_amount: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False, default=0)
    total: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False, default=0)

    # Currency conversion (null for PHP invoices)
    total_php: Mapped[Optional[Decimal]] = Column(Numeric(14, 2), nullable=True)
    exchange_rate: Mapped[Optional[Decimal]] = Column(Numeric(18, 8), nullable=True)
    exchange_rate_source: Mapped[Optional[str]] = Column(String(20), nullable=True)

    # BIR VAT mode
    is_vat_registered: Mapped[bool] = Column(Boolean, nullable=False, default=False)
    withholding_tax_amount: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False, default=0)
    net_amount_due: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False, default=0)

    # Payment tracking
    total_paid: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False, default=0)
    remaining_balance: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False, default=0)
    payment_percentage: Mapped[Decimal] = Column(Numeric(5, 2), nullable=False, default=0)

    # Documents and notes
    pdf_url: Mapped[Optional[str]] = Column(String(500), nullable=True)
    payment_terms: Mapped[Optional[str]] = Column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = Column(Text, nullable=True)

    # Lifecycle timestamps
    sent_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    viewed_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    last_payment_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)

    version: Mapped[int] = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    # WHY: selectin loading keeps line items and reminders available after
    # the async session returns, without implicit lazy IO.
    line_items: Mapped[List["InvoiceLineItem"]] = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position",
        lazy="selectin",
    )
    reminders: Mapped[List["InvoiceReminder"]] = relationship(
        "InvoiceReminder",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceReminder.sent_at",
        lazy="selectin",
    )
    client: Mapped["Client"] = relationship("Client", lazy="raise")

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Invoice(id={self.id}, number={self.invoice_number}, status={self.status})>"

    def effective_status_on(self, today: date) -> InvoiceStatus:
        """
        Status as reported to callers on a given day.

        Sent or viewed invoices whose due date has passed read as OVERDUE.
        Paid and cancelled invoices never do.
        """
        if self.status in OPEN_STATUSES and self.due_date < today:
            return InvoiceStatus.OVERDUE
        return self.status

    @property
    def effective_status(self) -> InvoiceStatus:
        return self.effective_status_on(utc_today())

    @property
    def is_overdue(self) -> bool:
        return self.effective_status == InvoiceStatus.OVERDUE

    @property
    def is_editable(self) -> bool:
        """
        Check if the invoice's amounts can be edited.

        WHY: Once sent, the invoice is a document the client holds; only
        drafts may change their amounts.
        """
        return self.status == InvoiceStatus.DRAFT

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    @property
    def is_partially_paid(self) -> bool:
        paid = self.total_paid or Decimal(0)
        return Decimal(0) < paid < self.total

    @property
    def reminders_sent(self) -> List["InvoiceReminder"]:
        return list(self.reminders)


class InvoiceLineItem(Base, PrimaryKeyMixin):
    """
    One billable line on an invoice.

    amount is always quantity * rate rounded to cents; callers never set it.
    is_taxable and tax_rate are informational overrides printed on the PDF.
    """

    __tablename__ = "invoice_line_items"

    invoice_id: Mapped[str] = Column(
        String(36),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = Column(Integer, nullable=False, default=0)
    description: Mapped[str] = Column(Text, nullable=False)
    quantity: Mapped[Decimal] = Column(Numeric(12, 4), nullable=False)
    rate: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False)
    amount: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False)
    is_taxable: Mapped[bool] = Column(Boolean, nullable=False, default=True)
    tax_rate: Mapped[Optional[Decimal]] = Column(Numeric(5, 2), nullable=True)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="line_items")

    def __repr__(self) -> str:
        return f"<InvoiceLineItem(id={self.id}, quantity={self.quantity}, rate={self.rate})>"


class InvoiceReminder(Base, PrimaryKeyMixin):
    """A payment reminder that was successfully dispatched."""

    __tablename__ = "invoice_reminders"

    invoice_id: Mapped[str] = Column(
        String(36),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reminder_type: Mapped[ReminderType] = Column(
        enum_column_type(ReminderType, "remindertype"),
        nullable=False,
    )
    email_id: Mapped[Optional[str]] = Column(String(255), nullable=True)
    subject: Mapped[Optional[str]] = Column(String(500), nullable=True)
    sent_at: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="reminders")

    def __repr__(self) -> str:
        return f"<InvoiceReminder(invoice_id={self.invoice_id}, type={self.reminder_type})>"
