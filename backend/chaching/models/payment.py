"""
Payment model.

WHAT: A single payment received against an invoice.

WHY: Payments are the source of truth for an invoice's running balance.
They are immutable once completed and never deleted; a correction is a
new offsetting payment.
"""

from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Column, String, Text, DateTime, Date, ForeignKey, Numeric
from sqlalchemy.orm import relationship, Mapped

from chaching.models.base import Base, PrimaryKeyMixin, TimestampMixin, enum_column_type
from chaching.models.invoice import CurrencyCode

if TYPE_CHECKING:
    from chaching.models.invoice import Invoice


class PaymentMethod(str, Enum):
    """How the client paid."""

    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    GCASH = "gcash"
    CASH = "cash"
    CRYPTO = "crypto"
    OTHER = "other"


class PaymentStatus(str, Enum):
    """
    Payment processing status.

    Only COMPLETED payments count towards an invoice's total_paid.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Payment(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Payment recorded against an invoice.

    Attributes:
        amount: Amount in the invoice currency
        amount_php: amount converted at the payment date's rate
        exchange_rate: Rate used for amount_php (1 for PHP)
        rate_source: Where the rate came from (api, cache, fallback)
        transaction_id: Income transaction emitted for this payment
        recorded_at: When the payment was entered
    """

    __tablename__ = "payments"

    user_id: Mapped[str] = Column(String(64), nullable=False, index=True)
    invoice_id: Mapped[str] = Column(
        String(36),
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False)
    currency: Mapped[CurrencyCode] = Column(
        enum_column_type(CurrencyCode, "currencycode", length=3),
        nullable=False,
    )
    amount_php: Mapped[Decimal] = Column(Numeric(14, 2), nullable=False)
    exchange_rate: Mapped[Decimal] = Column(Numeric(18, 8), nullable=False, default=1)
    rate_source: Mapped[Optional[str]] = Column(String(20), nullable=True)

    payment_date: Mapped[date] = Column(Date, nullable=False, index=True)
    payment_method: Mapped[PaymentMethod] = Column(
        enum_column_type(PaymentMethod, "paymentmethod"),
        nullable=False,
    )
    reference: Mapped[Optional[str]] = Column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = Column(Text, nullable=True)
    status: Mapped[PaymentStatus] = Column(
        enum_column_type(PaymentStatus, "paymentstatus"),
        nullable=False,
        default=PaymentStatus.COMPLETED,
    )

    transaction_id: Mapped[Optional[str]] = Column(
        String(36),
        ForeignKey("transactions.id", ondelete="SET NULL"),
        nullable=True,
    )
    recorded_at: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow)

    invoice: Mapped["Invoice"] = relationship("Invoice", lazy="raise")

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, invoice_id={self.invoice_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
