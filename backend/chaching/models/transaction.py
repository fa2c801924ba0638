"""
Transaction model.

WHAT: Income and expense ledger entries used for tax reporting.

WHY: Every completed invoice payment emits exactly one income transaction;
quarterly and annual tax figures are aggregated from these rows.
Transactions derived from payments are never mutated.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Column, String, Text, Date, ForeignKey, Numeric, JSON
from sqlalchemy.orm import Mapped

from chaching.models.base import Base, PrimaryKeyMixin, TimestampMixin, enum_column_type
from chaching.models.invoice import CurrencyCode
from chaching.models.payment import PaymentMethod


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


INVOICE_PAYMENT_CATEGORY = "Invoice Payment"


class Transaction(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Ledger entry owned by a user.

    Attributes:
        amount: Amount in `currency`
        amount_php: PHP equivalent used for tax aggregation
        date: Calendar date the money moved
        extra_data: Links back to the source record
            (invoice_id, invoice_number, payment_id, payment_reference)
    """

    __tablename__ = "transactions"

    user_id: Mapped[str] = Column(String(64), nullable=False, index=True)
    type: Mapped[TransactionType] = Column(
        enum_column_type(TransactionType, "transactiontype"),
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
    description: Mapped[str] = Column(Text, nullable=False)
    category: Mapped[str] = Column(String(100), nullable=False)
    date: Mapped[date] = Column(Date, nullable=False, index=True)
    client_id: Mapped[Optional[str]] = Column(
        String(36),
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
    )
    payment_method: Mapped[Optional[PaymentMethod]] = Column(
        enum_column_type(PaymentMethod, "paymentmethod"),
        nullable=True,
    )
    status: Mapped[TransactionStatus] = Column(
        enum_column_type(TransactionStatus, "transactionstatus"),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )

    # NOTE: Named 'extra_data' because 'metadata' is reserved by SQLAlchemy
    extra_data: Mapped[Optional[Dict[str, Any]]] = Column("metadata", JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, type={self.type}, amount={self.amount})>"
