"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from chaching.models.base import Base, TimestampMixin, PrimaryKeyMixin
from chaching.models.client import Client, ClientType, ClientStatus
from chaching.models.invoice import (
    Invoice,
    InvoiceLineItem,
    InvoiceReminder,
    InvoiceStatus,
    CurrencyCode,
    DiscountType,
    ReminderType,
)
from chaching.models.payment import Payment, PaymentMethod, PaymentStatus
from chaching.models.transaction import Transaction, TransactionType, TransactionStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "Client",
    "ClientType",
    "ClientStatus",
    "Invoice",
    "InvoiceLineItem",
    "InvoiceReminder",
    "InvoiceStatus",
    "CurrencyCode",
    "DiscountType",
    "ReminderType",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Transaction",
    "TransactionType",
    "TransactionStatus",
]
