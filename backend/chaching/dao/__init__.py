"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from chaching.dao.base import BaseDAO
from chaching.dao.client import ClientDAO
from chaching.dao.invoice import InvoiceDAO
from chaching.dao.payment import PaymentDAO
from chaching.dao.transaction import TransactionDAO

__all__ = [
    "BaseDAO",
    "ClientDAO",
    "InvoiceDAO",
    "PaymentDAO",
    "TransactionDAO",
]
