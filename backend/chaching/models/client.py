"""
Client model.

WHAT: The billed party of an invoice.

WHY: Clients are maintained by the client-management part of the product;
the billing engine only reads them to snapshot name, email, address and
type onto an invoice at issue time.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import Column, String, Text
from sqlalchemy.orm import Mapped

from chaching.models.base import Base, PrimaryKeyMixin, TimestampMixin, enum_column_type


class ClientType(str, Enum):
    """
    Legal form of a client.

    WHY: Business clients withhold 10% creditable tax on VAT invoices.
    """

    INDIVIDUAL = "individual"
    BUSINESS = "business"


class ClientStatus(str, Enum):
    """Client lifecycle status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class Client(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Client owned by a single user.

    Attributes:
        user_id: Owner (the "sub" of the bearer token)
        name: Display name printed on invoices
        email: Address invoices and reminders are sent to
        company: Company name, if any
        address: Postal address printed on invoices
        type: individual or business
        status: active, inactive or archived
    """

    __tablename__ = "clients"

    user_id: Mapped[str] = Column(String(64), nullable=False, index=True)
    name: Mapped[str] = Column(String(255), nullable=False)
    email: Mapped[Optional[str]] = Column(String(255), nullable=True)
    company: Mapped[Optional[str]] = Column(String(255), nullable=True)
    address: Mapped[Optional[str]] = Column(Text, nullable=True)
    type: Mapped[ClientType] = Column(
        enum_column_type(ClientType, "clienttype"),
        nullable=False,
        default=ClientType.INDIVIDUAL,
    )
    status: Mapped[ClientStatus] = Column(
        enum_column_type(ClientStatus, "clientstatus"),
        nullable=False,
        default=ClientStatus.ACTIVE,
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name={self.name}, type={self.type})>"
