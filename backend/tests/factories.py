"""
Test factories for creating test data.

WHY: Factories provide a consistent, reusable way to create test objects,
reducing duplication and making tests more maintainable. Invoice amounts
go through the real calculator so stored figures are always consistent.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from chaching.core.money import ZERO
from chaching.dao.invoice import format_invoice_number
from chaching.models.client import Client, ClientType
from chaching.models.invoice import (
    CurrencyCode,
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
    utc_today,
)
from chaching.models.payment import Payment, PaymentMethod, PaymentStatus
from chaching.models.transaction import (
    INVOICE_PAYMENT_CATEGORY,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from chaching.services.invoice_calculator import (
    LineItemInput,
    calculate_invoice_totals,
    calculate_payment_percentage,
    calculate_remaining_balance,
)


TEST_USER_ID = "user-test-1"
OTHER_USER_ID = "user-test-2"

# "1 PHP = x unit" quotes as the rate API returns them: 1 USD = 50 PHP,
# 1 EUR = 62.50 PHP.
RATES_DOCUMENT = {
    "date": "2024-03-01",
    "php": {"usd": Decimal("0.02"), "eur": Decimal("0.016")},
}

TEST_FALLBACK_RATES = {
    CurrencyCode.PHP: Decimal("1"),
    CurrencyCode.USD: Decimal("58.75"),
    CurrencyCode.EUR: Decimal("63.50"),
}


class ClientFactory:
    """Factory for creating Client test instances."""

    @staticmethod
    async def create(
        session: AsyncSession,
        user_id: str,
        name: str = "Acme Corp",
        email: Optional[str] = "billing@acme.test",
        address: Optional[str] = "1 Ayala Ave, Makati",
        type: ClientType = ClientType.BUSINESS,
    ) -> Client:
        """
        Create a client for testing.

        Args:
            session: Database session
            user_id: Owner id
            name: Client name
            email: Billing email (None for a client without one)
            address: Billing address
            type: individual or business

        Returns:
            Created Client instance
        """
        client = Client(
            user_id=user_id,
            name=name,
            email=email,
            address=address,
            type=type,
        )
        session.add(client)
        await session.commit()
        await session.refresh(client)
        return client


class InvoiceFactory:
    """
    Factory for creating Invoice test instances.

    WHY: Lets tests start from any lifecycle status without walking the
    service through send and view first.
    """

    _sequence = 0

    @classmethod
    async def create(
        cls,
        session: AsyncSession,
        client: Client,
        status: InvoiceStatus = InvoiceStatus.DRAFT,
        items: Sequence[Tuple[str, str]] = (("10", "500"), ("1", "2000")),
        tax_rate: str = "12",
        currency: CurrencyCode = CurrencyCode.PHP,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        invoice_number: Optional[str] = None,
        total_php: Optional[Decimal] = None,
    ) -> Invoice:
        """
        Create an invoice for testing.

        Defaults give subtotal 7000, tax 840 and total 7840.

        Args:
            session: Database session
            client: Billed client (owner taken from it)
            status: Stored status
            items: (quantity, rate) pairs
            tax_rate: Tax percentage
            currency: Invoice currency
            issue_date: Defaults to today
            due_date: Defaults to issue date + 30 days
            invoice_number: Defaults to a unique number for this month
            total_php: PHP equivalent for non-PHP invoices

        Returns:
            Created Invoice instance
        """
        issue_date = issue_date or utc_today()
        due_date = due_date or issue_date + timedelta(days=30)
        totals = calculate_invoice_totals(
            [LineItemInput(description=f"Item {i + 1}", quantity=q, rate=r) for i, (q, r) in enumerate(items)],
            tax_rate=tax_rate,
        )

        if invoice_number is None:
            cls._sequence += 1
            invoice_number = format_invoice_number(utc_today(), 900 + cls._sequence)

        invoice = Invoice(
            user_id=client.user_id,
            invoice_number=invoice_number,
            client_id=client.id,
            client_name=client.name,
            client_email=client.email,
            client_address=client.address,
            client_type=client.type,
            status=status,
            issue_date=issue_date,
            due_date=due_date,
            currency=currency,
            subtotal=totals.subtotal,
            tax_rate=totals.tax_rate,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total=totals.total,
            total_php=total_php,
            is_vat_registered=False,
            withholding_tax_amount=ZERO,
            net_amount_due=totals.net_amount_due,
            total_paid=ZERO,
            remaining_balance=totals.total,
            payment_percentage=ZERO,
            line_items=[
                InvoiceLineItem(
                    position=item.position,
                    description=item.description,
                    quantity=item.quantity,
                    rate=item.rate,
                    amount=item.amount,
                )
                for item in totals.line_items
            ],
        )
        session.add(invoice)
        await session.commit()
        await session.refresh(invoice)
        return invoice


class PaymentFactory:
    """
    Factory for completed payments written directly to the database.

    WHY: Some tests need payment history without going through the
    payment engine; the invoice totals are updated to match.
    """

    @staticmethod
    async def create(
        session: AsyncSession,
        invoice: Invoice,
        amount: str,
        payment_date: Optional[date] = None,
        status: PaymentStatus = PaymentStatus.COMPLETED,
    ) -> Payment:
        amount = Decimal(amount)
        payment = Payment(
            user_id=invoice.user_id,
            invoice_id=invoice.id,
            amount=amount,
            currency=invoice.currency,
            amount_php=amount,
            exchange_rate=Decimal("1"),
            payment_date=payment_date or utc_today(),
            payment_method=PaymentMethod.BANK_TRANSFER,
            status=status,
        )
        session.add(payment)

        if status == PaymentStatus.COMPLETED:
            invoice.total_paid = (invoice.total_paid or ZERO) + amount
            invoice.remaining_balance = calculate_remaining_balance(invoice.total, invoice.total_paid)
            invoice.payment_percentage = calculate_payment_percentage(invoice.total_paid, invoice.total)

        await session.commit()
        await session.refresh(payment)
        return payment


class TransactionFactory:
    """Factory for ledger transactions used by the tax reports."""

    @staticmethod
    async def create(
        session: AsyncSession,
        user_id: str,
        amount_php: str,
        on_date: date,
        type: TransactionType = TransactionType.INCOME,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        currency: CurrencyCode = CurrencyCode.PHP,
        amount: Optional[str] = None,
    ) -> Transaction:
        transaction = Transaction(
            user_id=user_id,
            type=type,
            amount=Decimal(amount or amount_php),
            currency=currency,
            amount_php=Decimal(amount_php),
            exchange_rate=Decimal("1"),
            description="Test transaction",
            category=INVOICE_PAYMENT_CATEGORY,
            date=on_date,
            status=status,
        )
        session.add(transaction)
        await session.commit()
        await session.refresh(transaction)
        return transaction
