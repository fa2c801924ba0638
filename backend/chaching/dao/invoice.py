"""
Invoice Data Access Object (DAO).

WHAT: Database operations for the Invoice model.

WHY: The DAO pattern:
1. Separates data access from business logic
2. Provides a consistent API for invoice operations
3. Enforces owner scoping on every lookup
4. Encapsulates the queries behind listing, numbering and analytics

HOW: Extends BaseDAO with invoice-specific queries:
- Effective-status filtering (overdue is derived from the due date)
- Locked re-reads for the payment transaction
- Lifecycle writes (sent, viewed, cancelled, payment totals)
- Month-scoped invoice number sequence
"""

from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from chaching.dao.base import BaseDAO
from chaching.models.invoice import (
    Invoice,
    InvoiceReminder,
    InvoiceStatus,
    OPEN_STATUSES,
    ReminderType,
    utc_today,
)


INVOICE_NUMBER_PREFIX = "INV"


def invoice_number_prefix(on_date: date) -> str:
    """Month prefix shared by all invoices issued in a calendar month."""
    return f"{INVOICE_NUMBER_PREFIX}-{on_date.year:04d}-{on_date.month:02d}-"


def format_invoice_number(on_date: date, sequence: int) -> str:
    """
    Format a human-readable invoice number.

    Format: INV-YYYY-MM-NNN where NNN is the zero-padded monthly sequence.
    Sequences above 999 simply grow wider.
    """
    return f"{invoice_number_prefix(on_date)}{sequence:03d}"


class InvoiceDAO(BaseDAO[Invoice]):
    """
    Data Access Object for Invoice model.

    WHAT: Provides CRUD and query operations for invoices.

    WHY: Centralizes all invoice database operations:
    - Enforces user_id scoping for security
    - Translates the derived "overdue" status into SQL
    - Serializes concurrent payment writes with a row lock

    HOW: Extends BaseDAO with invoice-specific methods.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize InvoiceDAO.

        Args:
            session: Async database session
        """
        super().__init__(Invoice, session)

    async def get_by_invoice_number(
        self,
        invoice_number: str,
        user_id: str,
    ) -> Optional[Invoice]:
        """
        Get an invoice by its invoice number.

        Args:
            invoice_number: The invoice number (e.g., INV-2024-03-001)
            user_id: Owner id

        Returns:
            Invoice if found and owned by user, None otherwise
        """
        result = await self.session.execute(
            select(Invoice).where(
                Invoice.invoice_number == invoice_number,
                Invoice.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, invoice_id: str, user_id: str) -> Optional[Invoice]:
        """
        Re-read an invoice with a row lock inside the current transaction.

        WHAT: SELECT ... FOR UPDATE with populate_existing.

        WHY: The payment engine must compute the new balance from the
        committed row, not from a copy loaded earlier in the request.
        populate_existing overwrites any stale identity-map state; the lock
        makes a concurrent payment on the same invoice wait for our commit.
        Backends without row locks (SQLite) rely on the version counter.

        Args:
            invoice_id: Invoice ID
            user_id: Owner id

        Returns:
            Locked invoice or None if not found
        """
        result = await self.session.execute(
            select(Invoice)
            .where(
                Invoice.id == invoice_id,
                Invoice.user_id == user_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _status_clause(self, status: InvoiceStatus, today: date):
        """
        SQL condition matching an effective (reported) status.

        WHY: OVERDUE is never stored, and a stored SENT/VIEWED invoice that
        is past due must not show up under SENT/VIEWED.
        """
        if status == InvoiceStatus.OVERDUE:
            return and_(Invoice.status.in_(OPEN_STATUSES), Invoice.due_date < today)
        if status in OPEN_STATUSES:
            return and_(Invoice.status == status, Invoice.due_date >= today)
        return Invoice.status == status

    def _list_conditions(
        self,
        user_id: str,
        status: Optional[InvoiceStatus],
        client_id: Optional[str],
        date_from: Optional[date],
        date_to: Optional[date],
        today: Optional[date],
    ) -> list:
        conditions = [Invoice.user_id == user_id]
        if status is not None:
            conditions.append(self._status_clause(status, today or utc_today()))
        if client_id:
            conditions.append(Invoice.client_id == client_id)
        if date_from:
            conditions.append(Invoice.issue_date >= date_from)
        if date_to:
            conditions.append(Invoice.issue_date <= date_to)
        return conditions

    async def count_for_user(
        self,
        user_id: str,
        status: Optional[InvoiceStatus] = None,
        client_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        today: Optional[date] = None,
    ) -> int:
        """Number of invoices list_for_user would return without pagination."""
        result = await self.session.execute(
            select(func.count(Invoice.id)).where(
                *self._list_conditions(user_id, status, client_id, date_from, date_to, today)
            )
        )
        return result.scalar_one()

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[InvoiceStatus] = None,
        client_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        skip: int = 0,
        limit: int = 100,
        today: Optional[date] = None,
    ) -> List[Invoice]:
        """
        List a user's invoices, newest first.

        Args:
            user_id: Owner id
            status: Effective status filter (None for all)
            client_id: Only invoices for this client
            date_from: Issue date lower bound (inclusive)
            date_to: Issue date upper bound (inclusive)
            skip: Pagination offset
            limit: Pagination limit
            today: Reference date for the overdue rule (defaults to UTC today)

        Returns:
            Matching invoices
        """
        query = select(Invoice).where(
            *self._list_conditions(user_id, status, client_id, date_from, date_to, today)
        )
        query = (
            query.order_by(Invoice.issue_date.desc(), Invoice.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_for_analytics(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Invoice]:
        """
        Load every invoice issued in a period for aggregation.

        WHY: Aggregation happens in Python with Decimal so the figures match
        the stored cents exactly on every backend.
        """
        conditions = [Invoice.user_id == user_id]
        if date_from:
            conditions.append(Invoice.issue_date >= date_from)
        if date_to:
            conditions.append(Invoice.issue_date <= date_to)

        result = await self.session.execute(select(Invoice).where(*conditions))
        return list(result.scalars().all())

    async def get_next_invoice_number_sequence(self, user_id: str, on_date: date) -> int:
        """
        Get the next monthly sequence number for invoice numbering.

        WHAT: One past the highest sequence already used this month.

        WHY: Counting would reuse a number after a draft is deleted; taking
        the maximum never does. Two concurrent creates can still race, which
        the (user_id, invoice_number) unique constraint turns into an
        IntegrityError for the service to report.

        Args:
            user_id: Owner id
            on_date: Issue month

        Returns:
            Next sequence number (starting from 1)
        """
        prefix = invoice_number_prefix(on_date)
        result = await self.session.execute(
            select(Invoice.invoice_number).where(
                Invoice.user_id == user_id,
                Invoice.invoice_number.like(f"{prefix}%"),
            )
        )

        highest = 0
        for number in result.scalars().all():
            suffix = number[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest + 1

    async def mark_sent(self, invoice: Invoice, pdf_url: Optional[str] = None) -> Invoice:
        """
        Transition a draft to SENT.

        WHAT: Sets status and sent_at once the invoice email went out.

        Args:
            invoice: Invoice in DRAFT status
            pdf_url: Stored PDF location, if newly generated

        Returns:
            Updated invoice
        """
        invoice.status = InvoiceStatus.SENT
        invoice.sent_at = datetime.utcnow()
        if pdf_url:
            invoice.pdf_url = pdf_url

        await self.session.flush()
        await self.session.refresh(invoice)
        return invoice

    async def mark_viewed(self, invoice: Invoice) -> Invoice:
        """
        Record that the client opened the invoice.

        Only a stored SENT invoice changes status; viewed_at is set the
        first time regardless.
        """
        if invoice.status == InvoiceStatus.SENT:
            invoice.status = InvoiceStatus.VIEWED
        if invoice.viewed_at is None:
            invoice.viewed_at = datetime.utcnow()

        await self.session.flush()
        await self.session.refresh(invoice)
        return invoice

    async def cancel_invoice(self, invoice: Invoice) -> Invoice:
        """
        Cancel an invoice.

        Callers check that the invoice is cancellable.
        """
        invoice.status = InvoiceStatus.CANCELLED

        await self.session.flush()
        await self.session.refresh(invoice)
        return invoice

    async def apply_payment_totals(
        self,
        invoice: Invoice,
        total_paid: Decimal,
        remaining_balance: Decimal,
        payment_percentage: Decimal,
        paid_on: Optional[date] = None,
    ) -> Invoice:
        """
        Write the running payment totals.

        WHAT: Updates total_paid, remaining_balance, payment_percentage and
        last_payment_at; transitions to PAID when paid_on is given.

        WHY: The stored status is otherwise left alone so a partially paid,
        past-due invoice keeps reading as overdue.

        Args:
            invoice: Locked invoice
            total_paid: New sum of completed payments
            remaining_balance: max(0, total - total_paid)
            payment_percentage: min(100, total_paid / total * 100)
            paid_on: Payment date that completed the invoice, if any

        Returns:
            Updated invoice (version incremented on flush)
        """
        invoice.total_paid = total_paid
        invoice.remaining_balance = remaining_balance
        invoice.payment_percentage = payment_percentage
        invoice.last_payment_at = datetime.utcnow()

        if paid_on is not None:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = datetime.combine(paid_on, datetime.min.time())

        await self.session.flush()
        return invoice

    async def add_reminder(
        self,
        invoice: Invoice,
        reminder_type: ReminderType,
        email_id: Optional[str],
        subject: Optional[str],
    ) -> InvoiceReminder:
        """Append a dispatched reminder to the invoice's history."""
        reminder = InvoiceReminder(
            invoice_id=invoice.id,
            reminder_type=reminder_type,
            email_id=email_id,
            subject=subject,
            sent_at=datetime.utcnow(),
        )
        invoice.reminders.append(reminder)

        await self.session.flush()
        await self.session.refresh(invoice)
        return reminder
