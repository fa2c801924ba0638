"""
Invoice Service.

WHAT: Business logic for the invoice lifecycle: creation, editing,
sending, reminders, viewing, cancellation, deletion and analytics.

WHY: The service layer:
1. Enforces the lifecycle state machine (draft -> sent -> viewed -> paid,
   cancellation, derived overdue)
2. Runs the invoice calculator so stored totals are always consistent
3. Snapshots the client and converts non-PHP totals at issue time
4. Coordinates the PDF and email collaborators around state changes

HOW: Request-scoped; constructed with an AsyncSession and the owner id.
Every lookup is owner-scoped so another user's invoice reads as missing.
Collaborator failures raise before any state change.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from chaching.core.config import settings
from chaching.core.exceptions import (
    ClientNotFoundError,
    ConcurrencyConflictError,
    InvalidOperationError,
    InvalidStateTransitionError,
    InvoiceNotFoundError,
    ValidationError,
)
from chaching.core.money import ONE_HUNDRED, ZERO, round_money, to_decimal
from chaching.dao.client import ClientDAO
from chaching.dao.invoice import InvoiceDAO, format_invoice_number
from chaching.dao.payment import PaymentDAO
from chaching.models.client import ClientType
from chaching.models.invoice import (
    CurrencyCode,
    DiscountType,
    Invoice,
    InvoiceLineItem,
    InvoiceReminder,
    InvoiceStatus,
    OPEN_STATUSES,
    ReminderType,
    utc_today,
)
from chaching.schemas.invoice import InvoiceCreate, InvoiceUpdate, LineItemCreate
from chaching.services.email import EmailService, get_email_service
from chaching.services.exchange_rate_service import ExchangeRateService, get_exchange_rate_service
from chaching.services.invoice_calculator import (
    InvoiceTotals,
    LineItemInput,
    calculate_invoice_totals,
    calculate_payment_percentage,
    calculate_remaining_balance,
)
from chaching.services.pdf_service import PDFService, get_pdf_service

logger = logging.getLogger(__name__)


# Fields of InvoiceUpdate that change amounts
AMOUNT_FIELDS = frozenset(
    {"line_items", "tax_rate", "discount_type", "discount_value", "currency", "is_vat_registered"}
)

ALL_STATUSES = "all"


@dataclass
class SendInvoiceResult:
    invoice: Invoice
    email_id: Optional[str]
    pdf_url: Optional[str]


@dataclass
class CurrencyTotals:
    count: int = 0
    amount: Decimal = ZERO


@dataclass
class InvoiceAnalyticsResult:
    """
    Aggregated invoice figures for a period.

    Amount fields other than total_amount_php are nominal sums across
    currencies; currency_breakdown keeps each currency apart.
    """

    total_invoices: int = 0
    total_amount: Decimal = ZERO
    total_amount_php: Decimal = ZERO
    paid_count: int = 0
    paid_amount: Decimal = ZERO
    overdue_count: int = 0
    overdue_amount: Decimal = ZERO
    outstanding_balance: Decimal = ZERO
    status_breakdown: Dict[str, int] = field(default_factory=dict)
    currency_breakdown: Dict[str, CurrencyTotals] = field(default_factory=dict)
    date_from: Optional[date] = None
    date_to: Optional[date] = None


def _line_item_inputs(items: Sequence[Union[LineItemCreate, InvoiceLineItem]]) -> List[LineItemInput]:
    return [
        LineItemInput(
            description=item.description,
            quantity=item.quantity,
            rate=item.rate,
            is_taxable=item.is_taxable,
            tax_rate=item.tax_rate,
        )
        for item in items
    ]


def validate_amount_inputs(
    items: Sequence[LineItemInput],
    tax_rate: Decimal,
    discount_type: Optional[DiscountType],
    discount_value: Optional[Decimal],
) -> None:
    """
    Business validation of invoice amount inputs.

    Raises:
        ValidationError: No items, non-positive quantity or rate, tax rate
            outside 0-100, incomplete or out-of-range discount
    """
    if not items:
        raise ValidationError(message="An invoice needs at least one line item")

    for position, item in enumerate(items):
        if to_decimal(item.quantity) <= 0:
            raise ValidationError(message="Quantity must be greater than zero", position=position)
        if to_decimal(item.rate) <= 0:
            raise ValidationError(message="Rate must be greater than zero", position=position)

    if tax_rate < 0 or tax_rate > ONE_HUNDRED:
        raise ValidationError(message="Tax rate must be between 0 and 100", tax_rate=tax_rate)

    if (discount_type is None) != (discount_value is None):
        raise ValidationError(message="Discount type and discount value must be given together")
    if discount_value is not None:
        if discount_value <= 0:
            raise ValidationError(message="Discount must be greater than zero", discount_value=discount_value)
        if discount_type == DiscountType.PERCENTAGE and discount_value > ONE_HUNDRED:
            raise ValidationError(
                message="Percentage discount cannot exceed 100",
                discount_value=discount_value,
            )


def validate_invoice_total(totals: InvoiceTotals) -> None:
    """
    Reject amounts that leave nothing to pay.

    A zero total could never be paid, so it would stay sent and later read
    as overdue with nothing owed.

    Raises:
        ValidationError: Discount consumes the whole invoice
    """
    if totals.total <= 0:
        raise ValidationError(
            message="Invoice total must be greater than zero",
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
        )


class InvoiceService:
    """
    Service for invoice lifecycle operations.

    WHAT: Provides business logic for invoices owned by one user.

    WHY: Invoices are financial documents:
    - Amounts are derived, never supplied
    - Only drafts get deleted; amounts never drop below what was paid
    - Paid and cancelled invoices are final

    HOW: Coordinates InvoiceDAO, ClientDAO and PaymentDAO with the
    calculator, the exchange rate service and the PDF/email collaborators.
    """

    def __init__(
        self,
        session: AsyncSession,
        user_id: str,
        exchange_rate_service: Optional[ExchangeRateService] = None,
        pdf_service: Optional[PDFService] = None,
        email_service: Optional[EmailService] = None,
    ):
        """
        Initialize InvoiceService.

        Args:
            session: Async database session
            user_id: Owner id (the token subject)
            exchange_rate_service: Converter (defaults to the process-wide one)
            pdf_service: PDF collaborator
            email_service: Email collaborator
        """
        self.session = session
        self.user_id = user_id
        self.invoice_dao = InvoiceDAO(session)
        self.client_dao = ClientDAO(session)
        self.payment_dao = PaymentDAO(session)
        self.exchange_rate_service = exchange_rate_service or get_exchange_rate_service()
        self.pdf_service = pdf_service or get_pdf_service()
        self.email_service = email_service or get_email_service()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _apply_conversion(self, invoice: Invoice) -> None:
        """Store the PHP equivalent of a non-PHP total at the latest rate."""
        if invoice.currency == CurrencyCode.PHP:
            invoice.total_php = None
            invoice.exchange_rate = None
            invoice.exchange_rate_source = None
            return

        conversion = await self.exchange_rate_service.convert(
            invoice.total, invoice.currency, CurrencyCode.PHP
        )
        invoice.total_php = conversion.converted_amount
        invoice.exchange_rate = conversion.rate
        invoice.exchange_rate_source = conversion.source
        if conversion.is_stale:
            logger.warning(
                "Invoice total converted with stale exchange rate",
                extra={"invoice_number": invoice.invoice_number, "source": conversion.source},
            )

    @staticmethod
    def _apply_totals(invoice: Invoice, totals: InvoiceTotals) -> None:
        invoice.subtotal = totals.subtotal
        invoice.tax_rate = totals.tax_rate
        invoice.tax_amount = totals.tax_amount
        invoice.discount_type = totals.discount_type
        invoice.discount_value = totals.discount_value
        invoice.discount_amount = totals.discount_amount
        invoice.total = totals.total
        invoice.is_vat_registered = totals.is_vat_registered
        invoice.withholding_tax_amount = totals.withholding_tax_amount
        invoice.net_amount_due = totals.net_amount_due

        total_paid = invoice.total_paid or ZERO
        invoice.total_paid = total_paid
        invoice.remaining_balance = calculate_remaining_balance(totals.total, total_paid)
        invoice.payment_percentage = calculate_payment_percentage(total_paid, totals.total)

    @staticmethod
    def _build_line_items(totals: InvoiceTotals) -> List[InvoiceLineItem]:
        return [
            InvoiceLineItem(
                position=item.position,
                description=item.description,
                quantity=item.quantity,
                rate=item.rate,
                amount=item.amount,
                is_taxable=item.is_taxable,
                tax_rate=item.tax_rate,
            )
            for item in totals.line_items
        ]

    async def _flush(self, invoice: Invoice) -> None:
        """Flush pending changes, turning lost races into ConcurrencyConflictError."""
        try:
            await self.session.flush()
        except (IntegrityError, StaleDataError) as e:
            logger.warning(
                "Concurrent invoice write rejected",
                extra={"invoice_number": invoice.invoice_number, "error": str(e)},
            )
            raise ConcurrencyConflictError(invoice_number=invoice.invoice_number) from e
        await self.session.refresh(invoice)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_invoice(self, data: InvoiceCreate) -> Invoice:
        """
        Create a draft invoice.

        WHAT: Validates inputs, snapshots the client, numbers the invoice,
        computes totals and converts them to PHP when needed.

        Args:
            data: Invoice creation payload

        Returns:
            Created Invoice in DRAFT status

        Raises:
            ValidationError: Invalid amounts or dates
            ClientNotFoundError: Client missing or owned by someone else
            ConcurrencyConflictError: Invoice number taken by a concurrent create
        """
        issue_date = data.issue_date or utc_today()
        due_date = data.due_date or issue_date + timedelta(days=settings.DEFAULT_PAYMENT_TERMS_DAYS)
        if due_date < issue_date:
            raise ValidationError(
                message="Due date cannot be before issue date",
                issue_date=issue_date,
                due_date=due_date,
            )

        items = _line_item_inputs(data.line_items)
        validate_amount_inputs(items, data.tax_rate, data.discount_type, data.discount_value)

        client = await self.client_dao.get_by_id_and_user(data.client_id, self.user_id)
        if not client:
            raise ClientNotFoundError(client_id=data.client_id)

        totals = calculate_invoice_totals(
            items,
            tax_rate=data.tax_rate,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            is_vat_registered=data.is_vat_registered,
            client_type=client.type,
        )
        validate_invoice_total(totals)

        numbered_on = utc_today()
        sequence = await self.invoice_dao.get_next_invoice_number_sequence(self.user_id, numbered_on)

        invoice = Invoice(
            user_id=self.user_id,
            invoice_number=format_invoice_number(numbered_on, sequence),
            client_id=client.id,
            client_name=client.name,
            client_email=client.email,
            client_address=client.address,
            client_type=client.type,
            status=InvoiceStatus.DRAFT,
            issue_date=issue_date,
            due_date=due_date,
            currency=data.currency,
            payment_terms=data.payment_terms,
            notes=data.notes,
            total_paid=ZERO,
            line_items=self._build_line_items(totals),
        )
        self._apply_totals(invoice, totals)
        await self._apply_conversion(invoice)

        self.session.add(invoice)
        await self._flush(invoice)

        logger.info(
            f"Invoice created: {invoice.invoice_number}",
            extra={
                "invoice_id": invoice.id,
                "user_id": self.user_id,
                "total": str(invoice.total),
                "currency": invoice.currency.value,
            },
        )
        return invoice

    async def get_invoice_by_id(self, invoice_id: str) -> Invoice:
        """
        Get an invoice owned by the current user.

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
        """
        invoice = await self.invoice_dao.get_by_id_and_user(invoice_id, self.user_id)
        if not invoice:
            raise InvoiceNotFoundError(invoice_id=invoice_id)
        return invoice

    async def get_invoices(
        self,
        status: Optional[Union[InvoiceStatus, str]] = None,
        client_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[Invoice], int]:
        """
        List invoices, newest first.

        Args:
            status: Effective status, "overdue" included; "all" or None for every status
            client_id: Restrict to one client
            date_from: Issue date lower bound
            date_to: Issue date upper bound
            skip: Pagination offset
            limit: Pagination limit

        Returns:
            Tuple of (invoices, total matching count)

        Raises:
            ValidationError: Unknown status
        """
        if status == ALL_STATUSES:
            status = None
        if status is not None:
            try:
                status = InvoiceStatus(status)
            except ValueError:
                raise ValidationError(message="Unknown invoice status", status=status)

        today = utc_today()
        invoices = await self.invoice_dao.list_for_user(
            self.user_id,
            status=status,
            client_id=client_id,
            date_from=date_from,
            date_to=date_to,
            skip=skip,
            limit=limit,
            today=today,
        )
        total = await self.invoice_dao.count_for_user(
            self.user_id,
            status=status,
            client_id=client_id,
            date_from=date_from,
            date_to=date_to,
            today=today,
        )
        return invoices, total

    async def update_invoice(self, invoice_id: str, data: InvoiceUpdate) -> Invoice:
        """
        Update an invoice.

        WHAT: Amount inputs, notes, terms and due date may change until the
        invoice is paid or cancelled. Changed amounts are recomputed and
        reconverted; the payment figures follow the new total, which cannot
        drop below what was already paid.

        Args:
            invoice_id: Invoice ID
            data: Fields to change (unset fields are left alone)

        Returns:
            Updated invoice

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
            InvalidOperationError: Invoice is paid or cancelled, or the change
                conflicts with recorded payments
            ValidationError: Invalid amounts or dates
            ConcurrencyConflictError: The invoice changed concurrently
        """
        invoice = await self.get_invoice_by_id(invoice_id)
        changes: Dict[str, Any] = data.model_dump(exclude_unset=True)
        if not changes:
            return invoice

        changed_amounts = AMOUNT_FIELDS & changes.keys()
        if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            raise InvalidOperationError(
                message=f"A {invoice.status.value} invoice cannot be edited",
                status=invoice.status.value,
            )

        if "due_date" in changes:
            if changes["due_date"] is None:
                raise ValidationError(message="Due date cannot be removed")
            if changes["due_date"] < invoice.issue_date:
                raise ValidationError(
                    message="Due date cannot be before issue date",
                    issue_date=invoice.issue_date,
                    due_date=changes["due_date"],
                )
            invoice.due_date = changes["due_date"]
        if "payment_terms" in changes:
            invoice.payment_terms = changes["payment_terms"]
        if "notes" in changes:
            invoice.notes = changes["notes"]

        if changed_amounts:
            await self._recalculate(invoice, data, changes)

        await self._flush(invoice)
        logger.info(
            f"Invoice updated: {invoice.invoice_number}",
            extra={"invoice_id": invoice.id, "fields": sorted(changes.keys())},
        )
        return invoice

    async def _recalculate(self, invoice: Invoice, data: InvoiceUpdate, changes: Dict[str, Any]) -> None:
        """
        Recompute totals from the stored inputs overlaid with the changes.

        Raises:
            ValidationError: Invalid amount inputs or a zero total
            InvalidOperationError: Currency change or a total below the amount
                already paid on an invoice with payments
        """
        total_paid = invoice.total_paid or ZERO
        if "line_items" in changes:
            if data.line_items is None:
                raise ValidationError(message="An invoice needs at least one line item")
            items = _line_item_inputs(data.line_items)
        else:
            items = _line_item_inputs(sorted(invoice.line_items, key=lambda i: i.position))

        tax_rate = changes["tax_rate"] if "tax_rate" in changes else invoice.tax_rate
        if tax_rate is None:
            tax_rate = ZERO
        if "discount_type" in changes or "discount_value" in changes:
            discount_type = changes.get("discount_type", invoice.discount_type)
            discount_value = changes.get("discount_value", invoice.discount_value)
        else:
            discount_type, discount_value = invoice.discount_type, invoice.discount_value
        is_vat_registered = changes.get("is_vat_registered", invoice.is_vat_registered)
        if is_vat_registered is None:
            is_vat_registered = invoice.is_vat_registered
        new_currency = changes.get("currency")
        if new_currency is not None and new_currency != invoice.currency:
            if total_paid > 0:
                raise InvalidOperationError(
                    message="Currency cannot change once payments are recorded",
                    currency=invoice.currency.value,
                    total_paid=total_paid,
                )
            invoice.currency = new_currency

        validate_amount_inputs(items, tax_rate, discount_type, discount_value)
        totals = calculate_invoice_totals(
            items,
            tax_rate=tax_rate,
            discount_type=discount_type,
            discount_value=discount_value,
            is_vat_registered=is_vat_registered,
            client_type=invoice.client_type or ClientType.INDIVIDUAL,
        )
        validate_invoice_total(totals)
        if totals.total < total_paid:
            raise InvalidOperationError(
                message="Invoice total cannot be lower than the amount already paid",
                total=totals.total,
                total_paid=total_paid,
            )

        if "line_items" in changes:
            invoice.line_items = self._build_line_items(totals)
        self._apply_totals(invoice, totals)
        await self._apply_conversion(invoice)

        if total_paid > 0 and invoice.remaining_balance == 0:
            # Lowered to exactly what was paid: settled by the last payment
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = invoice.last_payment_at or datetime.utcnow()
            logger.info(
                f"Invoice paid by amount change: {invoice.invoice_number}",
                extra={"invoice_id": invoice.id, "total": str(invoice.total)},
            )

    async def delete_invoice(self, invoice_id: str) -> None:
        """
        Delete a draft invoice.

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
            InvalidOperationError: Invoice is not a draft
        """
        invoice = await self.get_invoice_by_id(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvalidOperationError(
                message="Only draft invoices can be deleted",
                status=invoice.effective_status.value,
            )

        await self.invoice_dao.delete(invoice)
        logger.info(f"Invoice deleted: {invoice.invoice_number}", extra={"invoice_id": invoice_id})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def send_invoice(self, invoice_id: str) -> SendInvoiceResult:
        """
        Email an invoice to its client.

        WHAT: Generates (or reuses) the PDF, dispatches the invoice email
        and, for drafts, transitions to SENT.

        WHY: The status changes only after the email went out, so a failed
        dispatch leaves a draft a draft. The PDF URL is committed before
        dispatch and survives a failed send.

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
            InvalidStateTransitionError: Invoice is paid or cancelled
            PDFGenerationError: PDF could not be produced
            EmailServiceError: Email could not be dispatched
        """
        invoice = await self.get_invoice_by_id(invoice_id)
        if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            raise InvalidStateTransitionError(
                message=f"A {invoice.status.value} invoice cannot be sent",
                status=invoice.status.value,
            )

        pdf_url = await self.pdf_service.generate_invoice_pdf(invoice)
        if pdf_url != invoice.pdf_url:
            invoice.pdf_url = pdf_url
            await self._flush(invoice)
            await self.session.commit()

        dispatch = await self.email_service.send_invoice_email(invoice, pdf_url)

        if invoice.status == InvoiceStatus.DRAFT:
            invoice = await self.invoice_dao.mark_sent(invoice)
            logger.info(
                f"Invoice sent: {invoice.invoice_number}",
                extra={"invoice_id": invoice.id, "email_id": dispatch.email_id},
            )
        else:
            logger.info(
                f"Invoice re-sent: {invoice.invoice_number}",
                extra={"invoice_id": invoice.id, "email_id": dispatch.email_id},
            )

        return SendInvoiceResult(invoice=invoice, email_id=dispatch.email_id, pdf_url=pdf_url)

    async def send_reminder_email(
        self,
        invoice_id: str,
        reminder_type: ReminderType = ReminderType.GENTLE,
    ) -> Tuple[Invoice, InvoiceReminder]:
        """
        Send a payment reminder for an open invoice.

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
            InvalidOperationError: Invoice is not sent, viewed or overdue
            EmailServiceError: Email could not be dispatched
        """
        invoice = await self.get_invoice_by_id(invoice_id)
        if invoice.status not in OPEN_STATUSES:
            raise InvalidOperationError(
                message="Reminders can only be sent for sent, viewed or overdue invoices",
                status=invoice.effective_status.value,
            )

        reminder_type = ReminderType(reminder_type)
        dispatch = await self.email_service.send_reminder_email(invoice, reminder_type)
        reminder = await self.invoice_dao.add_reminder(
            invoice,
            reminder_type,
            email_id=dispatch.email_id,
            subject=dispatch.subject,
        )

        logger.info(
            f"Reminder sent: {invoice.invoice_number}",
            extra={"invoice_id": invoice.id, "reminder_type": reminder_type.value},
        )
        return invoice, reminder

    async def mark_invoice_as_viewed(self, invoice_id: str) -> Invoice:
        """
        Record that the client viewed the invoice.

        Only a stored SENT invoice becomes VIEWED; anything else is left as
        is, so repeated calls are harmless.
        """
        invoice = await self.get_invoice_by_id(invoice_id)
        previous = invoice.status
        invoice = await self.invoice_dao.mark_viewed(invoice)

        if previous != invoice.status:
            logger.info(f"Invoice viewed: {invoice.invoice_number}", extra={"invoice_id": invoice.id})
        return invoice

    async def cancel_invoice(self, invoice_id: str) -> Invoice:
        """
        Cancel an invoice.

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
            InvalidStateTransitionError: Invoice is paid or already cancelled
            InvalidOperationError: Invoice has completed payments
        """
        invoice = await self.get_invoice_by_id(invoice_id)
        if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            raise InvalidStateTransitionError(
                message=f"A {invoice.status.value} invoice cannot be cancelled",
                status=invoice.status.value,
            )
        if await self.payment_dao.has_completed_payments(invoice.id, self.user_id):
            raise InvalidOperationError(
                message="An invoice with payments cannot be cancelled",
                total_paid=invoice.total_paid,
            )

        invoice = await self.invoice_dao.cancel_invoice(invoice)
        logger.info(f"Invoice cancelled: {invoice.invoice_number}", extra={"invoice_id": invoice.id})
        return invoice

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_invoice_analytics(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> InvoiceAnalyticsResult:
        """
        Aggregate invoices issued in a period.

        Statuses are effective statuses: past-due sent or viewed invoices
        count as overdue, and overdue_amount is what is still owed on them.

        Args:
            date_from: Issue date lower bound
            date_to: Issue date upper bound

        Returns:
            InvoiceAnalyticsResult
        """
        if date_from and date_to and date_from > date_to:
            raise ValidationError(message="date_from must not be after date_to")

        invoices = await self.invoice_dao.get_for_analytics(self.user_id, date_from, date_to)
        today = utc_today()

        result = InvoiceAnalyticsResult(
            total_invoices=len(invoices),
            status_breakdown={status.value: 0 for status in InvoiceStatus},
            currency_breakdown={currency.value: CurrencyTotals() for currency in CurrencyCode},
            date_from=date_from,
            date_to=date_to,
        )

        for invoice in invoices:
            status = invoice.effective_status_on(today)
            result.status_breakdown[status.value] += 1

            result.total_amount += invoice.total
            result.total_amount_php += invoice.total_php if invoice.total_php is not None else invoice.total

            totals = result.currency_breakdown[invoice.currency.value]
            totals.count += 1
            totals.amount += invoice.total

            if status == InvoiceStatus.PAID:
                result.paid_count += 1
                result.paid_amount += invoice.total
            elif status == InvoiceStatus.OVERDUE:
                result.overdue_count += 1
                result.overdue_amount += invoice.remaining_balance

            if status in (InvoiceStatus.SENT, InvoiceStatus.VIEWED, InvoiceStatus.OVERDUE):
                result.outstanding_balance += invoice.remaining_balance

        result.total_amount_php = round_money(result.total_amount_php)
        return result

    async def get_invoice_pdf(self, invoice_id: str) -> Tuple[Invoice, bytes]:
        """
        Render the invoice PDF for download.

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
            PDFGenerationError: PDF could not be rendered
        """
        invoice = await self.get_invoice_by_id(invoice_id)
        return invoice, await self.pdf_service.get_invoice_pdf(invoice)
