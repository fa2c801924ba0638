"""
Payment Service.

WHAT: Records payments against invoices and keeps the invoice's running
balance, status and derived income transaction in step.

WHY: A payment touches three records (Payment, Invoice, Transaction).
They must be written together or not at all: a payment without its
transaction would under-report income for taxes, and an invoice balance
computed from a stale read would let two concurrent payments overpay.

HOW:
1. Validate against the invoice as read (fail fast, distinct errors)
2. Convert the amount to PHP at the payment date's rate (outside the lock)
3. Re-read the invoice with SELECT ... FOR UPDATE and validate again
4. Write Payment, Invoice totals and Transaction; commit once
5. Send the confirmation email after commit; failures become warnings
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from chaching.core.exceptions import (
    ConcurrencyConflictError,
    EmailServiceError,
    InvalidOperationError,
    InvoiceNotFoundError,
    OverpaymentError,
    ValidationError,
)
from chaching.core.money import ZERO, round_money
from chaching.dao.invoice import InvoiceDAO
from chaching.dao.payment import PaymentDAO
from chaching.dao.transaction import TransactionDAO
from chaching.models.invoice import CurrencyCode, Invoice, InvoiceStatus
from chaching.models.payment import Payment, PaymentMethod, PaymentStatus
from chaching.models.transaction import (
    INVOICE_PAYMENT_CATEGORY,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from chaching.services.email import EmailService, get_email_service
from chaching.services.exchange_rate_service import ExchangeRateService, get_exchange_rate_service
from chaching.services.invoice_calculator import (
    calculate_payment_percentage,
    calculate_remaining_balance,
)

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    """
    Outcome of a recorded payment.

    warnings lists post-commit problems (e.g. the confirmation email
    failed); the payment itself is committed whenever a result is returned.
    """

    payment: Payment
    invoice: Invoice
    transaction: Transaction
    overpaid_amount: Decimal = ZERO
    warnings: List[str] = field(default_factory=list)


@dataclass
class PaymentSummary:
    invoice_id: str
    currency: CurrencyCode
    total: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    payment_percentage: Decimal
    is_fully_paid: bool
    is_partially_paid: bool
    payment_count: int
    last_payment_date: Optional[date]
    overpaid_amount: Decimal


def validate_payment(invoice: Invoice, amount: Decimal, allow_overpayment: bool = False) -> None:
    """
    Check that a payment may be applied to an invoice.

    Checks run in a fixed order so each failure has one reason.

    Raises:
        InvalidOperationError: Invoice cancelled, draft or already fully paid
        ValidationError: Amount not positive
        OverpaymentError: Amount above the remaining balance without consent
    """
    if invoice.status == InvoiceStatus.CANCELLED:
        raise InvalidOperationError(
            message="Cannot record a payment for a cancelled invoice",
            invoice_id=invoice.id,
        )
    if invoice.status == InvoiceStatus.DRAFT:
        raise InvalidOperationError(
            message="Cannot record a payment for a draft invoice; send it first",
            invoice_id=invoice.id,
        )
    if amount <= 0:
        raise ValidationError(message="Payment amount must be greater than zero", amount=amount)
    if invoice.status == InvoiceStatus.PAID or invoice.remaining_balance <= 0:
        raise InvalidOperationError(
            message="Invoice is already fully paid",
            invoice_id=invoice.id,
        )
    if amount > invoice.remaining_balance and not allow_overpayment:
        raise OverpaymentError(
            amount=amount,
            remaining_balance=invoice.remaining_balance,
            excess=amount - invoice.remaining_balance,
        )


class PaymentService:
    """
    Service for invoice payments.

    WHAT: Records payments, summarizes them and lists payment history.

    WHY: The only writer of an invoice's total_paid, remaining_balance,
    payment_percentage and PAID status.

    HOW: Request-scoped; owns the commit of the payment transaction so the
    confirmation email can run after the data is durable.
    """

    def __init__(
        self,
        session: AsyncSession,
        user_id: str,
        exchange_rate_service: Optional[ExchangeRateService] = None,
        email_service: Optional[EmailService] = None,
    ):
        """
        Initialize PaymentService.

        Args:
            session: Async database session
            user_id: Owner id (the token subject)
            exchange_rate_service: Converter (defaults to the process-wide one)
            email_service: Email collaborator
        """
        self.session = session
        self.user_id = user_id
        self.invoice_dao = InvoiceDAO(session)
        self.payment_dao = PaymentDAO(session)
        self.transaction_dao = TransactionDAO(session)
        self.exchange_rate_service = exchange_rate_service or get_exchange_rate_service()
        self.email_service = email_service or get_email_service()

    async def _get_invoice(self, invoice_id: str) -> Invoice:
        invoice = await self.invoice_dao.get_by_id_and_user(invoice_id, self.user_id)
        if not invoice:
            raise InvoiceNotFoundError(invoice_id=invoice_id)
        return invoice

    async def record_payment(
        self,
        invoice_id: str,
        amount: Union[Decimal, int, str],
        payment_date: date,
        payment_method: PaymentMethod,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        allow_overpayment: bool = False,
        send_confirmation_email: bool = True,
    ) -> PaymentResult:
        """
        Record a completed payment.

        Args:
            invoice_id: Invoice being paid
            amount: Amount in the invoice currency
            payment_date: Date the money was received
            payment_method: How it was paid
            reference: External reference (bank ref, receipt no.)
            notes: Free text
            allow_overpayment: Accept an amount above the remaining balance
            send_confirmation_email: Email the client after commit

        Returns:
            PaymentResult

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
            InvalidOperationError: Cancelled, draft or fully paid invoice
            ValidationError: Amount not positive
            OverpaymentError: Amount above remaining balance without consent
            ConcurrencyConflictError: The invoice changed concurrently; nothing was written
        """
        amount = round_money(amount)
        payment_method = PaymentMethod(payment_method)

        invoice = await self._get_invoice(invoice_id)
        validate_payment(invoice, amount, allow_overpayment)

        conversion = await self.exchange_rate_service.convert(
            amount, invoice.currency, CurrencyCode.PHP, on_date=payment_date
        )
        if conversion.is_stale:
            logger.warning(
                "Payment converted with stale exchange rate",
                extra={"invoice_id": invoice_id, "source": conversion.source},
            )

        try:
            invoice = await self.invoice_dao.get_for_update(invoice_id, self.user_id)
            if not invoice:
                raise InvoiceNotFoundError(invoice_id=invoice_id)
            validate_payment(invoice, amount, allow_overpayment)

            payment = await self.payment_dao.create(
                user_id=self.user_id,
                invoice_id=invoice.id,
                amount=amount,
                currency=invoice.currency,
                amount_php=conversion.converted_amount,
                exchange_rate=conversion.rate,
                rate_source=conversion.source,
                payment_date=payment_date,
                payment_method=payment_method,
                reference=reference,
                notes=notes,
                status=PaymentStatus.COMPLETED,
            )

            total_paid = await self.payment_dao.sum_completed(invoice.id, self.user_id)
            fully_paid = total_paid >= invoice.total
            invoice = await self.invoice_dao.apply_payment_totals(
                invoice,
                total_paid=total_paid,
                remaining_balance=calculate_remaining_balance(invoice.total, total_paid),
                payment_percentage=calculate_payment_percentage(total_paid, invoice.total),
                paid_on=payment_date if fully_paid else None,
            )

            transaction = await self.transaction_dao.create(
                user_id=self.user_id,
                type=TransactionType.INCOME,
                amount=amount,
                currency=invoice.currency,
                amount_php=conversion.converted_amount,
                exchange_rate=conversion.rate,
                description=f"Payment for invoice {invoice.invoice_number}",
                category=INVOICE_PAYMENT_CATEGORY,
                date=payment_date,
                client_id=invoice.client_id,
                payment_method=payment_method,
                status=TransactionStatus.COMPLETED,
                extra_data={
                    "invoice_id": invoice.id,
                    "invoice_number": invoice.invoice_number,
                    "payment_id": payment.id,
                    "payment_reference": reference,
                },
            )
            payment.transaction_id = transaction.id

            await self.session.commit()
        except (StaleDataError, IntegrityError) as e:
            await self.session.rollback()
            logger.warning(
                "Payment rejected after a concurrent invoice change",
                extra={"invoice_id": invoice_id, "error": str(e)},
            )
            raise ConcurrencyConflictError(invoice_id=invoice_id) from e

        overpaid = max(ZERO, total_paid - invoice.total)
        logger.info(
            f"Payment recorded for {invoice.invoice_number}",
            extra={
                "invoice_id": invoice.id,
                "payment_id": payment.id,
                "amount": str(amount),
                "total_paid": str(total_paid),
                "status": invoice.status.value,
            },
        )
        if fully_paid:
            logger.info(f"Invoice paid: {invoice.invoice_number}", extra={"invoice_id": invoice.id})

        result = PaymentResult(
            payment=payment,
            invoice=invoice,
            transaction=transaction,
            overpaid_amount=overpaid,
        )

        if send_confirmation_email:
            try:
                await self.email_service.send_payment_confirmation(invoice, payment)
            except EmailServiceError as e:
                logger.warning(
                    f"Payment confirmation email failed: {e.message}",
                    extra={"invoice_id": invoice.id, "payment_id": payment.id},
                )
                result.warnings.append(f"Payment confirmation email was not sent: {e.message}")

        return result

    async def calculate_payment_summary(self, invoice_id: str) -> PaymentSummary:
        """
        Summarize the completed payments on an invoice.

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
        """
        invoice = await self._get_invoice(invoice_id)
        payments = await self.payment_dao.get_completed_by_invoice(invoice.id, self.user_id)

        total_paid = sum((p.amount for p in payments), ZERO)
        remaining = calculate_remaining_balance(invoice.total, total_paid)

        return PaymentSummary(
            invoice_id=invoice.id,
            currency=invoice.currency,
            total=invoice.total,
            total_paid=total_paid,
            remaining_balance=remaining,
            payment_percentage=calculate_payment_percentage(total_paid, invoice.total),
            is_fully_paid=remaining == 0 and total_paid > 0,
            is_partially_paid=ZERO < total_paid < invoice.total,
            payment_count=len(payments),
            last_payment_date=max((p.payment_date for p in payments), default=None),
            overpaid_amount=max(ZERO, total_paid - invoice.total),
        )

    async def get_payments(self, invoice_id: str) -> List[Payment]:
        """
        Payment history of an invoice, oldest first.

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
        """
        invoice = await self._get_invoice(invoice_id)
        return await self.payment_dao.get_by_invoice(invoice.id, self.user_id)
