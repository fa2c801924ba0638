"""
Unit tests for PaymentService.

WHAT: Tests payment recording, balance and status updates, overpayment
rules, the derived income transaction and failure atomicity.

WHY: Payments move money figures that feed both the client's balance and
the owner's tax reports. Either everything is written or nothing is.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy.orm.exc import StaleDataError

from chaching.core.exceptions import (
    ConcurrencyConflictError,
    InvalidOperationError,
    InvoiceNotFoundError,
    OverpaymentError,
    ValidationError,
)
from chaching.dao.payment import PaymentDAO
from chaching.dao.transaction import TransactionDAO
from chaching.models.invoice import CurrencyCode, InvoiceStatus, utc_today
from chaching.models.payment import PaymentMethod
from chaching.models.transaction import INVOICE_PAYMENT_CATEGORY, TransactionType
from chaching.services.email import EmailType, MockEmailProvider
from chaching.services.payment_service import PaymentService
from tests.factories import OTHER_USER_ID, ClientFactory, InvoiceFactory


@pytest_asyncio.fixture
async def payment_service(db_session, user_id, exchange_rate_service, email_service):
    return PaymentService(
        db_session,
        user_id,
        exchange_rate_service=exchange_rate_service,
        email_service=email_service,
    )


@pytest_asyncio.fixture
async def sent_invoice(db_session, billing_client):
    """The reference 7,840.00 PHP invoice, already sent."""
    return await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)


async def pay(service, invoice, amount, **kwargs):
    return await service.record_payment(
        invoice.id,
        Decimal(amount),
        payment_date=kwargs.pop("payment_date", utc_today()),
        payment_method=kwargs.pop("payment_method", PaymentMethod.BANK_TRANSFER),
        **kwargs,
    )


async def written_counts(db_session, invoice_id, user_id):
    payments = await PaymentDAO(db_session).count(invoice_id=invoice_id)
    transactions = await TransactionDAO(db_session).count(user_id=user_id)
    return payments, transactions


class TestRecordPayment:
    @pytest.mark.asyncio
    async def test_full_payment_marks_paid(self, payment_service, sent_invoice, db_session, user_id):
        result = await pay(payment_service, sent_invoice, "7840.00", reference="BPI-123")

        assert result.invoice.status == InvoiceStatus.PAID
        assert result.invoice.paid_at is not None
        assert result.invoice.total_paid == Decimal("7840.00")
        assert result.invoice.remaining_balance == Decimal("0")
        assert result.invoice.payment_percentage == Decimal("100.00")
        assert result.overpaid_amount == Decimal("0")

        transaction = result.transaction
        assert transaction.type == TransactionType.INCOME
        assert transaction.amount_php == Decimal("7840.00")
        assert transaction.category == INVOICE_PAYMENT_CATEGORY
        assert transaction.extra_data["payment_reference"] == "BPI-123"
        assert result.payment.transaction_id == transaction.id

        assert await written_counts(db_session, sent_invoice.id, user_id) == (1, 1)

    @pytest.mark.asyncio
    async def test_partial_payment(self, payment_service, sent_invoice):
        result = await pay(payment_service, sent_invoice, "3000")

        assert result.invoice.status == InvoiceStatus.SENT
        assert result.invoice.remaining_balance == Decimal("4840.00")
        assert result.invoice.payment_percentage == Decimal("38.27")

    @pytest.mark.asyncio
    async def test_partial_payments_complete_invoice(self, payment_service, sent_invoice):
        await pay(payment_service, sent_invoice, "3000")
        result = await pay(payment_service, sent_invoice, "4840")

        assert result.invoice.status == InvoiceStatus.PAID
        assert result.invoice.total_paid == Decimal("7840.00")

    @pytest.mark.asyncio
    async def test_overdue_invoice_accepts_payment(self, payment_service, db_session, billing_client):
        today = utc_today()
        invoice = await InvoiceFactory.create(
            db_session,
            billing_client,
            status=InvoiceStatus.VIEWED,
            issue_date=today - timedelta(days=60),
            due_date=today - timedelta(days=30),
        )

        result = await pay(payment_service, invoice, "1000")

        assert result.invoice.effective_status == InvoiceStatus.OVERDUE

    @pytest.mark.asyncio
    async def test_confirmation_email_sent(self, payment_service, sent_invoice):
        await pay(payment_service, sent_invoice, "1000")

        assert [e.email_type for e in MockEmailProvider.sent_emails] == [EmailType.PAYMENT_CONFIRMATION]

    @pytest.mark.asyncio
    async def test_confirmation_email_can_be_skipped(self, payment_service, sent_invoice):
        await pay(payment_service, sent_invoice, "1000", send_confirmation_email=False)

        assert MockEmailProvider.sent_emails == []

    @pytest.mark.asyncio
    async def test_usd_payment_converted_at_payment_date(self, payment_service, db_session, billing_client):
        invoice = await InvoiceFactory.create(
            db_session, billing_client, status=InvoiceStatus.SENT, currency=CurrencyCode.USD
        )
        paid_on = utc_today() - timedelta(days=3)

        result = await pay(payment_service, invoice, "100", payment_date=paid_on)

        assert result.payment.amount == Decimal("100.00")
        assert result.payment.amount_php == Decimal("5000.00")
        assert result.payment.exchange_rate == Decimal("50")
        assert result.transaction.amount_php == Decimal("5000.00")
        payment_service.exchange_rate_service.fetch_rates.assert_awaited_with(
            CurrencyCode.PHP, paid_on.isoformat()
        )


class TestPaymentRules:
    @pytest.mark.asyncio
    async def test_overpayment_rejected(self, payment_service, sent_invoice, db_session, user_id):
        with pytest.raises(OverpaymentError) as exc_info:
            await pay(payment_service, sent_invoice, "8000")

        assert exc_info.value.context["excess"] == Decimal("160.00")
        assert await written_counts(db_session, sent_invoice.id, user_id) == (0, 0)

    @pytest.mark.asyncio
    async def test_overpayment_allowed(self, payment_service, sent_invoice):
        result = await pay(payment_service, sent_invoice, "8000", allow_overpayment=True)

        assert result.invoice.status == InvoiceStatus.PAID
        assert result.invoice.remaining_balance == Decimal("0")
        assert result.invoice.payment_percentage == Decimal("100.00")
        assert result.overpaid_amount == Decimal("160.00")
        assert result.transaction.amount == Decimal("8000.00")
        assert result.transaction.amount_php == Decimal("8000.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED])
    async def test_unpayable_statuses(self, payment_service, db_session, billing_client, user_id, status):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=status)

        with pytest.raises(InvalidOperationError):
            await pay(payment_service, invoice, "100")

        assert await written_counts(db_session, invoice.id, user_id) == (0, 0)

    @pytest.mark.asyncio
    async def test_cancelled_reported_before_bad_amount(self, payment_service, db_session, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.CANCELLED)

        with pytest.raises(InvalidOperationError):
            await pay(payment_service, invoice, "-5")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-10"])
    async def test_non_positive_amount_rejected(self, payment_service, sent_invoice, amount):
        with pytest.raises(ValidationError):
            await pay(payment_service, sent_invoice, amount)

    @pytest.mark.asyncio
    async def test_paid_invoice_rejected(self, payment_service, sent_invoice):
        await pay(payment_service, sent_invoice, "7840")

        with pytest.raises(InvalidOperationError):
            await pay(payment_service, sent_invoice, "1")

    @pytest.mark.asyncio
    async def test_other_users_invoice_not_found(self, payment_service, db_session):
        foreign_client = await ClientFactory.create(db_session, user_id=OTHER_USER_ID)
        foreign = await InvoiceFactory.create(db_session, foreign_client, status=InvoiceStatus.SENT)

        with pytest.raises(InvoiceNotFoundError):
            await pay(payment_service, foreign, "100")


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_email_failure_is_a_warning(self, payment_service, db_session, user_id):
        no_email = await ClientFactory.create(db_session, user_id=user_id, email=None)
        invoice = await InvoiceFactory.create(db_session, no_email, status=InvoiceStatus.SENT)

        result = await pay(payment_service, invoice, "1000")

        assert len(result.warnings) == 1
        assert "confirmation email" in result.warnings[0]
        assert await written_counts(db_session, invoice.id, user_id) == (1, 1)

    @pytest.mark.asyncio
    async def test_concurrent_change_writes_nothing(self, payment_service, sent_invoice, db_session, user_id):
        # The rollback expires every loaded instance
        invoice_id = sent_invoice.id

        with patch.object(
            payment_service.invoice_dao,
            "apply_payment_totals",
            AsyncMock(side_effect=StaleDataError("invoice version changed")),
        ):
            with pytest.raises(ConcurrencyConflictError):
                await pay(payment_service, sent_invoice, "1000")

        assert await written_counts(db_session, invoice_id, user_id) == (0, 0)
        assert MockEmailProvider.sent_emails == []


class TestSummaryAndHistory:
    @pytest.mark.asyncio
    async def test_summary_after_partial_payment(self, payment_service, sent_invoice):
        await pay(payment_service, sent_invoice, "3000")

        summary = await payment_service.calculate_payment_summary(sent_invoice.id)

        assert summary.total_paid == Decimal("3000.00")
        assert summary.remaining_balance == Decimal("4840.00")
        assert summary.payment_percentage == Decimal("38.27")
        assert summary.is_partially_paid is True
        assert summary.is_fully_paid is False
        assert summary.payment_count == 1
        assert summary.last_payment_date == utc_today()

    @pytest.mark.asyncio
    async def test_summary_without_payments(self, payment_service, sent_invoice):
        summary = await payment_service.calculate_payment_summary(sent_invoice.id)

        assert summary.payment_count == 0
        assert summary.is_fully_paid is False
        assert summary.last_payment_date is None

    @pytest.mark.asyncio
    async def test_history_oldest_first(self, payment_service, sent_invoice):
        today = utc_today()
        await pay(payment_service, sent_invoice, "1000", payment_date=today)
        await pay(payment_service, sent_invoice, "2000", payment_date=today - timedelta(days=2))

        payments = await payment_service.get_payments(sent_invoice.id)

        assert [p.amount for p in payments] == [Decimal("2000.00"), Decimal("1000.00")]
