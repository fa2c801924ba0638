"""
Unit tests for Invoice DAO.

WHAT: Tests for InvoiceDAO database operations.

WHY: Verifies that:
1. Owner scoping is enforced (another user's invoice reads as missing)
2. The derived overdue status is translated into SQL correctly
3. Invoice numbers continue from the highest number of the month
4. Lifecycle helpers set their timestamps

HOW: Uses pytest-asyncio with an in-memory SQLite database.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from chaching.dao.invoice import InvoiceDAO, format_invoice_number, invoice_number_prefix
from chaching.models.invoice import InvoiceStatus, ReminderType
from tests.factories import OTHER_USER_ID
from tests.factories import ClientFactory, InvoiceFactory


TODAY = date(2024, 3, 15)


class TestInvoiceNumbers:
    def test_format_invoice_number(self):
        assert format_invoice_number(date(2024, 3, 1), 1) == "INV-2024-03-001"
        assert format_invoice_number(date(2024, 12, 31), 42) == "INV-2024-12-042"

    def test_sequence_above_999_grows_wider(self):
        assert format_invoice_number(date(2024, 3, 1), 1000) == "INV-2024-03-1000"

    def test_prefix(self):
        assert invoice_number_prefix(date(2025, 1, 9)) == "INV-2025-01-"

    @pytest.mark.asyncio
    async def test_next_sequence_starts_at_one(self, db_session, user_id):
        dao = InvoiceDAO(db_session)
        assert await dao.get_next_invoice_number_sequence(user_id, TODAY) == 1

    @pytest.mark.asyncio
    async def test_next_sequence_uses_highest_of_month(self, db_session, billing_client):
        await InvoiceFactory.create(db_session, billing_client, invoice_number="INV-2024-03-001")
        await InvoiceFactory.create(db_session, billing_client, invoice_number="INV-2024-03-007")
        await InvoiceFactory.create(db_session, billing_client, invoice_number="INV-2024-02-050")

        dao = InvoiceDAO(db_session)
        assert await dao.get_next_invoice_number_sequence(billing_client.user_id, TODAY) == 8

    @pytest.mark.asyncio
    async def test_next_sequence_is_per_owner(self, db_session, billing_client):
        await InvoiceFactory.create(db_session, billing_client, invoice_number="INV-2024-03-003")

        dao = InvoiceDAO(db_session)
        assert await dao.get_next_invoice_number_sequence(OTHER_USER_ID, TODAY) == 1


class TestOwnerScoping:
    @pytest.mark.asyncio
    async def test_other_owner_cannot_read(self, db_session, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client)
        dao = InvoiceDAO(db_session)

        assert await dao.get_by_id_and_user(invoice.id, billing_client.user_id) is not None
        assert await dao.get_by_id_and_user(invoice.id, OTHER_USER_ID) is None
        assert await dao.get_for_update(invoice.id, OTHER_USER_ID) is None

    @pytest.mark.asyncio
    async def test_get_by_invoice_number(self, db_session, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client, invoice_number="INV-2024-03-011")
        dao = InvoiceDAO(db_session)

        found = await dao.get_by_invoice_number("INV-2024-03-011", billing_client.user_id)
        assert found.id == invoice.id
        assert await dao.get_by_invoice_number("INV-2024-03-011", OTHER_USER_ID) is None


class TestStatusFilters:
    @pytest_asyncio.fixture
    async def invoices(self, db_session, billing_client):
        past_due = TODAY - timedelta(days=1)
        return {
            "draft": await InvoiceFactory.create(db_session, billing_client, issue_date=date(2024, 1, 5)),
            "sent": await InvoiceFactory.create(
                db_session, billing_client, status=InvoiceStatus.SENT,
                issue_date=date(2024, 2, 1), due_date=TODAY,
            ),
            "overdue_sent": await InvoiceFactory.create(
                db_session, billing_client, status=InvoiceStatus.SENT,
                issue_date=date(2024, 2, 2), due_date=past_due,
            ),
            "overdue_viewed": await InvoiceFactory.create(
                db_session, billing_client, status=InvoiceStatus.VIEWED,
                issue_date=date(2024, 2, 3), due_date=past_due,
            ),
            "paid": await InvoiceFactory.create(
                db_session, billing_client, status=InvoiceStatus.PAID,
                issue_date=date(2024, 2, 4), due_date=past_due,
            ),
        }

    @pytest.mark.asyncio
    async def test_overdue_is_derived(self, db_session, billing_client, invoices):
        dao = InvoiceDAO(db_session)
        overdue = await dao.list_for_user(billing_client.user_id, status=InvoiceStatus.OVERDUE, today=TODAY)

        assert {inv.id for inv in overdue} == {invoices["overdue_sent"].id, invoices["overdue_viewed"].id}

    @pytest.mark.asyncio
    async def test_sent_excludes_past_due(self, db_session, billing_client, invoices):
        dao = InvoiceDAO(db_session)
        sent = await dao.list_for_user(billing_client.user_id, status=InvoiceStatus.SENT, today=TODAY)

        # Due today is not yet overdue
        assert [inv.id for inv in sent] == [invoices["sent"].id]

    @pytest.mark.asyncio
    async def test_paid_past_due_is_not_overdue(self, db_session, billing_client, invoices):
        dao = InvoiceDAO(db_session)
        paid = await dao.list_for_user(billing_client.user_id, status=InvoiceStatus.PAID, today=TODAY)

        assert [inv.id for inv in paid] == [invoices["paid"].id]
        assert paid[0].effective_status_on(TODAY) == InvoiceStatus.PAID

    @pytest.mark.asyncio
    async def test_count_matches_list(self, db_session, billing_client, invoices):
        dao = InvoiceDAO(db_session)
        user_id = billing_client.user_id

        assert await dao.count_for_user(user_id, today=TODAY) == 5
        assert await dao.count_for_user(user_id, status=InvoiceStatus.OVERDUE, today=TODAY) == 2

    @pytest.mark.asyncio
    async def test_newest_first_with_pagination(self, db_session, billing_client, invoices):
        dao = InvoiceDAO(db_session)
        page = await dao.list_for_user(billing_client.user_id, skip=1, limit=2, today=TODAY)

        assert [inv.id for inv in page] == [invoices["overdue_viewed"].id, invoices["overdue_sent"].id]

    @pytest.mark.asyncio
    async def test_issue_date_range(self, db_session, billing_client, invoices):
        dao = InvoiceDAO(db_session)
        in_range = await dao.list_for_user(
            billing_client.user_id,
            date_from=date(2024, 2, 2),
            date_to=date(2024, 2, 3),
            today=TODAY,
        )
        assert len(in_range) == 2

    @pytest.mark.asyncio
    async def test_client_filter(self, db_session, billing_client, invoices):
        other = await ClientFactory.create(db_session, billing_client.user_id, name="Other Client")
        await InvoiceFactory.create(db_session, other)
        dao = InvoiceDAO(db_session)

        assert await dao.count_for_user(billing_client.user_id, client_id=other.id) == 1


class TestLifecycleHelpers:
    @pytest.mark.asyncio
    async def test_mark_sent_sets_timestamp(self, db_session, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client)
        invoice = await InvoiceDAO(db_session).mark_sent(invoice, pdf_url="http://test/pdf")

        assert invoice.status == InvoiceStatus.SENT
        assert invoice.sent_at is not None
        assert invoice.pdf_url == "http://test/pdf"

    @pytest.mark.asyncio
    async def test_mark_viewed_only_changes_sent(self, db_session, billing_client):
        dao = InvoiceDAO(db_session)
        sent = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)
        paid = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.PAID)

        sent = await dao.mark_viewed(sent)
        paid = await dao.mark_viewed(paid)

        assert sent.status == InvoiceStatus.VIEWED
        assert sent.viewed_at is not None
        assert paid.status == InvoiceStatus.PAID

    @pytest.mark.asyncio
    async def test_mark_viewed_keeps_first_viewed_at(self, db_session, billing_client):
        dao = InvoiceDAO(db_session)
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)

        invoice = await dao.mark_viewed(invoice)
        first = invoice.viewed_at
        invoice = await dao.mark_viewed(invoice)

        assert invoice.viewed_at == first

    @pytest.mark.asyncio
    async def test_apply_payment_totals_marks_paid(self, db_session, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)
        version = invoice.version

        invoice = await InvoiceDAO(db_session).apply_payment_totals(
            invoice,
            total_paid=Decimal("7840.00"),
            remaining_balance=Decimal("0.00"),
            payment_percentage=Decimal("100.00"),
            paid_on=date(2024, 3, 10),
        )

        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_at.date() == date(2024, 3, 10)
        assert invoice.version == version + 1

    @pytest.mark.asyncio
    async def test_add_reminder(self, db_session, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)
        reminder = await InvoiceDAO(db_session).add_reminder(
            invoice, ReminderType.FIRM, email_id="mock-1", subject="Reminder"
        )

        assert reminder.reminder_type == ReminderType.FIRM
        assert [r.id for r in invoice.reminders_sent] == [reminder.id]
