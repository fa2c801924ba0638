"""
Integration tests for the invoice and payment API.

WHAT: Tests invoice CRUD, lifecycle endpoints, PDF download and payment
recording over HTTP.

WHY: The API is the contract clients build against: status codes, the
error envelope, string-encoded money and owner scoping must hold end to
end.

HOW: Uses pytest-asyncio with AsyncClient for HTTP testing.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from chaching.models.invoice import InvoiceStatus, utc_today
from chaching.services.email import MockEmailProvider
from tests.factories import OTHER_USER_ID, ClientFactory, InvoiceFactory


INVOICES_URL = "/api/invoices"


def invoice_body(client_id: str, **overrides) -> dict:
    body = {
        "client_id": client_id,
        "line_items": [
            {"description": "Design work", "quantity": "10", "rate": "500"},
            {"description": "Hosting setup", "quantity": "1", "rate": "2000"},
        ],
        "tax_rate": "12",
    }
    body.update(overrides)
    return body


class TestInvoiceCrud:
    """Integration tests for invoice create/read/update/delete."""

    @pytest.mark.asyncio
    async def test_create_invoice(self, client: AsyncClient, auth_headers, billing_client):
        response = await client.post(INVOICES_URL, json=invoice_body(billing_client.id), headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "draft"
        assert data["invoice_number"].startswith(f"INV-{utc_today():%Y-%m}-")
        assert data["subtotal"] == "7000.00"
        assert data["tax_amount"] == "840.00"
        assert data["total"] == "7840.00"
        assert data["remaining_balance"] == "7840.00"
        assert data["is_editable"] is True
        assert [item["amount"] for item in data["line_items"]] == ["5000.00", "2000.00"]

    @pytest.mark.asyncio
    async def test_create_usd_invoice(self, client: AsyncClient, auth_headers, billing_client):
        response = await client.post(
            INVOICES_URL,
            json=invoice_body(billing_client.id, currency="USD"),
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert response.json()["total_php"] == "392000.00"

    @pytest.mark.asyncio
    async def test_supplied_line_amount_rejected(self, client: AsyncClient, auth_headers, billing_client):
        body = invoice_body(billing_client.id)
        body["line_items"][0]["amount"] = "1"

        response = await client.post(INVOICES_URL, json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_non_positive_quantity_rejected(self, client: AsyncClient, auth_headers, billing_client):
        body = invoice_body(billing_client.id)
        body["line_items"][0]["quantity"] = "0"

        response = await client.post(INVOICES_URL, json=body, headers=auth_headers)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_client_is_404(self, client: AsyncClient, auth_headers):
        response = await client.post(INVOICES_URL, json=invoice_body("missing"), headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "ClientNotFoundError"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient, billing_client):
        response = await client.get(INVOICES_URL)

        assert response.status_code == 401
        assert response.json()["error"] == "AuthenticationError"

    @pytest.mark.asyncio
    async def test_invalid_token_rejected(self, client: AsyncClient):
        response = await client.get(INVOICES_URL, headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_get_invoice(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client)

        response = await client.get(f"{INVOICES_URL}/{invoice.id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["invoice_number"] == invoice.invoice_number

    @pytest.mark.asyncio
    async def test_other_owner_sees_404(
        self, client: AsyncClient, other_auth_headers, db_session: AsyncSession, billing_client
    ):
        invoice = await InvoiceFactory.create(db_session, billing_client)

        response = await client.get(f"{INVOICES_URL}/{invoice.id}", headers=other_auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "InvoiceNotFoundError"

    @pytest.mark.asyncio
    async def test_past_due_reads_overdue(
        self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client
    ):
        today = utc_today()
        invoice = await InvoiceFactory.create(
            db_session,
            billing_client,
            status=InvoiceStatus.SENT,
            issue_date=today - timedelta(days=45),
            due_date=today - timedelta(days=15),
        )

        response = await client.get(f"{INVOICES_URL}/{invoice.id}", headers=auth_headers)

        assert response.json()["status"] == "overdue"
        assert response.json()["is_overdue"] is True

    @pytest.mark.asyncio
    async def test_list_invoices(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        await InvoiceFactory.create(db_session, billing_client)
        await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)
        foreign_client = await ClientFactory.create(db_session, user_id=OTHER_USER_ID)
        await InvoiceFactory.create(db_session, foreign_client)

        response = await client.get(INVOICES_URL, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 2

        response = await client.get(INVOICES_URL, params={"status": "sent"}, headers=auth_headers)
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["status"] == "sent"

    @pytest.mark.asyncio
    async def test_update_draft(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client)

        response = await client.patch(
            f"{INVOICES_URL}/{invoice.id}",
            json={"discount_type": "percentage", "discount_value": "10"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["discount_amount"] == "700.00"
        assert data["tax_amount"] == "756.00"
        assert data["total"] == "7056.00"

    @pytest.mark.asyncio
    async def test_invoice_number_not_editable(
        self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client
    ):
        invoice = await InvoiceFactory.create(db_session, billing_client)

        response = await client.patch(
            f"{INVOICES_URL}/{invoice.id}",
            json={"invoice_number": "INV-1999-01-001"},
            headers=auth_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_sent_amounts_recalculates(
        self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client
    ):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)

        response = await client.patch(
            f"{INVOICES_URL}/{invoice.id}", json={"tax_rate": "5"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["total"] == "7350.00"
        assert response.json()["remaining_balance"] == "7350.00"

    @pytest.mark.asyncio
    async def test_update_paid_amounts_is_422(
        self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client
    ):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.PAID)

        response = await client.patch(
            f"{INVOICES_URL}/{invoice.id}", json={"tax_rate": "5"}, headers=auth_headers
        )

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidOperationError"

    @pytest.mark.asyncio
    async def test_zero_total_is_400(self, client: AsyncClient, auth_headers, billing_client):
        response = await client.post(
            INVOICES_URL,
            json={
                "client_id": billing_client.id,
                "line_items": [{"description": "Consulting", "quantity": "1", "rate": "1000"}],
                "tax_rate": "12",
                "discount_type": "fixed",
                "discount_value": "5000",
            },
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_delete_draft(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client)

        response = await client.delete(f"{INVOICES_URL}/{invoice.id}", headers=auth_headers)
        assert response.status_code == 204

        response = await client.get(f"{INVOICES_URL}/{invoice.id}", headers=auth_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_sent_is_422(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)

        response = await client.delete(f"{INVOICES_URL}/{invoice.id}", headers=auth_headers)

        assert response.status_code == 422


class TestInvoiceLifecycle:
    """Integration tests for send, remind, view, cancel and PDF endpoints."""

    @pytest.mark.asyncio
    async def test_send_then_view(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client)

        response = await client.post(f"{INVOICES_URL}/{invoice.id}/send", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["invoice"]["status"] == "sent"
        assert data["email_id"].startswith("mock-")
        assert data["pdf_url"].endswith(f"/api/invoices/{invoice.id}/pdf")
        assert len(MockEmailProvider.sent_emails) == 1

        response = await client.post(f"{INVOICES_URL}/{invoice.id}/viewed", headers=auth_headers)
        assert response.json()["status"] == "viewed"
        assert response.json()["viewed_at"] is not None

    @pytest.mark.asyncio
    async def test_reminder(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)

        response = await client.post(
            f"{INVOICES_URL}/{invoice.id}/reminders",
            json={"reminder_type": "final"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["reminder"]["reminder_type"] == "final"
        assert len(data["invoice"]["reminders_sent"]) == 1

    @pytest.mark.asyncio
    async def test_reminder_for_draft_is_422(
        self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client
    ):
        invoice = await InvoiceFactory.create(db_session, billing_client)

        response = await client.post(f"{INVOICES_URL}/{invoice.id}/reminders", headers=auth_headers)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_cancel(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)

        response = await client.post(f"{INVOICES_URL}/{invoice.id}/cancel", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        response = await client.post(f"{INVOICES_URL}/{invoice.id}/cancel", headers=auth_headers)
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidStateTransitionError"

    @pytest.mark.asyncio
    async def test_pdf_download(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client)

        response = await client.get(f"{INVOICES_URL}/{invoice.id}/pdf", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert invoice.invoice_number in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_analytics(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        await InvoiceFactory.create(db_session, billing_client)
        await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)

        response = await client.get(f"{INVOICES_URL}/analytics", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_invoices"] == 2
        assert data["total_amount"] == "15680.00"
        assert data["outstanding_balance"] == "7840.00"
        assert data["status_breakdown"]["draft"] == 1


class TestPaymentsApi:
    """Integration tests for the nested payment endpoints."""

    @pytest.mark.asyncio
    async def test_partial_then_full_payment(
        self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client
    ):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)
        url = f"{INVOICES_URL}/{invoice.id}/payments"
        today = utc_today().isoformat()

        response = await client.post(
            url,
            json={"amount": "3000", "payment_date": today, "payment_method": "gcash"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["invoice"]["remaining_balance"] == "4840.00"
        assert data["invoice"]["payment_percentage"] == "38.27"
        assert data["transaction"]["type"] == "income"
        assert data["warnings"] == []

        response = await client.post(
            url,
            json={"amount": "4840", "payment_date": today, "payment_method": "bank_transfer"},
            headers=auth_headers,
        )
        assert response.json()["invoice"]["status"] == "paid"

        response = await client.get(url, headers=auth_headers)
        assert [p["amount"] for p in response.json()] == ["3000.00", "4840.00"]

        response = await client.get(f"{url}/summary", headers=auth_headers)
        summary = response.json()
        assert summary["is_fully_paid"] is True
        assert summary["payment_count"] == 2

    @pytest.mark.asyncio
    async def test_overpayment_is_422(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)

        response = await client.post(
            f"{INVOICES_URL}/{invoice.id}/payments",
            json={"amount": "9000", "payment_date": utc_today().isoformat(), "payment_method": "cash"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "OverpaymentError"
        assert body["details"]["excess"] == "1160.00"

    @pytest.mark.asyncio
    async def test_draft_payment_is_422(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client)

        response = await client.post(
            f"{INVOICES_URL}/{invoice.id}/payments",
            json={"amount": "100", "payment_date": utc_today().isoformat(), "payment_method": "cash"},
            headers=auth_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_zero_amount_is_400(self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)

        response = await client.post(
            f"{INVOICES_URL}/{invoice.id}/payments",
            json={"amount": "0", "payment_date": utc_today().isoformat(), "payment_method": "cash"},
            headers=auth_headers,
        )

        assert response.status_code == 400
