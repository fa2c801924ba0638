"""
Integration tests for the tax and exchange rate API.

WHAT: Tests tax calculation, quarterly and annual reports, the filing
calendar, BIR form figures, exchange rates and the health check.

WHY: These endpoints produce the numbers a freelancer files with the BIR;
they must agree with the ledger the payment endpoints write.

HOW: Uses pytest-asyncio with AsyncClient for HTTP testing; the rate API
is the conftest double (1 USD = 50 PHP, 1 EUR = 62.50 PHP).
"""

from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from chaching.models.invoice import InvoiceStatus, utc_today
from tests.factories import OTHER_USER_ID, InvoiceFactory, TransactionFactory


class TestTaxCalculation:
    @pytest.mark.asyncio
    async def test_calculate_php(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/taxes/calculate",
            json={"gross_income": "1000000", "income_type": "professional"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["taxable_income"] == "600000.00"
        assert data["income_tax"] == "62500.00"
        assert data["withholding_tax"] == "100000.00"
        assert data["net_income"] == "937500.00"
        assert data["effective_tax_rate"] == "6.25"
        assert data["tax_bracket"] == "20% tax bracket"
        assert data["breakdown"]["deductions"]["optional_standard_deduction"] == "400000.00"

    @pytest.mark.asyncio
    async def test_calculate_usd(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/taxes/calculate",
            json={"gross_income": "20000", "currency": "USD"},
            headers=auth_headers,
        )

        data = response.json()
        assert data["php_equivalent"] == "1000000.00"
        assert data["income_tax"] == "1250.00"
        assert data["rate_is_stale"] is False

    @pytest.mark.asyncio
    async def test_negative_income_is_400(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/taxes/calculate", json={"gross_income": "-1"}, headers=auth_headers
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.post("/api/taxes/calculate", json={"gross_income": "1000"})

        assert response.status_code == 401


class TestTaxReports:
    @pytest.mark.asyncio
    async def test_quarterly_return(self, client: AsyncClient, auth_headers, db_session: AsyncSession, user_id):
        await TransactionFactory.create(db_session, user_id, "1000000", date(2024, 2, 1))
        await TransactionFactory.create(db_session, OTHER_USER_ID, "500000", date(2024, 2, 1))

        response = await client.get(
            "/api/taxes/quarterly",
            params={"quarter": 1, "year": 2024, "previous_payments": "2500"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["gross_income"] == "1000000.00"
        assert data["income_tax"] == "62500.00"
        assert data["balance_due"] == "60000.00"
        assert data["due_date"] == "2024-04-15"
        assert data["transaction_count"] == 1

    @pytest.mark.asyncio
    async def test_invalid_quarter_is_400(self, client: AsyncClient, auth_headers):
        response = await client.get(
            "/api/taxes/quarterly", params={"quarter": 5, "year": 2024}, headers=auth_headers
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_annual_summary(self, client: AsyncClient, auth_headers, db_session: AsyncSession, user_id):
        await TransactionFactory.create(db_session, user_id, "1000000", date(2024, 2, 10))
        await TransactionFactory.create(db_session, user_id, "500000", date(2024, 5, 10))

        response = await client.get(
            "/api/taxes/annual",
            params=[("year", 2024), ("quarterly_payments", "62500"), ("quarterly_payments", "7500")],
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_gross_income"] == "1500000.00"
        assert data["total_income_tax"] == "127500.00"
        assert data["additional_tax_due"] == "57500.00"
        assert len(data["quarterly_returns"]) == 4

    @pytest.mark.asyncio
    async def test_payments_flow_into_reports(
        self, client: AsyncClient, auth_headers, db_session: AsyncSession, billing_client
    ):
        invoice = await InvoiceFactory.create(db_session, billing_client, status=InvoiceStatus.SENT)
        today = utc_today()
        await client.post(
            f"/api/invoices/{invoice.id}/payments",
            json={"amount": "7840", "payment_date": today.isoformat(), "payment_method": "gcash"},
            headers=auth_headers,
        )

        response = await client.get(
            "/api/taxes/quarterly",
            params={"quarter": (today.month - 1) // 3 + 1, "year": today.year},
            headers=auth_headers,
        )

        assert response.json()["gross_income"] == "7840.00"
        assert response.json()["transaction_count"] == 1


class TestFilingCalendar:
    @pytest.mark.asyncio
    async def test_current_quarter(self, client: AsyncClient, auth_headers):
        today = utc_today()

        response = await client.get("/api/taxes/current-quarter", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["quarter"] == (today.month - 1) // 3 + 1
        assert data["year"] == today.year
        assert isinstance(data["is_filing_due_soon"], bool)

    @pytest.mark.asyncio
    async def test_bir_form(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/taxes/bir-form",
            json={
                "calculation": {"gross_income": "1000000"},
                "taxpayer": {
                    "tin": "123-456-789-000",
                    "name": "Juan dela Cruz",
                    "address": "Makati City",
                    "business_type": "Software consulting",
                },
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["taxpayer"]["tin"] == "123-456-789-000"
        assert data["net_tax_due"] == "62500.00"
        assert data["tax_bracket"] == "20% tax bracket"

    @pytest.mark.asyncio
    async def test_bir_form_bad_tin_is_400(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/taxes/bir-form",
            json={
                "calculation": {"gross_income": "1000"},
                "taxpayer": {"tin": "12345", "name": "Juan", "address": "Makati", "business_type": "IT"},
            },
            headers=auth_headers,
        )

        assert response.status_code == 400


class TestExchangeRates:
    @pytest.mark.asyncio
    async def test_all_rates(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/exchange-rates", headers=auth_headers)

        assert response.status_code == 200
        rates = response.json()["rates"]
        assert rates["USD"]["rate"] == "50.000000"
        assert rates["PHP"]["rate"] == "1"

    @pytest.mark.asyncio
    async def test_convert(self, client: AsyncClient, auth_headers):
        response = await client.get(
            "/api/exchange-rates/convert",
            params={"amount": "100", "from_currency": "EUR"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["converted_amount"] == "6250.00"
        assert data["to_currency"] == "PHP"

    @pytest.mark.asyncio
    async def test_unsupported_currency_is_400(self, client: AsyncClient, auth_headers):
        response = await client.get(
            "/api/exchange-rates/convert",
            params={"amount": "100", "from_currency": "JPY"},
            headers=auth_headers,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_refresh(self, client: AsyncClient, auth_headers, exchange_rate_service):
        await client.get("/api/exchange-rates", headers=auth_headers)
        response = await client.post("/api/exchange-rates/refresh", headers=auth_headers)

        assert response.status_code == 200
        assert exchange_rate_service.fetch_rates.await_count == 2


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "x-request-id" in response.headers
