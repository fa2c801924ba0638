"""
Payment Data Access Object (DAO).

WHAT: Database operations for the Payment model.

WHY: Payments are append-only. This DAO only creates and reads them;
there is deliberately no delete path for payments.
"""

from decimal import Decimal
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chaching.core.money import sum_money
from chaching.dao.base import BaseDAO
from chaching.models.payment import Payment, PaymentStatus


class PaymentDAO(BaseDAO[Payment]):
    """Data Access Object for the Payment model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Payment, session)

    async def get_by_invoice(self, invoice_id: str, user_id: str) -> List[Payment]:
        """
        Payment history for an invoice, oldest first.

        Args:
            invoice_id: Invoice ID
            user_id: Owner id

        Returns:
            Payments of every status
        """
        result = await self.session.execute(
            select(Payment)
            .where(
                Payment.invoice_id == invoice_id,
                Payment.user_id == user_id,
            )
            .order_by(Payment.payment_date.asc(), Payment.recorded_at.asc())
        )
        return list(result.scalars().all())

    async def get_completed_by_invoice(self, invoice_id: str, user_id: str) -> List[Payment]:
        """Completed payments only; these are the ones that count."""
        payments = await self.get_by_invoice(invoice_id, user_id)
        return [p for p in payments if p.status == PaymentStatus.COMPLETED]

    async def sum_completed(self, invoice_id: str, user_id: str) -> Decimal:
        """Exact sum of completed payment amounts for an invoice."""
        payments = await self.get_completed_by_invoice(invoice_id, user_id)
        return sum_money(p.amount for p in payments)

    async def has_completed_payments(self, invoice_id: str, user_id: str) -> bool:
        return await self.exists(
            invoice_id=invoice_id,
            user_id=user_id,
            status=PaymentStatus.COMPLETED,
        )
