"""
Transaction Data Access Object (DAO).

WHAT: Database operations for ledger transactions.

WHY: Tax reports aggregate a user's income transactions per quarter and
per year; these queries live here so services never build SQL.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chaching.dao.base import BaseDAO
from chaching.models.transaction import Transaction, TransactionType


class TransactionDAO(BaseDAO[Transaction]):
    """Data Access Object for the Transaction model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Transaction, session)

    async def get_between(
        self,
        user_id: str,
        start: date,
        end: date,
        type: Optional[TransactionType] = None,
    ) -> List[Transaction]:
        """
        Transactions dated within [start, end], oldest first.

        Args:
            user_id: Owner id
            start: First day (inclusive)
            end: Last day (inclusive)
            type: Restrict to income or expense

        Returns:
            Matching transactions
        """
        query = select(Transaction).where(
            Transaction.user_id == user_id,
            Transaction.date >= start,
            Transaction.date <= end,
        )
        if type is not None:
            query = query.where(Transaction.type == type)

        result = await self.session.execute(query.order_by(Transaction.date.asc()))
        return list(result.scalars().all())

    async def get_for_year(self, user_id: str, year: int) -> List[Transaction]:
        """All of a user's transactions dated in a calendar year."""
        return await self.get_between(user_id, date(year, 1, 1), date(year, 12, 31))
