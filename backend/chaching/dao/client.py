"""
Client Data Access Object (DAO).

WHAT: Read access to clients for invoice snapshots.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from chaching.dao.base import BaseDAO
from chaching.models.client import Client


class ClientDAO(BaseDAO[Client]):
    """Data Access Object for the Client model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Client, session)
