"""Database package"""

from chaching.db.session import AsyncSessionLocal, engine, get_db
from chaching.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
