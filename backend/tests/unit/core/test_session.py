"""
Tests for database engine configuration.

WHY: The same settings drive PostgreSQL in production and SQLite in local
runs; SQLite's pool rejects sizing arguments.
"""

from unittest.mock import patch

from chaching.core.config import settings
from chaching.db.session import engine_options


def test_postgres_gets_configured_pool():
    with patch.object(settings, "DATABASE_POOL_SIZE", 5), patch.object(settings, "DATABASE_MAX_OVERFLOW", 2):
        options = engine_options("postgresql+asyncpg://u:p@db/chaching")

    assert options["pool_size"] == 5
    assert options["max_overflow"] == 2
    assert options["pool_pre_ping"] is True


def test_sqlite_skips_pool_sizing():
    options = engine_options("sqlite+aiosqlite:///./chaching.db")

    assert "pool_size" not in options
    assert "max_overflow" not in options
    assert options["echo"] == settings.DEBUG
