"""PostgreSQL connectivity helpers for PCI Tracker.

Environment Variables:
    PCITRACK_DATABASE_URL: Connection string for the document/user store.

Without a database URL the application falls back to in-memory stores;
operations that explicitly require Postgres fail closed with
DatabaseConfigError.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from sqlalchemy import create_engine

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

PCITRACK_DATABASE_URL_ENV = "PCITRACK_DATABASE_URL"

_engine: Engine | None = None


class DatabaseConfigError(Exception):
    """Raised when database configuration is missing or invalid.

    This is a fail-closed error - operations requiring the database
    should not proceed without valid configuration.
    """

    pass


def _normalize_url(url: str) -> str:
    """Rewrite the legacy postgres:// scheme that SQLAlchemy rejects."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url() -> str:
    """Get the database URL from environment.

    Raises:
        DatabaseConfigError: If PCITRACK_DATABASE_URL is not set.
    """
    url = os.environ.get(PCITRACK_DATABASE_URL_ENV)
    if not url:
        raise DatabaseConfigError(
            f"Database URL not configured. Set {PCITRACK_DATABASE_URL_ENV} environment variable."
        )
    return _normalize_url(url)


def get_engine(url: str | None = None) -> Engine:
    """Get or create the process-wide database engine.

    Args:
        url: Optional explicit URL; defaults to the environment.

    Returns:
        SQLAlchemy Engine.

    Raises:
        DatabaseConfigError: If no URL is given and none is configured.
    """
    global _engine

    if _engine is None:
        _engine = create_engine(
            _normalize_url(url) if url else get_database_url(),
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
        )
        logger.info("Created database engine")

    return _engine


def reset_engine() -> None:
    """Dispose the global engine. Used by tests."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
