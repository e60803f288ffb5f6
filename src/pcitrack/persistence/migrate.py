"""Programmatic Alembic migrations.

The alembic CLI is not required: run_upgrade()/run_downgrade() point Alembic
at the migrations directory and hand it an open connection, which
migrations/env.py picks up from config.attributes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import command
from alembic.config import Config

from pcitrack.persistence.db import get_engine

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def get_alembic_config() -> Config:
    """Create Alembic config pointing to the migrations directory."""
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    return config


def run_upgrade(engine: Engine | None = None, revision: str = "head") -> None:
    """Run migrations up to the specified revision.

    Raises:
        DatabaseConfigError: If no engine is given and PCITRACK_DATABASE_URL is unset.
    """
    engine = engine or get_engine()
    config = get_alembic_config()

    with engine.begin() as conn:
        config.attributes["connection"] = conn
        command.upgrade(config, revision)

    logger.info("Migrations upgraded to %s", revision)


def run_downgrade(engine: Engine | None = None, revision: str = "base") -> None:
    """Run migrations down to the specified revision."""
    engine = engine or get_engine()
    config = get_alembic_config()

    with engine.begin() as conn:
        config.attributes["connection"] = conn
        command.downgrade(config, revision)

    logger.info("Migrations downgraded to %s", revision)
