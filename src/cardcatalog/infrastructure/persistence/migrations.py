"""Programmatic Alembic upgrade (used by `cardcatalog init-db` and the tests)."""

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

# Shipped inside the package so an installed `cardcatalog init-db` finds its revisions.
# The repo-root alembic.ini points here too, for running the alembic CLI from a checkout.
SCRIPT_LOCATION = Path(__file__).resolve().parent / "alembic"


def alembic_config(database_url: str) -> Config:
    """Alembic config for the packaged migration scripts and the given database."""
    config = Config()
    config.set_main_option("script_location", str(SCRIPT_LOCATION))
    config.set_main_option("sqlalchemy.url", database_url)
    config.attributes["configure_logger"] = False
    return config


def upgrade_database(database_url: str, revision: str = "head") -> None:
    """Run migrations up to `revision`.

    Hey future me - this is SYNC and env.py calls asyncio.run() itself, so never call
    it from inside a running event loop (use asyncio.to_thread there).
    """
    logger.info(f"Upgrading catalog schema to {revision}")
    command.upgrade(alembic_config(database_url), revision)
