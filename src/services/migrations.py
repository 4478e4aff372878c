"""Alembic migration helpers for runtime initialization."""
from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
ALEMBIC_INI = _PROJECT_ROOT / "alembic.ini"


def build_config(database_path: Path) -> Config:
    """Return an Alembic config pointed at ``database_path``."""

    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(_PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{database_path}")
    config.set_main_option("db_path", str(database_path))
    config.attributes["configure_logger"] = False
    return config


def run_migrations(database_path: Path) -> None:
    """Upgrade the SQLite database at ``database_path`` to the latest revision."""

    command.upgrade(build_config(database_path), "head")
    logger.info("Database migrations complete for %s", database_path)
