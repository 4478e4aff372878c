"""Alembic environment for the Dropbox token schema."""
from __future__ import annotations

import logging
from logging.config import fileConfig
from pathlib import Path
from typing import Any, Optional

from alembic import context
from sqlalchemy import engine_from_config, pool

config = context.config
# Programmatic upgrades keep the host application's logging setup.
if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)
logger = logging.getLogger("alembic.env")

# Migrations are written as plain SQL, there is no declarative metadata.
target_metadata = None


def _database_url() -> Optional[str]:
    db_path = config.get_main_option("db_path")
    if db_path:
        return f"sqlite:///{Path(db_path).resolve()}"
    return config.get_main_option("sqlalchemy.url")


def run_migrations_offline() -> None:
    """Emit SQL to stdout without a live connection."""

    context.configure(
        url=_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against the configured SQLite database."""

    section: dict[str, Any] = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = _database_url()
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool, future=True)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()
    logger.debug("Migrations applied to %s", section["sqlalchemy.url"])


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
