"""Unit tests for migration helpers."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import sqlalchemy as sa
from sqlalchemy import create_engine, text

from services.migrations import ALEMBIC_INI, build_config, run_migrations


def test_alembic_ini_ships_with_the_project():
    assert ALEMBIC_INI.exists()


def test_build_config_points_at_database(tmp_path):
    db_path = tmp_path / "tokens.db"
    config = build_config(db_path)

    assert config.get_main_option("sqlalchemy.url") == f"sqlite:///{db_path}"
    assert config.get_main_option("db_path") == str(db_path)
    assert config.get_main_option("script_location").endswith("alembic")
    assert config.attributes["configure_logger"] is False


def test_run_migrations_delegates_to_alembic_upgrade(tmp_path, monkeypatch):
    mock_command = MagicMock()
    monkeypatch.setattr("services.migrations.command", mock_command)

    run_migrations(tmp_path / "test.db")

    mock_command.upgrade.assert_called_once()
    config, target = mock_command.upgrade.call_args.args
    assert target == "head"
    assert config.get_main_option("db_path") == str(tmp_path / "test.db")


def test_run_migrations_creates_token_table(tmp_path):
    db_path = tmp_path / "test.db"
    run_migrations(db_path)

    engine = create_engine(f"sqlite:///{db_path}")
    inspector = sa.inspect(engine)
    assert "dropbox_tokens" in inspector.get_table_names()
    columns = {column["name"] for column in inspector.get_columns("dropbox_tokens")}
    assert {
        "user_id",
        "access_token",
        "refresh_token",
        "expires_at",
        "token_type",
        "scope",
        "uid",
        "account_id",
        "email",
    } <= columns


def test_run_migrations_idempotent(tmp_path):
    db_path = tmp_path / "test.db"
    run_migrations(db_path)
    run_migrations(db_path)

    engine = create_engine(f"sqlite:///{db_path}")
    with engine.connect() as conn:
        version = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
    assert version == "20261019_01_dropbox_tokens"


def test_user_id_is_unique(tmp_path):
    db_path = tmp_path / "test.db"
    run_migrations(db_path)

    engine = create_engine(f"sqlite:///{db_path}")
    with engine.connect() as conn:
        conn.execute(text("INSERT INTO dropbox_tokens (user_id, access_token) VALUES ('42', 'a1')"))
        conn.commit()
        with pytest.raises(sa.exc.IntegrityError):
            conn.execute(text("INSERT INTO dropbox_tokens (user_id, access_token) VALUES ('42', 'a2')"))
            conn.commit()
