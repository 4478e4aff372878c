"""Create the per-user Dropbox token table"""
from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.engine import Connection

# revision identifiers, used by Alembic.
revision = "20261019_01_dropbox_tokens"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    from alembic import op  # type: ignore

    apply_schema(op.get_bind())


def apply_schema(connection: Connection) -> None:
    connection.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS dropbox_tokens (
                user_id TEXT PRIMARY KEY,
                access_token TEXT NOT NULL,
                refresh_token TEXT,
                expires_at TEXT,
                token_type TEXT,
                scope TEXT,
                uid TEXT,
                account_id TEXT,
                email TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )
    )
    connection.execute(
        text("CREATE INDEX IF NOT EXISTS ix_dropbox_tokens_account_id ON dropbox_tokens(account_id)")
    )


def downgrade() -> None:
    from alembic import op  # type: ignore

    op.get_bind().execute(text("DROP TABLE IF EXISTS dropbox_tokens"))
