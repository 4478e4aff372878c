"""Persistence layer powered by SQLite via aiosqlite with Alembic migrations."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from services.migrations import run_migrations

TOKEN_COLUMNS = (
    "user_id",
    "access_token",
    "refresh_token",
    "expires_at",
    "token_type",
    "scope",
    "uid",
    "account_id",
    "email",
    "created_at",
    "updated_at",
)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass
class TokenRecord:
    """Represents the single Dropbox token row stored for one user."""

    user_id: str
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[datetime]
    token_type: Optional[str]
    scope: Optional[str]
    uid: Optional[str]
    account_id: Optional[str]
    email: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    def expires_within(self, margin_seconds: float, now: Optional[datetime] = None) -> bool:
        """True when the token expires at or before ``now + margin_seconds``.

        Tokens without an expiry never expire.
        """

        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires_at <= now + timedelta(seconds=margin_seconds)


class StorageService:
    """Async storage abstraction over SQLite for Dropbox token records."""

    def __init__(self, db_url: str):
        if not db_url.startswith("sqlite"):
            raise ValueError("Only SQLite URLs are supported")
        path = db_url.split("///")[-1]
        self._db_path = Path(path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        """Run Alembic migrations idempotently."""

        async with self._init_lock:
            if self._initialized:
                return
            await asyncio.to_thread(run_migrations, self._db_path)
            self._initialized = True

    @asynccontextmanager
    async def _connection(self, *, row_factory: bool = False):
        async with aiosqlite.connect(self._db_path) as db:
            if row_factory:
                db.row_factory = aiosqlite.Row
            yield db

    async def _execute(self, query: str, *params: Any) -> int:
        async with self._connection() as db:
            cursor = await db.execute(query, params)
            await db.commit()
            return cursor.rowcount

    async def _fetchone(self, query: str, *params: Any) -> Optional[aiosqlite.Row]:
        async with self._connection(row_factory=True) as db:
            async with db.execute(query, params) as cursor:
                return await cursor.fetchone()

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> TokenRecord:
        return TokenRecord(
            user_id=row["user_id"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expires_at=_parse_datetime(row["expires_at"]),
            token_type=row["token_type"],
            scope=row["scope"],
            uid=row["uid"],
            account_id=row["account_id"],
            email=row["email"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    async def upsert_token(
        self,
        user_id: str,
        *,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
        token_type: Optional[str] = None,
        scope: Optional[str] = None,
        uid: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> TokenRecord:
        """Insert the user's token row or overwrite the existing one.

        A missing ``refresh_token`` keeps the previously stored value and the
        enrichment ``email`` column is never touched here.
        """

        now = datetime.now(timezone.utc).isoformat()
        await self._execute(
            """
            INSERT INTO dropbox_tokens (
                user_id, access_token, refresh_token, expires_at, token_type,
                scope, uid, account_id, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                access_token=excluded.access_token,
                refresh_token=COALESCE(excluded.refresh_token, dropbox_tokens.refresh_token),
                expires_at=excluded.expires_at,
                token_type=excluded.token_type,
                scope=excluded.scope,
                uid=excluded.uid,
                account_id=excluded.account_id,
                updated_at=excluded.updated_at
            """,
            user_id,
            access_token,
            refresh_token,
            _isoformat(expires_at),
            _optional_str(token_type),
            _optional_str(scope),
            _optional_str(uid),
            _optional_str(account_id),
            now,
            now,
        )
        record = await self.get_token(user_id)
        if record is None:  # pragma: no cover - the row was just written
            raise RuntimeError(f"Token row for {user_id} vanished after upsert")
        return record

    async def get_token(self, user_id: str) -> Optional[TokenRecord]:
        """Return the stored token for ``user_id`` or None."""

        row = await self._fetchone(
            f"SELECT {', '.join(TOKEN_COLUMNS)} FROM dropbox_tokens WHERE user_id = ?",
            user_id,
        )
        if not row:
            return None
        return self._row_to_record(row)

    async def update_access_token(
        self,
        user_id: str,
        access_token: str,
        expires_at: Optional[datetime],
        refresh_token: Optional[str] = None,
    ) -> bool:
        """Overwrite the access token after a refresh grant."""

        rowcount = await self._execute(
            """
            UPDATE dropbox_tokens
               SET access_token = ?,
                   expires_at = ?,
                   refresh_token = COALESCE(?, refresh_token),
                   updated_at = ?
             WHERE user_id = ?
            """,
            access_token,
            _isoformat(expires_at),
            refresh_token,
            datetime.now(timezone.utc).isoformat(),
            user_id,
        )
        return rowcount > 0

    async def set_email(self, user_id: str, email: str) -> bool:
        rowcount = await self._execute(
            "UPDATE dropbox_tokens SET email = ?, updated_at = ? WHERE user_id = ?",
            email,
            datetime.now(timezone.utc).isoformat(),
            user_id,
        )
        return rowcount > 0

    async def delete_token(self, user_id: str) -> bool:
        """Remove the user's token row; returns whether one existed."""

        rowcount = await self._execute("DELETE FROM dropbox_tokens WHERE user_id = ?", user_id)
        return rowcount > 0
