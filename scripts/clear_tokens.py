"""Script to clear stored Dropbox tokens and pending OAuth states."""
from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
from redis import asyncio as aioredis

OAUTH_STATE_PATTERN = "dropbox-oauth-state:*"


async def clear_tokens(
    redis_url: str | None = "redis://localhost:6379/0",
    sqlite_path: str | Path = "./data/dropbox.db",
) -> None:
    """Remove pending OAuth states from Redis and every row of ``dropbox_tokens``.

    Remote tokens are not revoked; users simply have to connect again.
    """

    if redis_url:
        try:
            redis = aioredis.from_url(redis_url)
            removed = 0
            async for key in redis.scan_iter(match=OAUTH_STATE_PATTERN):
                await redis.delete(key)
                removed += 1
            print(f"✓ Cleared {removed} pending OAuth states from Redis ({redis_url})")
        except Exception as exc:  # pragma: no cover - printed for visibility
            print(f"! Failed to clear Redis: {exc}")
    else:
        print("! Redis URL not provided; skipping Redis cache")

    db_path = Path(sqlite_path)
    if db_path.exists():
        try:
            async with aiosqlite.connect(db_path) as db:
                await db.execute("DELETE FROM dropbox_tokens")
                await db.commit()
                print(f"✓ Cleared SQLite dropbox_tokens table ({db_path})")
        except Exception as exc:  # pragma: no cover - printed for visibility
            print(f"! Failed to clear SQLite tokens: {exc}")
    else:
        print("! SQLite database not found (this is normal if nobody has connected yet)")


if __name__ == "__main__":
    asyncio.run(clear_tokens())
