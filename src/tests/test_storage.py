"""StorageService and DropboxTokenStore persistence tests."""

import logging
from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest
import pytest_asyncio

from services.oauth_tokens import DropboxTokenStore, expiry_from
from services.storage import StorageService
from tests.fixtures import SAMPLE_TOKEN_RESPONSE


@pytest_asyncio.fixture
async def storage(tmp_path):
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'storage.db'}"
    service = StorageService(db_url)
    await service.initialize()
    return service


async def _row_count(db_path, user_id=None):
    query = "SELECT COUNT(*) FROM dropbox_tokens"
    params = ()
    if user_id is not None:
        query += " WHERE user_id = ?"
        params = (user_id,)
    async with aiosqlite.connect(db_path) as db:
        async with db.execute(query, params) as cursor:
            (total,) = await cursor.fetchone()
    return total


def test_rejects_non_sqlite_urls():
    with pytest.raises(ValueError):
        StorageService("postgresql://localhost/dropbox")


def test_expiry_from_handles_missing_expires_in():
    issued = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert expiry_from({"expires_in": 60}, issued) == issued + timedelta(seconds=60)
    assert expiry_from({}, issued) is None


@pytest.mark.asyncio
async def test_token_store_lifecycle(storage):
    """Upsert, refresh, enrich and delete a single user's token."""
    store = DropboxTokenStore(storage)
    assert await store.get("42") is None

    issued = datetime.now(timezone.utc)
    record = await store.upsert("42", SAMPLE_TOKEN_RESPONSE, issued_at=issued)
    assert record.access_token == "sl.access-1"
    assert record.refresh_token == "refresh-1"
    assert record.account_id == SAMPLE_TOKEN_RESPONSE["account_id"]
    assert record.uid == "12345"
    assert record.expires_at == issued + timedelta(seconds=14400)
    assert record.email is None

    await store.attach_email("42", "owner@example.com")
    refreshed = await store.save_refresh("42", {"access_token": "sl.access-2", "expires_in": 3600}, issued_at=issued)
    assert refreshed.access_token == "sl.access-2"
    assert refreshed.refresh_token == "refresh-1"
    assert refreshed.expires_at == issued + timedelta(seconds=3600)
    assert refreshed.email == "owner@example.com"

    assert await store.delete("42") is True
    assert await store.get("42") is None
    assert await store.delete("42") is False


@pytest.mark.asyncio
async def test_upsert_never_duplicates_and_keeps_refresh_token(storage, tmp_path):
    store = DropboxTokenStore(storage)
    await store.upsert("42", SAMPLE_TOKEN_RESPONSE)
    await store.attach_email("42", "owner@example.com")

    second = {key: value for key, value in SAMPLE_TOKEN_RESPONSE.items() if key != "refresh_token"}
    second["access_token"] = "sl.access-9"
    latest = await store.upsert("42", second)

    assert await _row_count(tmp_path / "storage.db", "42") == 1
    assert latest.access_token == "sl.access-9"
    assert latest.refresh_token == "refresh-1"
    assert latest.email == "owner@example.com"


@pytest.mark.asyncio
async def test_records_are_isolated_per_user(storage, tmp_path):
    store = DropboxTokenStore(storage)
    await store.upsert("1", {"access_token": "one", "expires_in": 10})
    await store.upsert("2", {"access_token": "two"})

    assert (await store.get("1")).access_token == "one"
    two = await store.get("2")
    assert two.access_token == "two"
    assert two.expires_at is None
    assert two.refresh_token is None
    assert await _row_count(tmp_path / "storage.db") == 2


@pytest.mark.asyncio
async def test_save_refresh_for_unknown_user_returns_none(storage):
    store = DropboxTokenStore(storage)
    assert await store.save_refresh("ghost", {"access_token": "x", "expires_in": 5}) is None


@pytest.mark.asyncio
async def test_expires_within_uses_margin(storage):
    store = DropboxTokenStore(storage)
    now = datetime.now(timezone.utc)
    record = await store.upsert("42", {"access_token": "a", "expires_in": 600}, issued_at=now)

    assert not record.expires_within(300, now)
    assert record.expires_within(600, now)


@pytest.mark.asyncio
async def test_initialize_leaves_application_logging_alone(tmp_path):
    root = logging.getLogger()
    previous_level = root.level
    root.setLevel(logging.INFO)
    handlers = list(root.handlers)
    try:
        await StorageService(f"sqlite+aiosqlite:///{tmp_path / 'logging.db'}").initialize()

        assert root.level == logging.INFO
        assert root.handlers == handlers
        assert logging.getLogger("services.access_tokens").isEnabledFor(logging.INFO)
    finally:
        root.setLevel(previous_level)
