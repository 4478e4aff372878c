"""Persistent Dropbox token store backed by StorageService."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from services.storage import StorageService, TokenRecord

logger = logging.getLogger(__name__)


def expiry_from(token_fields: Mapping[str, Any], issued_at: Optional[datetime] = None) -> Optional[datetime]:
    """Turn a relative ``expires_in`` into an absolute UTC timestamp."""

    expires_in = token_fields.get("expires_in")
    if expires_in is None:
        return None
    issued_at = issued_at or datetime.now(timezone.utc)
    return issued_at + timedelta(seconds=int(expires_in))


class DropboxTokenStore:
    """Keeps exactly one Dropbox token record per user identity."""

    def __init__(self, storage: StorageService):
        self._storage = storage

    async def upsert(
        self,
        user_id: str,
        token_fields: Mapping[str, Any],
        issued_at: Optional[datetime] = None,
    ) -> TokenRecord:
        """Persist a token-endpoint response for ``user_id``, replacing any earlier grant."""

        record = await self._storage.upsert_token(
            user_id,
            access_token=token_fields["access_token"],
            refresh_token=token_fields.get("refresh_token"),
            expires_at=expiry_from(token_fields, issued_at),
            token_type=token_fields.get("token_type"),
            scope=token_fields.get("scope"),
            uid=token_fields.get("uid"),
            account_id=token_fields.get("account_id"),
        )
        logger.info("Stored Dropbox token for user %s", user_id)
        return record

    async def get(self, user_id: str) -> Optional[TokenRecord]:
        """Return the stored token for the user, if any."""

        return await self._storage.get_token(user_id)

    async def delete(self, user_id: str) -> bool:
        deleted = await self._storage.delete_token(user_id)
        if deleted:
            logger.info("Deleted Dropbox token for user %s", user_id)
        return deleted

    async def save_refresh(
        self,
        user_id: str,
        token_fields: Mapping[str, Any],
        issued_at: Optional[datetime] = None,
    ) -> Optional[TokenRecord]:
        """Apply a refresh-grant response in place and return the updated record."""

        updated = await self._storage.update_access_token(
            user_id,
            token_fields["access_token"],
            expiry_from(token_fields, issued_at),
            refresh_token=token_fields.get("refresh_token"),
        )
        if not updated:
            logger.warning("Refreshed Dropbox token for user %s but no record was stored", user_id)
            return None
        return await self._storage.get_token(user_id)

    async def attach_email(self, user_id: str, email: str) -> None:
        await self._storage.set_email(user_id, email)
