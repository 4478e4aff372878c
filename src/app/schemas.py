"""Pydantic schemas for HTTP payloads."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from services.dropbox_connect import ConnectionState
from services.storage import TokenRecord


class ConnectionStatus(BaseModel):
    """Dropbox connection snapshot for the current user."""

    userId: str
    state: ConnectionState
    connected: bool
    staticToken: bool = False
    email: Optional[str] = None
    accountId: Optional[str] = None
    scope: Optional[str] = None
    expiresAt: Optional[datetime] = None
    refreshable: bool = False

    @classmethod
    def from_record(
        cls,
        user_id: str,
        state: ConnectionState,
        record: Optional[TokenRecord],
        static_token: bool = False,
    ) -> "ConnectionStatus":
        if record is None:
            return cls(
                userId=user_id,
                state=state,
                connected=state == ConnectionState.AUTHENTICATED,
                staticToken=static_token,
            )
        return cls(
            userId=user_id,
            state=state,
            connected=True,
            staticToken=static_token,
            email=record.email,
            accountId=record.account_id,
            scope=record.scope,
            expiresAt=record.expires_at,
            refreshable=record.refresh_token is not None,
        )
