"""FastAPI routes for connecting and disconnecting Dropbox accounts."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from app.schemas import ConnectionStatus
from services.container import AppContainer
from services.dropbox_connect import DropboxConnectService
from services.exceptions import (
    AuthorizationRequiredError,
    ConfigurationError,
    DropboxError,
    ProviderError,
    ResponseDecodeError,
    TransportError,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def get_container(request: Request) -> AppContainer:
    return request.app.state.container  # type: ignore[attr-defined]


def get_user_id(request: Request, container: AppContainer = Depends(get_container)) -> Optional[str]:
    """Identity is supplied by the hosting application through a request header."""

    return request.headers.get(container.settings.user_id_header) or None


def _require_connect(container: AppContainer) -> DropboxConnectService:
    if not container.connect:
        raise HTTPException(status_code=400, detail="Dropbox OAuth is not configured")
    return container.connect


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return user_id


@router.get("/dropbox/connect", include_in_schema=False)
async def dropbox_connect(
    request: Request,
    container: AppContainer = Depends(get_container),
    user_id: Optional[str] = Depends(get_user_id),
) -> RedirectResponse:
    connect = _require_connect(container)
    params = request.query_params
    if "error" in params:
        detail = params.get("error_description") or params["error"]
        raise HTTPException(status_code=400, detail=f"Dropbox OAuth error: {detail}")
    code = params.get("code")
    state = params.get("state")

    if not code:
        outcome = await connect.connect(user_id, state=state)
        await container.cache.remember_oauth_state(
            state, user_id, ttl_seconds=container.settings.oauth_state_ttl_seconds
        )
        return RedirectResponse(outcome.location)

    _require_user(user_id)
    if state:
        pending = await container.cache.consume_oauth_state(state)
        if not pending:
            raise HTTPException(status_code=400, detail="Unknown or expired state")
        # The state is bound to whoever started the flow.
        if pending.get("user_id") != user_id:
            logger.warning("Dropbox callback state issued to another user, rejecting user %s", user_id)
            raise HTTPException(status_code=400, detail="State was issued to a different user")
    try:
        outcome = await connect.connect(user_id, code=code, state=state)
    except ConfigurationError as exc:
        logger.error("Dropbox callback misconfigured: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=exc.body) from exc
    except (TransportError, ResponseDecodeError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return RedirectResponse(outcome.location)


@router.get("/dropbox/disconnect", include_in_schema=False)
async def dropbox_disconnect(
    redirect: str = Query("/"),
    container: AppContainer = Depends(get_container),
    user_id: Optional[str] = Depends(get_user_id),
) -> RedirectResponse:
    connect = _require_connect(container)
    user = _require_user(user_id)
    try:
        outcome = await connect.disconnect(user, redirect_path=redirect)
    except AuthorizationRequiredError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=exc.body) from exc
    except DropboxError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return RedirectResponse(outcome.location)


@router.get("/dropbox/status", response_model=ConnectionStatus)
async def dropbox_status(
    container: AppContainer = Depends(get_container),
    user_id: Optional[str] = Depends(get_user_id),
) -> ConnectionStatus:
    connect = _require_connect(container)
    user = _require_user(user_id)
    state = await connect.connection_state(user)
    record = await connect.get_token_data(user)
    return ConnectionStatus.from_record(user, state, record, static_token=container.resolver.uses_static_token)
