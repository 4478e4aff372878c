"""FastAPI application factory."""
from __future__ import annotations

import logging

from fastapi import FastAPI

from app.config import get_settings
from app.routes import router
from services.container import AppContainer

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


def create_app() -> FastAPI:
    """Instantiate the FastAPI app and wire dependencies."""

    settings = get_settings()
    container = AppContainer(settings)
    app = FastAPI(title="Dropbox Gateway", version="0.1.0")
    app.include_router(router)
    app.state.container = container  # type: ignore[attr-defined]

    @app.get("/healthz")
    async def health() -> dict[str, str]:  # pragma: no cover - trivial
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup() -> None:
        await container.startup()

    return app
