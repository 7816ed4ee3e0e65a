"""Application factory that serves the dashboard pages and JSON API."""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .api import register_api_routes
from .auth import AuthClient
from .config import Settings, load_settings
from .gate import SessionGate
from .models import User
from .postgrest import RemoteStore
from .sessions import AuthEvents
from .web import register_ui_routes

logger = logging.getLogger("invoice_dashboard.application")


def _trusted_proxy_hosts() -> list[str] | str:
    raw = os.getenv("DASHBOARD_TRUSTED_PROXIES")
    if not raw:
        return "127.0.0.1"
    hosts = [item.strip() for item in raw.split(",") if item.strip()]
    return hosts or "127.0.0.1"


def _log_auth_event(event: str, user: Optional[User]) -> None:
    logger.info("Auth event %s for %s", event, user.id if user else "anonymous")


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[RemoteStore] = None,
    auth_client: Optional[AuthClient] = None,
) -> FastAPI:
    """Create the dashboard ASGI application.

    ``store`` and ``auth_client`` are normally built during startup around a
    shared ``httpx.AsyncClient``; passing them in skips that step.
    """

    if settings is None:
        settings = load_settings()
    if not settings.secure_cookies:
        logger.warning(
            "Session cookies are not marked as secure. Only disable secure cookies for"
            " local development."
        )

    events = auth_client.events if auth_client is not None else AuthEvents()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        with events.subscribe(_log_auth_event):
            if app.state.store is not None and app.state.auth_client is not None:
                yield
                return

            async with httpx.AsyncClient(timeout=settings.request_timeout) as client:
                if app.state.store is None:
                    app.state.store = RemoteStore(settings.rest_url, settings.supabase_anon_key, client)
                if app.state.auth_client is None:
                    app.state.auth_client = AuthClient(
                        settings.auth_url,
                        settings.supabase_anon_key,
                        client,
                        events=events,
                    )
                try:
                    yield
                finally:
                    app.state.store = store
                    app.state.auth_client = auth_client

    app = FastAPI(
        title="Invoice Dashboard",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.auth_events = events
    app.state.store = store
    app.state.auth_client = auth_client

    app.add_middleware(SessionGate, settings=settings)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts())

    register_api_routes(app)
    register_ui_routes(app)

    return app


__all__ = ["create_app"]
