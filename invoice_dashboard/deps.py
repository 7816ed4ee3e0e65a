"""Request-scoped accessors shared by the HTML and JSON routes."""

from __future__ import annotations

from starlette.requests import Request

from .auth import AuthClient
from .config import Settings
from .postgrest import RemoteStore
from .sessions import get_session_context


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_client(request: Request) -> AuthClient:
    client = getattr(request.app.state, "auth_client", None)
    if client is None:
        raise RuntimeError("Auth client is not configured; was the application lifespan started?")
    return client


def get_store(request: Request) -> RemoteStore:
    """Return a store that queries as the current session's user."""

    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("Remote store is not configured; was the application lifespan started?")
    tokens = get_session_context(request).tokens
    return store.with_access_token(tokens.access_token if tokens else None)


__all__ = ["get_auth_client", "get_settings", "get_store"]
