"""Per-request session gate: refresh the session, then allow or redirect."""

from __future__ import annotations

import enum
import logging
from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.status import HTTP_307_TEMPORARY_REDIRECT
from starlette.types import ASGIApp

from .auth import AuthClient, AuthError, UserLookup
from .config import Settings
from .sessions import (
    CookieNames,
    SessionContext,
    TokenPair,
    clear_token_pair,
    read_token_pair,
    write_token_pair,
)

logger = logging.getLogger("invoice_dashboard.gate")

UNGATED_PREFIXES = ("/static/",)
UNGATED_PATHS = frozenset({"/api/health"})


class GateAction(enum.Enum):
    PASS = "pass"
    REDIRECT_DASHBOARD = "redirect_dashboard"
    REDIRECT_LOGIN = "redirect_login"


def decide(*, authenticated: bool, public: bool) -> GateAction:
    if authenticated and public:
        return GateAction.REDIRECT_DASHBOARD
    if not authenticated and not public:
        return GateAction.REDIRECT_LOGIN
    return GateAction.PASS


def is_public_path(path: str, public_routes: Iterable[str]) -> bool:
    return path in set(public_routes)


def _mirror_onto_request(request: Request, tokens: TokenPair, names: CookieNames) -> None:
    """Rewrite the request's cookie header so downstream handlers see ``tokens``."""

    cookies = dict(request.cookies)
    cookies[names.access_token] = tokens.access_token
    cookies[names.refresh_token] = tokens.refresh_token
    header = "; ".join(f"{name}={value}" for name, value in cookies.items())
    headers = [(key, value) for key, value in request.scope["headers"] if key != b"cookie"]
    headers.append((b"cookie", header.encode("latin-1")))
    request.scope["headers"] = headers


def _sets_session_cookie(response: Response, names: CookieNames) -> bool:
    prefixes = (f"{names.access_token}=", f"{names.refresh_token}=")
    return any(
        header.startswith(prefixes) for header in response.headers.getlist("set-cookie")
    )


class SessionGate(BaseHTTPMiddleware):
    """Resolve the session user once per request and apply the route table."""

    def __init__(self, app: ASGIApp, *, settings: Settings, auth_client: Optional[AuthClient] = None) -> None:
        super().__init__(app)
        self._settings = settings
        self._auth_client = auth_client
        self._names = CookieNames.for_prefix(settings.cookie_prefix)

    def _client_for(self, request: Request) -> AuthClient:
        if self._auth_client is not None:
            return self._auth_client
        client = getattr(request.app.state, "auth_client", None)
        if client is None:
            raise RuntimeError("Auth client is not configured; was the application lifespan started?")
        return client

    async def _lookup(self, request: Request, tokens: Optional[TokenPair]) -> Optional[UserLookup]:
        client = self._client_for(request)
        try:
            return await client.get_user(tokens)
        except AuthError as exc:
            logger.warning("Auth provider unavailable, treating request as signed out: %s", exc)
        except Exception:
            logger.exception("Unexpected failure resolving session user for %s", request.url.path)
        return None

    def _redirect(self, request: Request, path: str) -> RedirectResponse:
        url = request.url.replace(path=path, query="")
        return RedirectResponse(str(url), status_code=HTTP_307_TEMPORARY_REDIRECT)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in UNGATED_PATHS or path.startswith(UNGATED_PREFIXES):
            return await call_next(request)

        tokens = read_token_pair(request.cookies, self._names)
        lookup = await self._lookup(request, tokens)
        # None means the provider could not answer; keep the cookies for the next attempt
        resolved = lookup is not None
        if lookup is None:
            lookup = UserLookup(user=None)

        if lookup.refreshed is not None:
            tokens = lookup.refreshed
            _mirror_onto_request(request, tokens, self._names)

        authenticated = lookup.user is not None
        request.state.session = SessionContext(
            user=lookup.user,
            tokens=tokens if authenticated else None,
        )

        action = decide(
            authenticated=authenticated,
            public=is_public_path(path, self._settings.public_routes),
        )
        if action is GateAction.REDIRECT_DASHBOARD:
            response: Response = self._redirect(request, self._settings.dashboard_path)
        elif action is GateAction.REDIRECT_LOGIN:
            logger.info("Redirecting unauthenticated request for %s to login", path)
            response = self._redirect(request, self._settings.login_path)
        else:
            response = await call_next(request)

        # sign-in and sign-out handlers manage the session cookies themselves
        if _sets_session_cookie(response, self._names):
            return response

        if lookup.refreshed is not None:
            write_token_pair(response, lookup.refreshed, self._names, secure=self._settings.secure_cookies)
        elif resolved and tokens is not None and not authenticated:
            clear_token_pair(response, self._names)

        return response


__all__ = ["GateAction", "SessionGate", "decide", "is_public_path"]
