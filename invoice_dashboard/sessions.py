"""Per-request session state and auth event subscriptions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from starlette.requests import Request
from starlette.responses import Response

from .models import User

logger = logging.getLogger("invoice_dashboard.sessions")

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

# Refresh tokens are long-lived; the provider rotates them on every refresh.
COOKIE_MAX_AGE = 60 * 60 * 24 * 400


class SessionContextError(RuntimeError):
    """Raised when session state is read on a request the gate never saw."""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class SessionContext:
    """Authentication state resolved for a single request."""

    user: Optional[User]
    tokens: Optional[TokenPair]

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


@dataclass(frozen=True)
class CookieNames:
    access_token: str
    refresh_token: str

    @staticmethod
    def for_prefix(prefix: str) -> "CookieNames":
        return CookieNames(
            access_token=f"{prefix}-access-token",
            refresh_token=f"{prefix}-refresh-token",
        )


def read_token_pair(cookies: Mapping[str, str], names: CookieNames) -> Optional[TokenPair]:
    access = cookies.get(names.access_token)
    refresh = cookies.get(names.refresh_token)
    if not access or not refresh:
        return None
    return TokenPair(access_token=access, refresh_token=refresh)


def write_token_pair(
    response: Response,
    tokens: TokenPair,
    names: CookieNames,
    *,
    secure: bool,
) -> None:
    for name, value in (
        (names.access_token, tokens.access_token),
        (names.refresh_token, tokens.refresh_token),
    ):
        response.set_cookie(
            name,
            value,
            max_age=COOKIE_MAX_AGE,
            secure=secure,
            httponly=True,
            samesite="lax",
            path="/",
        )


def clear_token_pair(response: Response, names: CookieNames) -> None:
    response.delete_cookie(names.access_token, path="/")
    response.delete_cookie(names.refresh_token, path="/")


def get_session_context(request: Request) -> SessionContext:
    context = getattr(request.state, "session", None)
    if not isinstance(context, SessionContext):
        raise SessionContextError(
            "Session context is not available; is SessionGate installed on this application?"
        )
    return context


def require_user(request: Request) -> User:
    user = get_session_context(request).user
    if user is None:
        raise SessionContextError("No authenticated user on a route the session gate protects")
    return user


AuthListener = Callable[[str, Optional[User]], None]


class Subscription:
    """Handle returned by :meth:`AuthEvents.subscribe`."""

    def __init__(self, hub: "AuthEvents", token: int) -> None:
        self._hub = hub
        self._token = token
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._hub._remove(self._token)
            self._active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class AuthEvents:
    """Explicit publish/subscribe hub for sign-in, sign-out and refresh events."""

    def __init__(self) -> None:
        self._listeners: Dict[int, AuthListener] = {}
        self._next_token = 0
        self._lock = threading.Lock()

    def subscribe(self, listener: AuthListener) -> Subscription:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners[token] = listener
        return Subscription(self, token)

    def _remove(self, token: int) -> None:
        with self._lock:
            self._listeners.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event: str, user: Optional[User]) -> None:
        with self._lock:
            listeners: List[AuthListener] = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(event, user)
            except Exception:
                logger.exception("Auth event listener failed while handling %s", event)


__all__ = [
    "AuthEvents",
    "CookieNames",
    "SIGNED_IN",
    "SIGNED_OUT",
    "SessionContext",
    "SessionContextError",
    "Subscription",
    "TOKEN_REFRESHED",
    "TokenPair",
    "clear_token_pair",
    "get_session_context",
    "read_token_pair",
    "require_user",
    "write_token_pair",
]
