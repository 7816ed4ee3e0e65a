"""HTTP client for the hosted auth provider (GoTrue request shape)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

from .models import User
from .sessions import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, AuthEvents, TokenPair

logger = logging.getLogger("invoice_dashboard.auth")


class AuthError(Exception):
    """Raised when the auth provider cannot be reached or rejects a request."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class UserLookup:
    """Outcome of resolving the session user.

    ``refreshed`` carries a new token pair when the access token had expired
    and the provider issued a replacement; callers must persist it.
    """

    user: Optional[User]
    refreshed: Optional[TokenPair] = None


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return default


def _response_error(response: httpx.Response, default: str) -> AuthError:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    return AuthError(_extract_error_message(payload, default), status=response.status_code)


def _parse_session(payload: object) -> Tuple[Optional[User], TokenPair]:
    if not isinstance(payload, dict):
        raise AuthError("Auth provider returned an unexpected response payload")
    try:
        tokens = TokenPair(
            access_token=str(payload["access_token"]),
            refresh_token=str(payload["refresh_token"]),
        )
    except KeyError as exc:
        raise AuthError("Auth provider response was missing session tokens") from exc
    user_payload = payload.get("user")
    user = User.from_dict(user_payload) if isinstance(user_payload, dict) else None
    return user, tokens


class AuthClient:
    """Resolve, refresh and revoke sessions with the auth provider."""

    def __init__(
        self,
        auth_url: str,
        api_key: str,
        client: httpx.AsyncClient,
        *,
        events: Optional[AuthEvents] = None,
    ) -> None:
        cleaned = (auth_url or "").strip()
        if not cleaned:
            raise ValueError("Auth provider URL must not be empty")
        self._auth_url = cleaned.rstrip("/")
        self._api_key = api_key
        self._client = client
        self.events = events or AuthEvents()

    def _headers(self, access_token: Optional[str] = None) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {access_token or self._api_key}",
        }

    async def _post(self, path: str, *, json: dict, params: Optional[dict] = None, access_token: Optional[str] = None) -> httpx.Response:
        try:
            return await self._client.post(
                f"{self._auth_url}{path}",
                params=params,
                json=json,
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"Failed to contact auth provider: {exc}") from exc

    async def _fetch_user(self, access_token: str) -> Optional[User]:
        try:
            response = await self._client.get(
                f"{self._auth_url}/user",
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"Failed to contact auth provider: {exc}") from exc

        if response.status_code in (401, 403):
            return None
        if response.status_code >= 400:
            raise _response_error(response, f"User lookup failed with status {response.status_code}")
        try:
            payload = response.json()
            return User.from_dict(payload)
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthError("Auth provider returned an invalid user payload") from exc

    async def refresh(self, refresh_token: str) -> Tuple[Optional[User], Optional[TokenPair]]:
        """Exchange ``refresh_token`` for a new pair; ``(None, None)`` if it was rejected."""

        response = await self._post(
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        if response.status_code in (400, 401, 403):
            logger.warning("Refresh token rejected by auth provider (status %s)", response.status_code)
            return None, None
        if response.status_code >= 400:
            raise _response_error(response, f"Token refresh failed with status {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Auth provider returned an invalid session payload") from exc
        user, tokens = _parse_session(payload)
        if user is None:
            user = await self._fetch_user(tokens.access_token)
        self.events.publish(TOKEN_REFRESHED, user)
        return user, tokens

    async def get_user(self, tokens: Optional[TokenPair]) -> UserLookup:
        """Resolve the user behind ``tokens``, refreshing an expired access token."""

        if tokens is None:
            return UserLookup(user=None)

        user = await self._fetch_user(tokens.access_token)
        if user is not None:
            return UserLookup(user=user)

        refreshed_user, refreshed = await self.refresh(tokens.refresh_token)
        if refreshed_user is None or refreshed is None:
            return UserLookup(user=None)
        return UserLookup(user=refreshed_user, refreshed=refreshed)

    async def sign_in_with_password(self, email: str, password: str) -> Tuple[User, TokenPair]:
        response = await self._post(
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code >= 400:
            raise _response_error(response, "Invalid login credentials")
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Auth provider returned an invalid session payload") from exc
        user, tokens = _parse_session(payload)
        if user is None:
            user = await self._fetch_user(tokens.access_token)
            if user is None:
                raise AuthError("Auth provider did not return the signed-in user")
        logger.info("User %s signed in", user.id)
        self.events.publish(SIGNED_IN, user)
        return user, tokens

    async def sign_out(self, tokens: Optional[TokenPair], *, user: Optional[User] = None) -> None:
        """Revoke the session. Failures are logged; the local session ends regardless."""

        if tokens is not None:
            try:
                response = await self._post("/logout", json={}, access_token=tokens.access_token)
            except AuthError as exc:
                logger.warning("Sign-out request failed: %s", exc)
            else:
                if response.status_code >= 400 and response.status_code not in (401, 403):
                    logger.warning("Sign-out rejected by auth provider (status %s)", response.status_code)
        self.events.publish(SIGNED_OUT, user)


__all__ = ["AuthClient", "AuthError", "UserLookup"]
