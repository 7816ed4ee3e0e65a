from __future__ import annotations

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from invoice_dashboard.application import create_app
from invoice_dashboard.gate import GateAction, decide
from invoice_dashboard.models import User
from invoice_dashboard.sessions import TokenPair


ACCESS_COOKIE = "sb-access-token"
REFRESH_COOKIE = "sb-refresh-token"


def _client(settings, store, auth_client, **cookies) -> TestClient:
    app = create_app(settings, store=store, auth_client=auth_client)
    client = TestClient(app)
    for name, value in cookies.items():
        client.cookies.set(name, value)
    return client


def _signed_in(settings, store, auth_client) -> TestClient:
    return _client(
        settings,
        store,
        auth_client,
        **{ACCESS_COOKIE: "valid-access", REFRESH_COOKIE: "valid-refresh"},
    )


def _set_cookie_headers(response) -> list[str]:
    return response.headers.get_list("set-cookie")


@pytest.mark.parametrize(
    ("authenticated", "public", "expected"),
    [
        (True, True, GateAction.REDIRECT_DASHBOARD),
        (True, False, GateAction.PASS),
        (False, True, GateAction.PASS),
        (False, False, GateAction.REDIRECT_LOGIN),
    ],
)
def test_decision_table(authenticated, public, expected) -> None:
    assert decide(authenticated=authenticated, public=public) is expected


def test_protected_path_without_session_redirects_to_login(settings, store, auth_client) -> None:
    with _client(settings, store, auth_client) as client:
        response = client.get("/dashboard/invoices", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"].endswith("/login")
    assert auth_client.lookups == [None]
    assert store.queries == []


@pytest.mark.parametrize("path", ["/login", "/"])
def test_public_path_with_session_redirects_to_dashboard(path, settings, store, auth_client, signed_in_user) -> None:
    with _signed_in(settings, store, auth_client) as client:
        response = client.get(path, follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"].endswith("/dashboard")


def test_login_without_session_passes_through(settings, store, auth_client) -> None:
    with _client(settings, store, auth_client) as client:
        response = client.get("/login", follow_redirects=False)

    assert response.status_code == 200
    assert "location" not in response.headers
    assert "Please log in to continue." in response.text


def test_protected_path_with_session_renders(settings, store, auth_client, signed_in_user) -> None:
    with _signed_in(settings, store, auth_client) as client:
        response = client.get("/dashboard", follow_redirects=False)

    assert response.status_code == 200
    assert "Evil Rabbit" in response.text
    assert store.access_tokens == ["valid-access"]
    assert _set_cookie_headers(response) == []


def test_refreshed_tokens_reach_handler_and_browser(settings, store, auth_client) -> None:
    user = User(id="user-2", email="refresh@example.com")
    auth_client.refreshable["old-refresh"] = (user, TokenPair("new-access", "new-refresh"))

    with _client(
        settings,
        store,
        auth_client,
        **{ACCESS_COOKIE: "expired-access", REFRESH_COOKIE: "old-refresh"},
    ) as client:
        response = client.get("/dashboard/customers", follow_redirects=False)

    assert response.status_code == 200
    assert store.access_tokens == ["new-access"]
    cookies = _set_cookie_headers(response)
    assert any(header.startswith(f"{ACCESS_COOKIE}=new-access") for header in cookies)
    assert any(header.startswith(f"{REFRESH_COOKIE}=new-refresh") for header in cookies)


def test_refreshed_tokens_are_written_on_redirects(settings, store, auth_client) -> None:
    user = User(id="user-2", email="refresh@example.com")
    auth_client.refreshable["old-refresh"] = (user, TokenPair("new-access", "new-refresh"))

    with _client(
        settings,
        store,
        auth_client,
        **{ACCESS_COOKIE: "expired-access", REFRESH_COOKIE: "old-refresh"},
    ) as client:
        response = client.get("/login", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"].endswith("/dashboard")
    assert any(header.startswith(f"{ACCESS_COOKIE}=new-access") for header in _set_cookie_headers(response))


def test_auth_provider_failure_fails_closed(settings, store, auth_client, signed_in_user) -> None:
    auth_client.unavailable = True

    with _signed_in(settings, store, auth_client) as client:
        protected = client.get("/dashboard", follow_redirects=False)
        public = client.get("/login", follow_redirects=False)

    assert protected.status_code == 307
    assert protected.headers["location"].endswith("/login")
    assert public.status_code == 200
    assert not any(header.startswith(ACCESS_COOKIE) for header in _set_cookie_headers(protected))


def test_stale_cookies_are_cleared(settings, store, auth_client) -> None:
    with _client(
        settings,
        store,
        auth_client,
        **{ACCESS_COOKIE: "revoked", REFRESH_COOKIE: "revoked"},
    ) as client:
        response = client.get("/dashboard", follow_redirects=False)

    assert response.status_code == 307
    cleared = [header for header in _set_cookie_headers(response) if header.startswith(ACCESS_COOKIE)]
    assert cleared and "Max-Age=0" in cleared[0]


def test_single_cookie_is_treated_as_no_session(settings, store, auth_client, signed_in_user) -> None:
    with _client(settings, store, auth_client, **{ACCESS_COOKIE: "valid-access"}) as client:
        response = client.get("/dashboard", follow_redirects=False)

    assert response.status_code == 307
    assert auth_client.lookups == [None]


def test_health_and_static_bypass_gate(settings, store, auth_client) -> None:
    with _client(settings, store, auth_client) as client:
        health = client.get("/api/health", follow_redirects=False)
        stylesheet = client.get("/static/css/app.css", follow_redirects=False)

    assert health.status_code == 200
    assert health.json() == {"status": "ok"}
    assert stylesheet.status_code == 200
    assert auth_client.lookups == []


def test_json_api_is_gated(settings, store, auth_client) -> None:
    with _client(settings, store, auth_client) as client:
        response = client.get("/api/cards", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"].endswith("/login")


def test_refreshed_tokens_replace_request_cookies(settings, store, auth_client) -> None:
    user = User(id="user-2", email="refresh@example.com")
    auth_client.refreshable["old-refresh"] = (user, TokenPair("new-access", "new-refresh"))
    seen = {}

    app = create_app(settings, store=store, auth_client=auth_client)

    @app.get("/dashboard/cookies")
    async def record_cookies(request: Request) -> dict:
        seen.update(request.cookies)
        return {}

    with TestClient(app) as client:
        client.cookies.set(ACCESS_COOKIE, "expired-access")
        client.cookies.set(REFRESH_COOKIE, "old-refresh")
        response = client.get("/dashboard/cookies", follow_redirects=False)

    assert response.status_code == 200
    assert seen[ACCESS_COOKIE] == "new-access"
    assert seen[REFRESH_COOKIE] == "new-refresh"
