"""Tests for the auth routes and pages (login, callback, status, logout) through the full app."""
import asyncio
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi.testclient import TestClient

from jira_client_web.errors import TokenExchangeError, TokenRefreshError
from jira_client_web.main import app as default_app
from jira_client_web.main import create_app
from jira_client_web.pkce import generate_challenge
from jira_client_web.session_store import SESSION_COOKIE, SessionStore
from jira_client_web.token_store import TokenResponse


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def token_client():
    client = AsyncMock()
    client.exchange_code.return_value = TokenResponse.from_payload(
        {"access_token": "a1", "refresh_token": "r1", "expires_in": 3600, "scope": "read:jira-work"}
    )
    client.refresh.return_value = TokenResponse.from_payload({"access_token": "a2", "expires_in": 3600})
    return client


@pytest.fixture
def app(settings, token_client):
    return create_app(settings, token_client=token_client)


@pytest.fixture
def client(app):
    return TestClient(app)


def _query(location: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(location).query).items()}


def _login(client) -> dict[str, str]:
    r = client.get("/auth/login", follow_redirects=False)
    assert r.status_code == 302
    return _query(r.headers["location"])


def test_health():
    r = TestClient(default_app).get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "test"
    assert "timestamp" in body


def test_unknown_route_is_json_404(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Not found"}


def test_home_shows_login_link(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "/auth/login" in r.text
    assert SESSION_COOKIE not in r.cookies


def test_home_escapes_error_message(client):
    r = client.get("/", params={"error": "<script>x</script>"})
    assert "<script>x</script>" not in r.text
    assert "&lt;script&gt;" in r.text


def test_dashboard_requires_login(client):
    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"


def test_login_redirects_to_provider_and_sets_cookie(client, app):
    r = client.get("/auth/login", follow_redirects=False)
    assert r.status_code == 302
    location = r.headers["location"]
    assert location.startswith("https://auth.example.test/authorize?")
    params = _query(location)
    assert params["response_type"] == "code"
    assert params["code_challenge_method"] == "S256"
    assert params["audience"] == "api.atlassian.com"
    assert params["prompt"] == "consent"
    assert SESSION_COOKIE in r.cookies
    # Only the session id travels in the cookie
    assert params["state"] not in r.headers["set-cookie"]
    assert len(app.state.session_store) == 1


def test_login_generator_failure_is_500(client, app, monkeypatch):
    def broken():
        raise OSError("no entropy")

    monkeypatch.setattr("jira_client_web.workflow.generate_verifier", broken)
    r = client.get("/auth/login", follow_redirects=False)
    assert r.status_code == 500
    assert r.text == "Failed to initiate OAuth flow"
    assert len(app.state.session_store) == 0


def test_end_to_end_login(client, token_client):
    params = _login(client)

    r = client.get("/auth/callback", params={"code": "auth-code", "state": params["state"]}, follow_redirects=False)

    assert r.status_code == 302
    assert r.headers["location"] == "/dashboard"
    token_client.exchange_code.assert_awaited_once()
    code, verifier = token_client.exchange_code.await_args.args
    assert code == "auth-code"
    assert generate_challenge(verifier) == params["code_challenge"]

    status = client.get("/auth/status").json()
    assert status["authenticated"] is True
    assert abs(status["expiresAt"] - (time.time() + 3600) * 1000) < 5000

    assert client.get("/", follow_redirects=False).headers["location"] == "/dashboard"
    assert client.get("/dashboard").status_code == 200


def test_callback_state_mismatch(client, token_client):
    _login(client)
    r = client.get("/auth/callback", params={"code": "c", "state": "wrong"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"].startswith("/?error=")
    assert _query(r.headers["location"])["error"] == "Invalid state parameter"
    assert token_client.exchange_code.call_count == 0


def test_callback_without_login(client, token_client):
    r = client.get("/auth/callback", params={"code": "c", "state": "s"}, follow_redirects=False)
    assert _query(r.headers["location"])["error"] == "Invalid state parameter"
    assert token_client.exchange_code.call_count == 0


def test_callback_expired_login(client, token_client, monkeypatch):
    params = _login(client)
    later = time.time() + 6 * 60
    monkeypatch.setattr("jira_client_web.workflow.time", SimpleNamespace(time=lambda: later))
    r = client.get("/auth/callback", params={"code": "c", "state": params["state"]}, follow_redirects=False)
    assert _query(r.headers["location"])["error"] == "OAuth session expired"
    assert token_client.exchange_code.call_count == 0


def test_callback_missing_code(client):
    params = _login(client)
    r = client.get("/auth/callback", params={"state": params["state"]}, follow_redirects=False)
    assert _query(r.headers["location"])["error"] == "Missing authorization code or state"


def test_callback_provider_error(client):
    _login(client)
    r = client.get(
        "/auth/callback",
        params={"error": "access_denied", "error_description": "User denied access"},
        follow_redirects=False,
    )
    assert _query(r.headers["location"])["error"] == "User denied access"


def test_callback_exchange_failure_is_generic(client, token_client):
    token_client.exchange_code.side_effect = TokenExchangeError(
        "rejected", status_code=400, body='{"error":"invalid_grant","error_description":"secret detail"}'
    )
    params = _login(client)
    r = client.get("/auth/callback", params={"code": "c", "state": params["state"]}, follow_redirects=False)
    assert _query(r.headers["location"])["error"] == "Authentication failed"
    assert "secret" not in r.headers["location"]
    assert client.get("/auth/status").json() == {"authenticated": False}


def test_error_responses_do_not_wait_for_disconnect(app):
    """Validation failures and 401s answer while the browser is still connected."""

    async def scenario():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as browser:
            mismatch = await browser.get("/auth/callback", params={"code": "c", "state": "wrong"})
            denied = await browser.get("/auth/callback", params={"error": "access_denied"})
            me = await browser.get("/api/me")
        return mismatch, denied, me

    mismatch, denied, me = asyncio.run(asyncio.wait_for(scenario(), timeout=5))
    assert mismatch.status_code == 302
    assert _query(mismatch.headers["location"])["error"] == "Invalid state parameter"
    assert _query(denied.headers["location"])["error"] == "access_denied"
    assert me.status_code == 401
    assert me.json() == {"error": "Not authenticated"}


def test_status_without_session(client):
    assert client.get("/auth/status").json() == {"authenticated": False}


def test_tampered_cookie_is_unauthenticated(client, app):
    params = _login(client)
    client.get("/auth/callback", params={"code": "c", "state": params["state"]}, follow_redirects=False)
    cookie = client.cookies[SESSION_COOKIE]
    tampered = cookie[:-4] + ("AAAA" if not cookie.endswith("AAAA") else "BBBB")

    r = TestClient(app).get("/auth/status", headers={"Cookie": f"{SESSION_COOKIE}={tampered}"})
    assert r.json() == {"authenticated": False}


def test_logout(client, app):
    params = _login(client)
    client.get("/auth/callback", params={"code": "c", "state": params["state"]}, follow_redirects=False)
    assert client.get("/auth/status").json()["authenticated"] is True

    r = client.post("/auth/logout")
    assert r.status_code == 200
    assert r.json() == {"success": True}
    assert len(app.state.session_store) == 0
    assert client.get("/auth/status").json() == {"authenticated": False}

    r = client.get("/api/me")
    assert r.status_code == 401
    assert r.json() == {"error": "Not authenticated"}

    # Idempotent
    assert client.post("/auth/logout").json() == {"success": True}


def test_logout_requires_post(client):
    assert client.get("/auth/logout").status_code == 405


def test_protected_call_refresh_failure_is_401(client, token_client):
    token_client.exchange_code.return_value = TokenResponse.from_payload(
        {"access_token": "a1", "refresh_token": "r1", "expires_in": 0}
    )
    token_client.refresh.side_effect = TokenRefreshError("rejected", status_code=400)
    params = _login(client)
    client.get("/auth/callback", params={"code": "c", "state": params["state"]}, follow_redirects=False)

    r = client.get("/api/me")
    assert r.status_code == 401
    assert r.json() == {"error": "Token refresh failed, please re-authenticate"}
    assert token_client.refresh.call_count == 1
    assert client.get("/auth/status").json() == {"authenticated": False}


def test_injected_empty_store_is_used(settings, token_client):
    store = SessionStore()
    app = create_app(settings, token_client=token_client, session_store=store)
    assert app.state.session_store is store
    _login(TestClient(app))
    assert len(store) == 1


def test_abandoned_logins_are_swept(settings, token_client):
    clock = FakeClock()
    store = SessionStore(ttl_seconds=settings.session_ttl_seconds, clock=clock)
    app = create_app(settings, token_client=token_client, session_store=store)
    for _ in range(5):
        _login(TestClient(app))
    assert len(store) == 5

    clock.now += 48 * 60 * 60
    _login(TestClient(app))
    assert len(store) == 1
