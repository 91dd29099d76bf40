"""Integration tests for the anonymous-access gate in front of the proxy.

Test strategy:
  - httpx.MockTransport: stands in for the analytics platform, records what
    the gateway forwarded
  - starlette.testclient.TestClient: drives the real lifespan (load_config and
    create_http_client patched)
  - httpx.ASGITransport: drives a small app whose route re-enters the
    application, to check that internal sub-dispatches are not re-evaluated
"""

from __future__ import annotations

import gzip
from typing import Any

import httpx
import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient
from starlette.testclient import TestClient

from anonguard.access.decision import AccessGate
from anonguard.access.loader import PolicyLoader
from anonguard.access.middleware import RestrictAnonymousAccessMiddleware
from anonguard.access.policy import AccessPolicy
from anonguard.auth.tokens import TokenAuthenticator, hash_token, token_id
from anonguard.config import AccessConfig, AuthConfig, Config, PlatformConfig, TokenEntry
from anonguard.constants import LOGIN_REQUIRED_MESSAGE, REQUEST_ID_HEADER
from anonguard.main import create_app
from anonguard.models.responses import DENIED_HEADER

PLATFORM_URL = "https://analytics.example"
REDIRECT_URL = "https://www.example.org/"
TOKEN = "0123456789abcdef0123456789abcdef"

# ─── Fixtures & Helpers ───────────────────────────────────────────────────────


class _MockPlatform:
    """In-process analytics platform backed by httpx.MockTransport."""

    def __init__(
        self,
        *,
        fail_with: Exception | None = None,
        content: bytes = b"platform page",
        headers: list[tuple[str, str]] | None = None,
    ) -> None:
        self.received: list[httpx.Request] = []
        self._fail_with = fail_with
        self._content = content
        self._headers = headers or [("content-type", "text/html")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self._fail_with is not None:
            raise self._fail_with
        self.received.append(request)
        return httpx.Response(200, content=self._content, headers=self._headers)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _config(*, redirect: str | None = None) -> Config:
    return Config(
        platform=PlatformConfig(base_url=PLATFORM_URL),
        access=AccessConfig(
            allowed_requests=["module=API&method=VisitsSummary.get"],
            allowed_referrers=["module=Widgetize&action=iframe"],
            redirect_unallowed_to=redirect,
        ),
        auth=AuthConfig(
            tokens=[
                TokenEntry(login="reporter", token_id=token_id(TOKEN), token_hash=hash_token(TOKEN, rounds=4))
            ]
        ),
    )


def _build_app(
    monkeypatch: pytest.MonkeyPatch,
    platform: _MockPlatform,
    config: Config,
) -> Any:
    monkeypatch.setattr("anonguard.main.load_config", lambda: config)
    monkeypatch.setattr("anonguard.main.create_http_client", lambda: platform.client())
    return create_app()


@pytest.fixture
def platform() -> _MockPlatform:
    return _MockPlatform()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, platform: _MockPlatform):
    with TestClient(_build_app(monkeypatch, platform, _config())) as test_client:
        yield test_client


@pytest.fixture
def redirecting_client(monkeypatch: pytest.MonkeyPatch, platform: _MockPlatform):
    with TestClient(_build_app(monkeypatch, platform, _config(redirect=REDIRECT_URL))) as test_client:
        yield test_client


# ─── Allowed requests reach the platform ─────────────────────────────────────


class TestAllowedRequests:
    def test_builtin_login_page_proxied(self, client: TestClient, platform: _MockPlatform) -> None:
        response = client.get("/index.php", params={"module": "Login"})
        assert response.status_code == 200
        assert response.content == b"platform page"
        assert len(platform.received) == 1
        forwarded = platform.received[0]
        assert forwarded.url.host == "analytics.example"
        assert forwarded.url.path == "/index.php"
        assert forwarded.url.params["module"] == "Login"

    def test_configured_request_pattern_case_insensitive_values(
        self, client: TestClient, platform: _MockPlatform
    ) -> None:
        response = client.get(
            "/index.php",
            params={"module": "API", "method": "visitssummary.GET", "idSite": "1"},
        )
        assert response.status_code == 200
        assert platform.received[0].url.params["idSite"] == "1"

    def test_allowed_referrer(self, client: TestClient, platform: _MockPlatform) -> None:
        response = client.get(
            "/index.php",
            params={"module": "Widgetize", "action": "getWidget"},
            headers={"Referer": f"{PLATFORM_URL}/index.php?module=Widgetize&action=iframe&idSite=1"},
        )
        assert response.status_code == 200

    def test_referrer_from_other_host_not_trusted(self, client: TestClient) -> None:
        response = client.get(
            "/index.php",
            params={"module": "Widgetize", "action": "getWidget"},
            headers={"Referer": "https://evil.example/index.php?module=Widgetize&action=iframe"},
        )
        assert response.status_code == 401

    def test_authenticated_caller_proxied(self, client: TestClient, platform: _MockPlatform) -> None:
        response = client.get("/index.php", params={"module": "CoreHome", "token_auth": TOKEN})
        assert response.status_code == 200
        assert platform.received[0].url.params["token_auth"] == TOKEN

    def test_bearer_token_proxied(self, client: TestClient) -> None:
        response = client.get(
            "/index.php",
            params={"module": "CoreHome"},
            headers={"Authorization": f"Bearer {TOKEN}"},
        )
        assert response.status_code == 200

    def test_request_id_injected_upstream(self, client: TestClient, platform: _MockPlatform) -> None:
        client.get("/index.php", params={"module": "Login"})
        assert len(platform.received[0].headers[REQUEST_ID_HEADER]) == 26


# ─── Platform responses relayed to the client ────────────────────────────────


class TestRelayedResponses:
    def test_each_set_cookie_header_kept(self, monkeypatch: pytest.MonkeyPatch) -> None:
        platform = _MockPlatform(
            headers=[
                ("content-type", "text/html"),
                ("set-cookie", "MATOMO_SESSID=abc; Path=/; HttpOnly"),
                ("set-cookie", "matomo_lang=en; Path=/"),
            ]
        )
        with TestClient(_build_app(monkeypatch, platform, _config())) as test_client:
            response = test_client.get("/index.php", params={"module": "Login"})
        assert response.status_code == 200
        assert response.headers.get_list("set-cookie") == [
            "MATOMO_SESSID=abc; Path=/; HttpOnly",
            "matomo_lang=en; Path=/",
        ]

    def test_compressed_body_relayed_decoded(self, monkeypatch: pytest.MonkeyPatch) -> None:
        platform = _MockPlatform(
            content=gzip.compress(b"compressed platform page"),
            headers=[("content-type", "text/html"), ("content-encoding", "gzip")],
        )
        with TestClient(_build_app(monkeypatch, platform, _config())) as test_client:
            response = test_client.get("/index.php", params={"module": "Login"})
        assert response.status_code == 200
        assert response.content == b"compressed platform page"
        assert "content-encoding" not in response.headers


# ─── Denied requests never reach the platform ────────────────────────────────


class TestDeniedRequests:
    def test_ui_request_login_required(self, client: TestClient, platform: _MockPlatform) -> None:
        response = client.get("/index.php", params={"module": "CoreHome"})
        assert response.status_code == 401
        assert response.json() == {
            "error": {"message": LOGIN_REQUIRED_MESSAGE, "code": "login_required"}
        }
        assert response.headers[DENIED_HEADER] == "true"
        assert platform.received == []

    def test_api_request_forbidden(self, client: TestClient, platform: _MockPlatform) -> None:
        response = client.get("/index.php", params={"module": "API", "method": "UsersManager.getUsers"})
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"
        assert platform.received == []

    def test_unknown_token_is_anonymous(self, client: TestClient) -> None:
        response = client.get("/index.php", params={"module": "CoreHome", "token_auth": "nope"})
        assert response.status_code == 401

    def test_ui_request_redirected(self, redirecting_client: TestClient, platform: _MockPlatform) -> None:
        response = redirecting_client.get(
            "/index.php", params={"module": "CoreHome"}, follow_redirects=False
        )
        assert response.status_code == 302
        assert response.headers["location"] == REDIRECT_URL
        assert platform.received == []

    def test_api_request_redirect_keeps_forbidden_status(self, redirecting_client: TestClient) -> None:
        response = redirecting_client.get(
            "/index.php",
            params={"module": "API", "method": "UsersManager.getUsers"},
            follow_redirects=False,
        )
        assert response.status_code == 403
        assert response.headers["location"] == REDIRECT_URL


# ─── Gateway surface ──────────────────────────────────────────────────────────


class TestGatewaySurface:
    def test_health_exempt_from_gate(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "platform_host": "analytics.example",
            "allowed_requests": 1,
            "allowed_referrers": 1,
            "redirect_enabled": False,
        }

    def test_not_ready_fails_closed(self) -> None:
        application = create_app()
        response = TestClient(application).get("/index.php", params={"module": "Login"})
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "starting"

    def test_platform_unreachable_returns_502(self, monkeypatch: pytest.MonkeyPatch) -> None:
        platform = _MockPlatform(fail_with=httpx.ConnectError("connection refused"))
        with TestClient(_build_app(monkeypatch, platform, _config())) as test_client:
            response = test_client.get("/index.php", params={"module": "Login"})
        assert response.status_code == 502
        assert response.json()["error"]["code"] == "upstream_unavailable"
        assert REQUEST_ID_HEADER in response.headers
        assert DENIED_HEADER not in response.headers


# ─── Internal sub-dispatch ────────────────────────────────────────────────────


def _nesting_app(gate: AccessGate) -> FastAPI:
    """App whose /outer route re-dispatches to /inner through the same ASGI app."""
    application = FastAPI()
    application.add_middleware(RestrictAnonymousAccessMiddleware)

    @application.get("/outer")
    async def outer(request: Request) -> dict[str, Any]:
        transport = ASGITransport(app=request.app)
        async with AsyncClient(transport=transport, base_url="http://internal") as internal:
            inner = await internal.get("/inner", params={"module": "UsersManager"})
        return {"inner_status": inner.status_code}

    @application.get("/inner")
    async def inner() -> dict[str, bool]:
        return {"inner": True}

    application.state.config = Config(platform=PlatformConfig(base_url=PLATFORM_URL))
    application.state.policy_loader = PolicyLoader(AccessPolicy())
    application.state.authenticator = TokenAuthenticator()
    application.state.access_gate = gate
    application.state.ready = True
    return application


class TestNestedDispatch:
    @pytest.mark.asyncio
    async def test_sub_dispatch_not_re_evaluated(self, evaluations: list) -> None:
        gate = AccessGate()
        transport = ASGITransport(app=_nesting_app(gate))
        async with AsyncClient(transport=transport, base_url="http://gateway") as client:
            response = await client.get("/outer", params={"module": "Login"})
        assert response.status_code == 200
        assert response.json() == {"inner_status": 200}
        assert len(evaluations) == 1

    @pytest.mark.asyncio
    async def test_same_target_as_root_request_is_denied(self, evaluations: list) -> None:
        gate = AccessGate()
        transport = ASGITransport(app=_nesting_app(gate))
        async with AsyncClient(transport=transport, base_url="http://gateway") as client:
            response = await client.get("/inner", params={"module": "UsersManager"})
        assert response.status_code == 401
        assert len(evaluations) == 1

    @pytest.mark.asyncio
    async def test_sequential_root_requests_each_evaluated(self, evaluations: list) -> None:
        gate = AccessGate()
        transport = ASGITransport(app=_nesting_app(gate))
        async with AsyncClient(transport=transport, base_url="http://gateway") as client:
            for _ in range(3):
                await client.get("/outer", params={"module": "Login"})
        assert len(evaluations) == 3
