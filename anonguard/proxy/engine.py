"""Async HTTP proxy handler for AnonGuard.

Forwards every request that passed the access gate to the analytics platform
(``platform.upstream``, defaulting to ``platform.base_url``).

Key design properties:
  - Shared httpx.AsyncClient at app.state.http_client — never instantiated per-request
  - Request body forwarded as raw bytes; query string forwarded unchanged
  - Response streamed back to the client (no buffering of report exports),
    decoded by httpx, so content-encoding and content-length are not forwarded
  - 3xx responses from the platform are passed through, never followed

Failure modes:
  - httpx.ConnectError / TimeoutException / RemoteProtocolError → HTTP 502
  - httpx.InvalidURL / UnsupportedProtocol → HTTP 500 (configuration error, logged at ERROR level)
  - Platform HTTP 4xx/5xx → passed through as-is
"""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from anonguard.config import Config
from anonguard.models.responses import (
    build_config_error_response,
    build_upstream_unavailable_response,
)
from anonguard.proxy.headers import build_client_response_headers, build_upstream_headers
from anonguard.utils.logger import get_logger
from anonguard.utils.ulid import generate_ulid

logger = get_logger(__name__)

router = APIRouter(tags=["proxy"])

# ─── Constants ────────────────────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 100
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds
PROXY_TIMEOUT: float = 60.0  # report exports can be slow

# Transport failures reported to the client as 502
UPSTREAM_FAILURES = (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError)


def create_http_client() -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient with connection pooling configured.

    Created once at lifespan startup and stored in app.state.http_client.
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(PROXY_TIMEOUT),
        follow_redirects=False,
    )


def upstream_url_for(path: str, config: Config) -> str:
    """Join the platform upstream base URL and the captured request path."""
    return f"{config.platform.upstream_url}/{path.lstrip('/')}"


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"],
)
async def proxy_handler(request: Request, path: str) -> Response:
    """Forward an allowed request to the analytics platform.

    The access gate has already run (RestrictAnonymousAccessMiddleware);
    anything reaching this handler is allowed.
    """
    request_id: str = getattr(request.state, "request_id", None) or generate_ulid()
    config: Config = request.app.state.config
    http_client: httpx.AsyncClient = request.app.state.http_client

    upstream_url = upstream_url_for(path, config)
    body: bytes = await request.body()

    try:
        upstream_request = http_client.build_request(
            method=request.method,
            url=upstream_url,
            headers=build_upstream_headers(request.headers.items(), request_id),
            content=body,
            params=request.url.query,
        )
        upstream_response = await http_client.send(upstream_request, stream=True)
    except UPSTREAM_FAILURES as exc:
        reason = type(exc).__name__
        logger.warning("Analytics platform unreachable", url=upstream_url, reason=reason)
        return build_upstream_unavailable_response(request_id, reason=reason)
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
        logger.error("platform.upstream is not a usable URL", url=upstream_url, error=str(exc))
        return build_config_error_response()

    logger.debug(
        "Request forwarded",
        method=request.method,
        path=path,
        platform_status=upstream_response.status_code,
    )

    response = StreamingResponse(
        content=upstream_response.aiter_bytes(),
        status_code=upstream_response.status_code,
        background=BackgroundTask(upstream_response.aclose),
    )
    # Repeated headers (one Set-Cookie per cookie) must stay separate lines
    for name, value in build_client_response_headers(upstream_response.headers):
        response.headers.append(name, value)
    return response
