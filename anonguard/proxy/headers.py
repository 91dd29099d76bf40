"""HTTP header processing for the AnonGuard proxy.

  - build_upstream_headers(): strips hop-by-hop headers, injects
    X-AnonGuard-Request-ID, forwards all remaining request headers unchanged
    (Authorization and cookies included — the platform runs its own checks).

  - build_client_response_headers(): strips hop-by-hop headers and
    content-encoding from platform responses (the body is forwarded decoded),
    keeps repeated headers such as Set-Cookie as separate entries.

RFC 7230 §6.1 — hop-by-hop headers MUST NOT be forwarded by intermediaries.
"""

from __future__ import annotations

from typing import Iterable

import httpx

from anonguard.constants import REQUEST_ID_HEADER

# host is derived from the upstream URL; content-length is recomputed by httpx.
HOP_BY_HOP_HEADERS: frozenset[str] = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
    }
)

# Describe the encoded body; httpx hands the proxy the decoded one.
DECODED_BODY_HEADERS: frozenset[str] = frozenset({"content-encoding", "content-length"})


def build_upstream_headers(
    request_headers: Iterable[tuple[str, str]],
    request_id: str,
) -> dict[str, str]:
    """Build the header dict to send to the analytics platform.

    Args:
        request_headers: (name, value) pairs, typically ``request.headers.items()``.
        request_id:      ULID of this request, injected as X-AnonGuard-Request-ID.
    """
    headers: dict[str, str] = {}
    for name, value in request_headers:
        lower_name = name.lower()
        if lower_name in HOP_BY_HOP_HEADERS or lower_name == REQUEST_ID_HEADER.lower():
            continue
        headers[name] = value

    headers[REQUEST_ID_HEADER] = request_id
    return headers


def build_client_response_headers(upstream_headers: httpx.Headers) -> list[tuple[str, str]]:
    """Build the (name, value) pairs returned to the client from the platform response."""
    return [
        (name, value)
        for name, value in upstream_headers.multi_items()
        if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() not in DECODED_BODY_HEADERS
    ]
