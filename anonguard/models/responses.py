"""HTTP response builders for gateway denials and upstream failures.

Four failure modes leave the gateway without reaching the platform:

  build_redirect_response():
      Denied anonymous request with a configured redirect target.
      HTTP 302, or 403 + ``Location`` when the decision already forced the
      API-request Forbidden status.

  build_denied_response():
      Denied anonymous request without a redirect target.
      HTTP 401 ``login_required`` (403 for API requests).

  build_upstream_unavailable_response():
      HTTP 502 — the analytics platform is unreachable. NOT an access denial,
      so it never carries the ``X-AnonGuard-Denied`` header.

  build_config_error_response():
      HTTP 500 — platform.upstream cannot be turned into a request URL.
"""

from __future__ import annotations

from typing import Optional

from fastapi.responses import JSONResponse, RedirectResponse

from anonguard.constants import FORBIDDEN_STATUS, REDIRECT_STATUS, REQUEST_ID_HEADER
from anonguard.models.decision import Decision

DENIED_HEADER = "X-AnonGuard-Denied"


def build_redirect_response(decision: Decision) -> RedirectResponse:
    """Build the redirect for a denied request.

    The forced status (403 for API requests) wins over 302 so API clients can
    still tell the request was refused; the ``Location`` header is set either way.
    """
    if decision.redirect_to is None:
        raise ValueError("redirect decision without a target")
    response = RedirectResponse(
        url=decision.redirect_to,
        status_code=decision.status_code or REDIRECT_STATUS,
    )
    response.headers[DENIED_HEADER] = "true"
    return response


def build_denied_response(message: str, status_code: int) -> JSONResponse:
    """Build the terminal "must authenticate" response.

    Body:

    .. code-block:: json

        {
          "error": {
            "message": "You must be logged in to access this functionality.",
            "code": "login_required"
          }
        }
    """
    code = "forbidden" if status_code == FORBIDDEN_STATUS else "login_required"
    response = JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "code": code}},
    )
    response.headers[DENIED_HEADER] = "true"
    return response


def build_upstream_unavailable_response(
    request_id: str,
    reason: str = "",
) -> JSONResponse:
    """Build the HTTP 502 response for platform connectivity failures.

    Args:
        request_id: ULID for this request, for log correlation.
        reason:     Short reason (exception class name). MUST NOT contain
                    credentials or internal config details.
    """
    detail: Optional[str] = reason if reason else None
    response = JSONResponse(
        status_code=502,
        content={
            "error": {
                "message": "Analytics platform unavailable",
                "code": "upstream_unavailable",
                "detail": detail,
            }
        },
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def build_config_error_response() -> JSONResponse:
    """HTTP 500 for an unusable ``platform.upstream``. Details stay in the logs."""
    return JSONResponse(
        status_code=500,
        content={"error": {"message": "Internal configuration error", "code": "config_error"}},
    )
