"""Health endpoint for AnonGuard.

GET /health — 503 before ``app.state.ready`` is set during lifespan startup,
200 with the active policy summary afterwards. Exempt from the access gate by
default (``access.exempt_paths``).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from anonguard.access.loader import PolicyLoader
from anonguard.config import Config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check.

    Response body (200):
        {
          "status": "ok",
          "platform_host": "analytics.example",
          "allowed_requests": 3,
          "allowed_referrers": 1,
          "redirect_enabled": false
        }
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "AnonGuard is starting up."},
        )

    config: Config = request.app.state.config
    loader: PolicyLoader = request.app.state.policy_loader
    policy = loader.get_policy()
    return {
        "status": "ok",
        "platform_host": config.platform.host,
        "allowed_requests": len(policy.allowed_requests),
        "allowed_referrers": len(policy.allowed_referrers),
        "redirect_enabled": policy.redirect_unallowed_to is not None,
    }
