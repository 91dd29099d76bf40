"""Anonymous-access enforcement middleware for AnonGuard.

Runs the AccessGate on every request before it reaches the proxy engine.

Root vs nested dispatch:
  - The first pass through this middleware for an external request opens a
    fresh DispatchContext (and binds a request id for logging).
  - Any further pass within the same request — an internal sub-dispatch that
    re-enters the application — finds the context already open, counts as a
    nested invocation and is never re-evaluated.

Decision mapping:
  ALLOW    → call_next()
  REDIRECT → 302 to access.redirect_unallowed_to (403 + Location for API requests)
  DENIED   → 401 login_required JSON (403 forbidden for API requests)

Paths listed in access.exempt_paths (default: /health) bypass the gate.
Fails closed with 503 while the gateway is still starting.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from anonguard.access.context import (
    DispatchContext,
    RequestContext,
    begin_request,
    current_dispatch_context,
    end_request,
    is_api_request,
)
from anonguard.access.decision import AccessDeniedError, AccessGate
from anonguard.access.loader import PolicyLoader
from anonguard.auth.tokens import TokenAuthenticator
from anonguard.config import Config
from anonguard.models.decision import Action
from anonguard.models.params import ParamSet
from anonguard.models.responses import build_denied_response, build_redirect_response
from anonguard.utils.logger import clear_request_id, get_logger, set_request_id
from anonguard.utils.ulid import generate_ulid

logger = get_logger(__name__)

_STARTING_BODY: dict = {
    "error": {
        "message": "AnonGuard is starting up.",
        "code": "starting",
    }
}


class RestrictAnonymousAccessMiddleware(BaseHTTPMiddleware):
    """Deny anonymous requests that no allow-list pattern covers.

    Reads its collaborators from app.state (set up by the lifespan):
      config, policy_loader, authenticator, access_gate.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        ctx = current_dispatch_context()
        if ctx is not None:
            return await self._guard(request, call_next, ctx)

        token = begin_request()
        request_id = generate_ulid()
        set_request_id(request_id)
        request.state.request_id = request_id
        try:
            return await self._guard(request, call_next, current_dispatch_context())  # type: ignore[arg-type]
        finally:
            clear_request_id()
            end_request(token)

    async def _guard(self, request: Request, call_next, ctx: DispatchContext) -> Response:
        state = request.app.state
        if not getattr(state, "ready", False):
            return JSONResponse(status_code=503, content=_STARTING_BODY)

        loader: PolicyLoader = state.policy_loader
        policy = loader.get_policy()
        if policy.is_exempt(request.url.path):
            return await call_next(request)

        config: Config = state.config
        authenticator: TokenAuthenticator = state.authenticator
        gate: AccessGate = state.access_gate

        params = ParamSet(request.query_params.items())
        request_ctx = RequestContext(
            params=params,
            referrer=request.headers.get("referer"),
            platform_host=config.platform.host,
        )
        decision = gate.dispatch(
            ctx,
            request_ctx,
            policy,
            is_anonymous=authenticator.is_anonymous(params, request.headers.get("authorization")),
            is_api_request=is_api_request(params),
        )

        # Nested invocation: the root request already passed the gate
        if decision is None:
            return await call_next(request)

        try:
            gate.enforce(decision)
        except AccessDeniedError as exc:
            logger.info(
                "Anonymous access denied",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
            )
            return build_denied_response(exc.message, exc.status_code)

        if decision.action is Action.REDIRECT:
            return build_redirect_response(decision)
        return await call_next(request)
