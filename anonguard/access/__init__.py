"""AnonGuard anonymous-access gate.

Public API:
    AccessGate         — evaluates the policy once per root request
    AccessDeniedError  — raised by AccessGate.enforce() for DENIED decisions
    AccessPolicy       — validated `access:` config section
    PolicyLoader       — holds / hot-reloads the current AccessPolicy
    RequestContext     — params + referrer + platform host of one request
    DispatchContext    — request-scoped invocation counter
"""
from anonguard.access.context import (
    DispatchContext,
    GateState,
    RequestContext,
    begin_request,
    current_dispatch_context,
    end_request,
    is_api_request,
)
from anonguard.access.decision import AccessDeniedError, AccessGate
from anonguard.access.loader import PolicyLoader
from anonguard.access.policy import AccessPolicy, is_valid_url
from anonguard.access.referrer import is_referrer_allowed
from anonguard.access.requests import is_request_allowed, request_patterns

__all__ = [
    "AccessDeniedError",
    "AccessGate",
    "AccessPolicy",
    "DispatchContext",
    "GateState",
    "PolicyLoader",
    "RequestContext",
    "begin_request",
    "current_dispatch_context",
    "end_request",
    "is_api_request",
    "is_referrer_allowed",
    "is_request_allowed",
    "is_valid_url",
    "request_patterns",
]
