"""Request-scoped state for the access gate.

DispatchContext replaces a process-wide nested-invocation counter. One context
exists per root request; every dispatch through the gate (the root request and
any internal sub-dispatch it triggers) shares it through a ContextVar, so
concurrent requests on the same worker never see each other's counter.

Usage (RestrictAnonymousAccessMiddleware):
    if current_dispatch_context() is None:   # root request
        token = begin_request()
        try:
            ...                            # dispatch, including any sub-dispatch
        finally:
            end_request(token)
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from anonguard.constants import API_ACTIONS, API_MODULE
from anonguard.models.decision import Decision
from anonguard.models.params import ParamSet


class GateState(str, Enum):
    NOT_EVALUATED = "not_evaluated"
    EVALUATING = "evaluating"
    RESOLVED = "resolved"


@dataclass
class DispatchContext:
    """Invocation counter and decision of one root request."""

    invocations: int = 0
    state: GateState = GateState.NOT_EVALUATED
    decision: Optional[Decision] = None

    def enter(self) -> int:
        self.invocations += 1
        return self.invocations

    @property
    def is_root(self) -> bool:
        return self.invocations == 1


dispatch_context_var: ContextVar[Optional[DispatchContext]] = ContextVar(
    "dispatch_context", default=None
)


def current_dispatch_context() -> Optional[DispatchContext]:
    return dispatch_context_var.get()


def begin_request() -> Token:
    """Install a fresh DispatchContext for a new root request."""
    return dispatch_context_var.set(DispatchContext())


def end_request(token: Token) -> None:
    dispatch_context_var.reset(token)


@dataclass(frozen=True)
class RequestContext:
    """What the gate knows about the request under evaluation.

    Fields:
        params:        The request's query parameters.
        referrer:      Raw ``Referer`` header, None when absent.
        platform_host: Host component of the platform's own base URL.
    """

    params: ParamSet = field(default_factory=ParamSet)
    referrer: Optional[str] = None
    platform_host: str = ""


def is_api_request(params: ParamSet) -> bool:
    """True when the request targets the platform's API surface, not its UI."""
    module = params.lookup("module")
    if module != API_MODULE:
        return False
    return (params.lookup("action") or "") in API_ACTIONS
