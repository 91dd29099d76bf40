"""Anonymous-access gate.

AccessGate decides, once per root request, whether an anonymous caller may
proceed. Evaluation order:

  1. Authenticated caller                     → ALLOW
  2. Referrer allowance OR request allowance  → ALLOW
  3. Denied API request                       → force 403 (always, even if a
                                                redirect follows)
  4. Valid redirect target configured         → REDIRECT
  5. Otherwise                                → DENIED ("must be logged in")

Steps 3 and 4 are not exclusive: a denied API request with a redirect
configured yields a REDIRECT carrying status 403.
"""

from __future__ import annotations

from typing import Optional

from anonguard.access.context import DispatchContext, GateState, RequestContext
from anonguard.access.policy import AccessPolicy
from anonguard.access.referrer import is_referrer_allowed
from anonguard.access.requests import is_request_allowed
from anonguard.constants import FORBIDDEN_STATUS, LOGIN_REQUIRED_MESSAGE, LOGIN_REQUIRED_STATUS
from anonguard.models.decision import Action, AllowReason, Decision
from anonguard.utils.logger import get_logger

logger = get_logger(__name__)


class AccessDeniedError(Exception):
    """The anonymous caller must authenticate. Fatal to the current request."""

    def __init__(self, message: str = LOGIN_REQUIRED_MESSAGE, status_code: int = LOGIN_REQUIRED_STATUS) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AccessGate:
    """Evaluates the anonymous-access policy for root requests."""

    def evaluate(
        self,
        request: RequestContext,
        policy: AccessPolicy,
        *,
        is_anonymous: bool,
        is_api_request: bool,
    ) -> Decision:
        """Compute the Decision for one request. Pure apart from logging."""

        if not is_anonymous:
            return Decision.allow(AllowReason.AUTHENTICATED)

        if is_referrer_allowed(request.referrer, request.platform_host, policy.allowed_referrers):
            logger.debug("Anonymous request allowed by referrer")
            return Decision.allow(AllowReason.REFERRER)

        if is_request_allowed(request.params, policy.allowed_requests):
            logger.debug("Anonymous request allowed by request parameters")
            return Decision.allow(AllowReason.REQUEST)

        status_code: Optional[int] = FORBIDDEN_STATUS if is_api_request else None

        if policy.redirect_unallowed_to is not None:
            logger.info(
                "Anonymous request denied — redirecting",
                redirect_to=policy.redirect_unallowed_to,
                status_code=status_code,
            )
            return Decision.redirect(policy.redirect_unallowed_to, status_code=status_code)

        logger.info("Anonymous request denied", api_request=is_api_request)
        return Decision.denied(LOGIN_REQUIRED_MESSAGE, status_code=status_code)

    def dispatch(
        self,
        ctx: DispatchContext,
        request: RequestContext,
        policy: AccessPolicy,
        *,
        is_anonymous: bool,
        is_api_request: bool,
    ) -> Optional[Decision]:
        """Run the gate for one dispatch invocation.

        Every call counts as an invocation. Only the root invocation evaluates;
        nested invocations return None and leave the context untouched.
        """
        ctx.enter()
        if not ctx.is_root or ctx.state is not GateState.NOT_EVALUATED:
            return None

        ctx.state = GateState.EVALUATING
        decision = self.evaluate(
            request,
            policy,
            is_anonymous=is_anonymous,
            is_api_request=is_api_request,
        )
        ctx.decision = decision
        ctx.state = GateState.RESOLVED
        return decision

    @staticmethod
    def enforce(decision: Decision) -> None:
        """Raise AccessDeniedError unless the decision lets the request proceed.

        ALLOW passes and REDIRECT is answered by the caller; DENIED and any
        unrecognised action raise.
        """
        if decision.action not in (Action.ALLOW, Action.REDIRECT):
            raise AccessDeniedError(
                decision.message or LOGIN_REQUIRED_MESSAGE,
                status_code=decision.status_code or LOGIN_REQUIRED_STATUS,
            )
