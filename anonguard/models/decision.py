"""Access decision contract.

A Decision is produced once per root request by the access gate and consumed by
the HTTP middleware to build the response. ``status_code`` is a side effect
independent of ``action``: a denied API request carries 403 even when it is
also redirected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Action(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    DENIED = "denied"


class AllowReason(str, Enum):
    AUTHENTICATED = "authenticated"
    REFERRER = "referrer"
    REQUEST = "request"


@dataclass(frozen=True)
class Decision:
    """Outcome of the anonymous-access check for one root request.

    Fields:
        action:      ALLOW, REDIRECT or DENIED.
        status_code: Response status forced as a side effect (403 for denied
                     API requests), None when untouched.
        redirect_to: Target URL when action is REDIRECT.
        message:     Failure message when action is DENIED.
        allowed_by:  Which path granted access when action is ALLOW.
    """

    action: Action
    status_code: Optional[int] = None
    redirect_to: Optional[str] = None
    message: Optional[str] = None
    allowed_by: Optional[AllowReason] = None

    @classmethod
    def allow(cls, reason: AllowReason) -> "Decision":
        return cls(action=Action.ALLOW, allowed_by=reason)

    @classmethod
    def redirect(cls, target: str, status_code: Optional[int] = None) -> "Decision":
        return cls(action=Action.REDIRECT, redirect_to=target, status_code=status_code)

    @classmethod
    def denied(cls, message: str, status_code: Optional[int] = None) -> "Decision":
        return cls(action=Action.DENIED, message=message, status_code=status_code)

    @property
    def is_allowed(self) -> bool:
        return self.action is Action.ALLOW
