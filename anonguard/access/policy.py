"""AccessPolicy — the validated form of the `access:` config section.

Built once per config (re)load from the raw AccessConfig and shared read-only
by every request. All validation failures degrade locally:

  - allowed_requests / allowed_referrers not a list → empty list
  - redirect_unallowed_to not a string or not an absolute URL → no redirect
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from anonguard.allowlist.patterns import PatternList, sanitize
from anonguard.config import AccessConfig
from anonguard.utils.logger import get_logger

logger = get_logger(__name__)

# RFC 3986 scheme: ALPHA *( ALPHA / DIGIT / "+" / "-" / "." )
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")

# Whitespace and control characters are never valid inside a URL
_INVALID_URL_CHARS_RE = re.compile(r"[\x00-\x20\x7f]")


def is_valid_url(value: object) -> bool:
    """Strict absolute-URL syntax check: scheme and host are both required."""
    if not isinstance(value, str) or not value:
        return False
    if _INVALID_URL_CHARS_RE.search(value):
        return False
    try:
        parts = urlsplit(value)
        host = parts.hostname
        # .port raises ValueError on a non-numeric or out-of-range port
        parts.port
    except ValueError:
        return False
    return bool(_SCHEME_RE.match(parts.scheme)) and bool(host)


@dataclass(frozen=True)
class AccessPolicy:
    """Validated anonymous-access rules.

    Fields:
        allowed_requests:      User-configured request patterns (built-ins are
                               merged at evaluation time).
        allowed_referrers:     Referrer query patterns.
        redirect_unallowed_to: Redirect target for denied requests, or None.
        exempt_paths:          Gateway paths never subject to the check.
    """

    allowed_requests: PatternList = ()
    allowed_referrers: PatternList = ()
    redirect_unallowed_to: Optional[str] = None
    exempt_paths: tuple[str, ...] = ("/health",)

    @classmethod
    def from_config(cls, access: AccessConfig) -> "AccessPolicy":
        redirect = access.redirect_unallowed_to
        if redirect is not None and not is_valid_url(redirect):
            logger.warning(
                "access.redirect_unallowed_to is not a valid URL — redirect disabled",
                value=redirect if isinstance(redirect, str) else type(redirect).__name__,
            )
            redirect = None

        return cls(
            allowed_requests=sanitize(access.allowed_requests, field="access.allowed_requests"),
            allowed_referrers=sanitize(access.allowed_referrers, field="access.allowed_referrers"),
            redirect_unallowed_to=redirect,
            exempt_paths=tuple(access.exempt_paths),
        )

    def is_exempt(self, path: str) -> bool:
        return path in self.exempt_paths
