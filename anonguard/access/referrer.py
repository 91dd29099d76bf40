"""Referrer-based allowance.

An anonymous request is allowed when its ``Referer`` points back to a page of
the platform itself whose query string matches an allowed-referrer pattern,
e.g. a public dashboard embedding widgets that load through sub-requests.

The header is attacker-controlled: it is sanitized before parsing, and any
parse failure simply skips the referrer path (never an error).
"""

from __future__ import annotations

import html
import re
from typing import Optional
from urllib.parse import urlsplit

from anonguard.allowlist.matcher import matches
from anonguard.allowlist.patterns import PatternList
from anonguard.models.params import ParamSet
from anonguard.utils.logger import get_logger

logger = get_logger(__name__)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_input_value(value: Optional[str]) -> str:
    """Apply the platform's standard input sanitization to a raw header value.

    Control characters (NUL, CR, LF, ...) are removed, surrounding whitespace
    trimmed and ``& < > "`` escaped. Single quotes are left alone: their
    numeric entity would put a ``#`` into the URL and cut the query short.
    """
    if not value:
        return ""
    cleaned = _CONTROL_CHARS_RE.sub("", value).strip()
    return html.escape(cleaned, quote=False).replace('"', "&quot;")


def referrer_params(referrer: Optional[str], platform_host: str) -> Optional[ParamSet]:
    """Return the query parameters of a same-host referrer, or None.

    None means the referrer path does not apply: header missing or
    unparseable, foreign host, or no query string.
    """
    sanitized = sanitize_input_value(referrer)
    if not sanitized or not platform_host:
        return None

    try:
        parts = urlsplit(sanitized)
        host = parts.hostname
    except ValueError:
        logger.debug("Referrer is not a parseable URL — skipping", referrer=sanitized)
        return None

    if not host or not parts.query:
        return None

    # Exact host match. A prefix match would accept analytics.example.evil.test
    if host.lower() != platform_host.lower():
        logger.debug("Referrer host does not match platform host", referrer_host=host)
        return None

    return ParamSet.from_query(html.unescape(parts.query))


def is_referrer_allowed(
    referrer: Optional[str],
    platform_host: str,
    allowed_referrers: PatternList,
) -> bool:
    """Return True if the referrer is a same-host page matching an allowed pattern."""
    if not allowed_referrers:
        return False
    params = referrer_params(referrer, platform_host)
    if params is None:
        return False
    return matches(params, allowed_referrers)
