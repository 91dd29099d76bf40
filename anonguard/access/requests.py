"""Direct request-parameter allowance.

The request's own query parameters are matched against the user-configured
allowed requests followed by the built-in entries that keep the login page and
its assets reachable.
"""

from __future__ import annotations

from anonguard.allowlist.matcher import matches
from anonguard.allowlist.patterns import PatternList, merge, sanitize
from anonguard.constants import ALWAYS_ALLOWED_REQUESTS
from anonguard.models.params import ParamSet

_BUILTIN_PATTERNS: PatternList = sanitize(list(ALWAYS_ALLOWED_REQUESTS))


def request_patterns(configured: PatternList) -> PatternList:
    """User-configured patterns followed by the built-ins, duplicates dropped."""
    return merge(configured, _BUILTIN_PATTERNS)


def is_request_allowed(actual: ParamSet, configured: PatternList) -> bool:
    return matches(actual, request_patterns(configured))
