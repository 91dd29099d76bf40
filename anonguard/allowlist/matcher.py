"""Allow-list matching for AnonGuard.

OR-of-AND semantics: a parameter set is allowed when it satisfies EVERY
key/value pair of AT LEAST ONE pattern. Values compare case-insensitively;
keys compare exactly. First matching pattern wins.
"""

from __future__ import annotations

from typing import Optional

from anonguard.allowlist.patterns import AllowPattern, PatternList
from anonguard.models.params import ParamSet


def pattern_matches(actual: ParamSet, pattern: AllowPattern) -> bool:
    """Return True if ``actual`` carries every parameter of ``pattern``."""
    for name, expected in pattern.params.items():
        value = actual.lookup(name)
        if value is None:
            return False
        if value.lower() != expected.lower():
            return False
    return True


def find_match(actual: ParamSet, allowed: PatternList) -> Optional[AllowPattern]:
    """Return the first pattern ``actual`` satisfies, or None."""
    for pattern in allowed:
        if pattern_matches(actual, pattern):
            return pattern
    return None


def matches(actual: ParamSet, allowed: PatternList) -> bool:
    """Return True if any pattern in ``allowed`` fully matches ``actual``.

    An empty ``allowed`` list never matches.
    """
    return find_match(actual, allowed) is not None
