"""AnonGuard allow-list patterns and matching.

Public API:
    AllowPattern — one decoded allow-list entry
    PatternList  — ordered tuple of AllowPattern
    sanitize     — normalize raw config entries into a PatternList
    matches      — OR-of-AND match of a ParamSet against a PatternList
"""
from anonguard.allowlist.matcher import find_match, matches, pattern_matches
from anonguard.allowlist.patterns import AllowPattern, PatternList, merge, sanitize, sanitize_entries

__all__ = [
    "AllowPattern",
    "PatternList",
    "find_match",
    "matches",
    "merge",
    "pattern_matches",
    "sanitize",
    "sanitize_entries",
]
