"""Allow-list pattern normalization for AnonGuard.

Turns raw, untrusted configuration entries into canonical allow-list patterns.
Each entry is a URL query string naming the parameters a request must carry:

    "module=API&method=SitesManager.getSitesWithAtLeastViewAccess"

Normalization never raises: a non-list value degrades to an empty list and
non-string items are skipped, both with a WARNING.
"""

from __future__ import annotations

from dataclasses import dataclass

from anonguard.models.params import ParamSet
from anonguard.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AllowPattern:
    """One allow-list entry.

    ``source`` is the trimmed configuration string; ``params`` is its decoded
    form. Two patterns with the same source are the same pattern.
    """

    source: str
    params: ParamSet

    @classmethod
    def parse(cls, source: str) -> "AllowPattern":
        return cls(source=source, params=ParamSet.from_query(source))


PatternList = tuple[AllowPattern, ...]


def sanitize_entries(raw: object, *, field: str = "allow-list") -> list[str]:
    """Trim entries, drop empties and exact duplicates (first occurrence wins).

    Args:
        raw:   Raw config value. Anything that is not a list or tuple yields [].
        field: Config field name, used in log messages only.
    """
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        logger.warning(
            "Config value is not a list — ignoring",
            field=field,
            actual_type=type(raw).__name__,
        )
        return []

    seen: set[str] = set()
    entries: list[str] = []
    for i, item in enumerate(raw):
        if not isinstance(item, str):
            logger.warning(
                "Config entry is not a string — skipping",
                field=field,
                index=i,
                actual_type=type(item).__name__,
            )
            continue
        entry = item.strip()
        if not entry or entry in seen:
            continue
        seen.add(entry)
        entries.append(entry)
    return entries


def sanitize(raw: object, *, field: str = "allow-list") -> PatternList:
    """Normalize raw entries and decode each one into an AllowPattern."""
    return tuple(AllowPattern.parse(entry) for entry in sanitize_entries(raw, field=field))


def merge(*pattern_lists: PatternList) -> PatternList:
    """Concatenate pattern lists, dropping repeated sources."""
    seen: set[str] = set()
    merged: list[AllowPattern] = []
    for patterns in pattern_lists:
        for pattern in patterns:
            if pattern.source in seen:
                continue
            seen.add(pattern.source)
            merged.append(pattern)
    return tuple(merged)
