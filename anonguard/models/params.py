"""ParamSet — immutable query-parameter mapping.

A ParamSet holds either the parameters of the incoming request or the
parameters of a single allow-list entry. Values are always strings; repeated
keys in a query string keep the LAST value.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Iterable, Optional
from urllib.parse import parse_qsl


class ParamSet(Mapping[str, str]):
    """Read-only name → value mapping of query parameters."""

    __slots__ = ("_params",)

    def __init__(self, params: Mapping[str, str] | Iterable[tuple[str, str]] = ()) -> None:
        self._params: dict[str, str] = {str(k): str(v) for k, v in dict(params).items()}

    @classmethod
    def from_query(cls, query: str) -> "ParamSet":
        """Decode a URL query string (``a=1&b=2``) into a ParamSet.

        Keys and values are URL-decoded (``+`` becomes a space). Keys without a
        value (``a&b=1``) map to an empty string.
        """
        if not query:
            return cls()
        return cls(parse_qsl(query, keep_blank_values=True))

    def lookup(self, name: str) -> Optional[str]:
        """Return the value for ``name``, or None when the parameter is absent."""
        return self._params.get(name)

    def __getitem__(self, name: str) -> str:
        return self._params[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._params)

    def __len__(self) -> int:
        return len(self._params)

    def __repr__(self) -> str:
        return f"ParamSet({self._params!r})"
