"""ULID generation for AnonGuard request ids.

Every request that passes the gateway gets a 26-character ULID used as the
``X-AnonGuard-Request-ID`` header value and as the ``request_id`` bound into
structured log entries.

Uses the ``python-ulid`` library. Do not hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Example::

        request_id = generate_ulid()
        # "01KJ0JRVHYA7KX32VPN5ZSCTMV"
        assert len(request_id) == 26
    """
    return str(ULID())
