"""Programmatic uvicorn entry point for AnonGuard.

Reads host and port from the loaded config (127.0.0.1:8080 by default) and
starts uvicorn with hardened defaults.

Usage:
    python -m anonguard.run
    anonguard                    # via pyproject.toml [project.scripts]
"""

from __future__ import annotations

import uvicorn

from anonguard.config import load_config

# Maximum number of concurrent connections; HTTP 503 when exceeded.
# Matches the httpx pool size (POOL_MAX_CONNECTIONS in proxy/engine.py).
UVICORN_LIMIT_CONCURRENCY: int = 100

# OS-level TCP connection backlog queue size.
UVICORN_BACKLOG: int = 50

# HTTP keep-alive timeout in seconds.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the AnonGuard gateway.

    Raises:
        SystemExit: Propagated from load_config() on config parse errors.
    """
    config = load_config()

    uvicorn.run(
        "anonguard.main:app",
        host=config.proxy.host,
        port=config.proxy.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
