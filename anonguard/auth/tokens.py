"""API token authentication for AnonGuard.

Decides whether the caller is anonymous. A caller is authenticated when it
presents a token whose bcrypt hash is listed in ``auth.tokens``:

  1. ``token_auth`` query parameter     (the platform's own API convention)
  2. ``Authorization: Bearer <token>``  (fallback)

Anything else (no token, unknown token, malformed hash) is anonymous. Token
plaintext is never stored; the config file holds a bcrypt hash plus the
token's first TOKEN_ID_LENGTH characters as a lookup id, so bcrypt runs
against one hash at most per request.

Generate the config entry for a token:
    anonguard-hash-token <token> --login <login>
"""

from __future__ import annotations

import argparse
import re
import threading
from collections import OrderedDict
from typing import Optional, Sequence

import bcrypt

from anonguard.config import TokenEntry
from anonguard.constants import TOKEN_AUTH_PARAM, TOKEN_ID_LENGTH
from anonguard.models.params import ParamSet
from anonguard.utils.logger import get_logger

logger = get_logger(__name__)

#: bcrypt cost factor for newly generated hashes
BCRYPT_ROUNDS: int = 12

#: Max number of validated tokens kept in memory
CACHE_MAXSIZE: int = 1000

_BEARER_RE = re.compile(r"^Bearer\s+(\S+)$", re.IGNORECASE)


def hash_token(token: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Return the bcrypt hash of ``token`` for use in ``auth.tokens``."""
    return bcrypt.hashpw(token.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def extract_token(params: ParamSet, authorization: Optional[str]) -> Optional[str]:
    """Return the presented token, or None. Query parameter wins over header."""
    token = params.lookup(TOKEN_AUTH_PARAM)
    if token:
        return token
    if not authorization:
        return None
    m = _BEARER_RE.match(authorization.strip())
    return m.group(1) if m else None


class TokenAuthenticator:
    """Resolves a presented token to a login using bcrypt-hashed entries.

    Entries are keyed by token_id: a presented token is checked against the
    single entry sharing its first TOKEN_ID_LENGTH characters, or rejected
    without running bcrypt. Successful validations are kept in an LRU cache
    so bcrypt runs once per token, not once per request. Replacing the
    entries clears the cache.
    """

    def __init__(self, entries: Sequence[TokenEntry] = ()) -> None:
        self._entries: dict[str, TokenEntry] = _index(entries)
        self._cache: OrderedDict[str, str] = OrderedDict()
        self._lock = threading.Lock()

    def set_entries(self, entries: Sequence[TokenEntry]) -> None:
        with self._lock:
            self._entries = _index(entries)
            self._cache.clear()
        logger.info("API tokens loaded", token_count=len(self._entries))

    def authenticate(self, token: Optional[str]) -> Optional[str]:
        """Return the login owning ``token``, or None when unknown."""
        if not token or len(token) <= TOKEN_ID_LENGTH:
            return None

        with self._lock:
            cached = self._cache.get(token)
            if cached is not None:
                self._cache.move_to_end(token)
                return cached
            entry = self._entries.get(token_id(token))

        if entry is None:
            return None

        try:
            if not bcrypt.checkpw(token.encode(), entry.token_hash.encode()):
                return None
        except ValueError as exc:
            logger.warning("Malformed token hash in config", login=entry.login, error=str(exc))
            return None

        self._remember(token, entry.login)
        return entry.login

    def is_anonymous(self, params: ParamSet, authorization: Optional[str]) -> bool:
        return self.authenticate(extract_token(params, authorization)) is None

    def _remember(self, token: str, login: str) -> None:
        with self._lock:
            if len(self._cache) >= CACHE_MAXSIZE:
                self._cache.popitem(last=False)
            self._cache[token] = login


def _index(entries: Sequence[TokenEntry]) -> dict[str, TokenEntry]:
    return {entry.token_id: entry for entry in entries}


def token_id(token: str) -> str:
    """Return the lookup id stored next to the hash in ``auth.tokens``."""
    return token[:TOKEN_ID_LENGTH]


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Print a ready-to-paste ``auth.tokens`` entry for a token."""
    parser = argparse.ArgumentParser(description="Print the auth.tokens entry for an API token.")
    parser.add_argument("token")
    parser.add_argument("--login", default="api")
    parser.add_argument("--rounds", type=int, default=BCRYPT_ROUNDS)
    args = parser.parse_args(argv)
    if len(args.token) <= TOKEN_ID_LENGTH:
        parser.error(f"token must be longer than {TOKEN_ID_LENGTH} characters")
    print(f"- login: \"{args.login}\"")
    print(f"  token_id: \"{token_id(args.token)}\"")
    print(f"  token_hash: \"{hash_token(args.token, rounds=args.rounds)}\"")


if __name__ == "__main__":
    main()
