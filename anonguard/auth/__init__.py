"""AnonGuard caller authentication.

Public API:
  - TokenAuthenticator — resolves token_auth / Bearer tokens against bcrypt hashes
  - extract_token()    — pull the presented token out of a request
  - hash_token()       — produce a bcrypt hash for the config file
  - token_id()         — the non-secret lookup id stored next to the hash
"""

from __future__ import annotations

from anonguard.auth.tokens import TokenAuthenticator, extract_token, hash_token, token_id

__all__ = [
    "TokenAuthenticator",
    "extract_token",
    "hash_token",
    "token_id",
]
