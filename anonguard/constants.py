"""Shared constants for AnonGuard.

Status codes, built-in allow-list entries and fixed messages used across
modules are defined here. No magic values in other modules — import from here.
"""

# ─── Built-in allow-list ──────────────────────────────────────────────────────

# Requests every anonymous caller may make, whatever the configuration says.
# Without these the login page (and the assets it loads) would be unreachable.
# Merged AFTER the user-configured entries.
ALWAYS_ALLOWED_REQUESTS: tuple[str, ...] = (
    "module=Login",
    "module=Proxy&action=getCss",
    "module=Proxy&action=getCoreJs",
    "module=Proxy&action=getNonCoreJs",
)

# ─── API surface detection ────────────────────────────────────────────────────

# A root request targets the API surface when module=API and action is
# absent or one of these values.
API_MODULE: str = "API"
API_ACTIONS: frozenset[str] = frozenset({"", "index"})

# ─── Denial responses ─────────────────────────────────────────────────────────

# Status set on a denied API request, before any redirect is considered.
FORBIDDEN_STATUS: int = 403

# Status of the terminal "must authenticate" failure for non-API requests.
LOGIN_REQUIRED_STATUS: int = 401

# Status of a plain redirect to the configured target.
REDIRECT_STATUS: int = 302

LOGIN_REQUIRED_MESSAGE: str = "You must be logged in to access this functionality."

# ─── Request plumbing ─────────────────────────────────────────────────────────

# Query parameter carrying the platform's API token.
TOKEN_AUTH_PARAM: str = "token_auth"

REQUEST_ID_HEADER: str = "X-AnonGuard-Request-ID"

# Leading characters of a token stored in clear as its lookup id, so a
# presented token is checked against one bcrypt hash at most.
TOKEN_ID_LENGTH: int = 8
