"""Config loading for AnonGuard.

Reads `.anonguard/config.yaml` (or `~/.anonguard/config.yaml`).
Raises SystemExit on parse errors or missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. ANONGUARD_CONFIG environment variable (if set)
  3. `.anonguard/config.yaml` (working directory — for development)
  4. `~/.anonguard/config.yaml` (home directory — for production deployments)

Environment variable overrides:
  ANONGUARD_PORT     — overrides proxy.port
  ANONGUARD_BASE_URL — overrides platform.base_url

The `access:` section is NOT validated here. It is kept as raw values in
AccessConfig and normalized by anonguard.access.policy, where malformed
entries degrade to empty lists instead of stopping the gateway.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional
from urllib.parse import urlsplit

import yaml

from anonguard.constants import TOKEN_ID_LENGTH
from anonguard.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# Default config search paths (ANONGUARD_CONFIG env var prepended at runtime)
DEFAULT_CONFIG_PATHS = [
    ".anonguard/config.yaml",
    os.path.expanduser("~/.anonguard/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class PlatformConfig:
    """The analytics platform behind the gateway.

    base_url: Public URL of the platform. Its host is the only host accepted
              for referrer-based allowance.
    upstream: Where allowed requests are forwarded. Defaults to base_url.
    """

    base_url: str = "http://localhost"
    upstream: Optional[str] = None

    @property
    def host(self) -> str:
        """Host component of base_url, lowercased ("" when unparseable)."""
        try:
            return urlsplit(self.base_url).hostname or ""
        except ValueError:
            return ""

    @property
    def upstream_url(self) -> str:
        return (self.upstream or self.base_url).rstrip("/")


@dataclass
class AccessConfig:
    """Raw `access:` section — untrusted, validated by AccessPolicy.from_config()."""

    allowed_requests: Any = None
    allowed_referrers: Any = None
    redirect_unallowed_to: Any = None
    exempt_paths: list[str] = field(default_factory=lambda: ["/health"])

    @classmethod
    def from_dict(cls, raw: object) -> "AccessConfig":
        """Copy the known keys of an `access:` mapping; anything else yields defaults."""
        if not isinstance(raw, dict):
            return cls()
        exempt_paths = raw.get("exempt_paths", ["/health"])
        if not isinstance(exempt_paths, list):
            logger.warning(
                "access.exempt_paths is not a list — using default",
                actual_type=type(exempt_paths).__name__,
            )
            exempt_paths = ["/health"]
        return cls(
            allowed_requests=raw.get("allowed_requests"),
            allowed_referrers=raw.get("allowed_referrers"),
            redirect_unallowed_to=raw.get("redirect_unallowed_to"),
            exempt_paths=[str(p) for p in exempt_paths],
        )


@dataclass
class TokenEntry:
    """One API token accepted by the gateway (bcrypt hash, never plaintext).

    token_id: The token's first TOKEN_ID_LENGTH characters, used to pick the
              single hash a presented token is checked against.
    """

    login: str
    token_id: str
    token_hash: str


@dataclass
class AuthConfig:
    tokens: list[TokenEntry] = field(default_factory=list)


@dataclass
class ProxyConfig:
    """Gateway binding configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    """Root configuration object populated from .anonguard/config.yaml.

    All fields have safe defaults — AnonGuard can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    platform: PlatformConfig = field(default_factory=PlatformConfig)
    access: AccessConfig = field(default_factory=AccessConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    path: Optional[str] = None  # Path to the loaded config file (for hot-reload)

    @classmethod
    def defaults(cls) -> "Config":
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On a wrongly typed platform or proxy value, or a
                           malformed auth.tokens entry.
        """
        # ── Platform ──────────────────────────────────────────────────────────
        platform_raw = _section(raw, "platform")
        base_url = platform_raw.get("base_url", "http://localhost")
        if not isinstance(base_url, str) or not base_url:
            _exit_with_config_error("platform.base_url must be a non-empty string.")
        upstream = platform_raw.get("upstream")
        if upstream is not None and (not isinstance(upstream, str) or not upstream):
            _exit_with_config_error("platform.upstream must be a non-empty string.")
        platform = PlatformConfig(base_url=base_url, upstream=upstream)

        # ── Access (kept raw) ─────────────────────────────────────────────────
        access = AccessConfig.from_dict(raw.get("access"))

        # ── Auth ──────────────────────────────────────────────────────────────
        try:
            tokens = parse_token_entries(_section(raw, "auth").get("tokens"))
        except ValueError as exc:
            _exit_with_config_error(str(exc))

        # ── Proxy ─────────────────────────────────────────────────────────────
        proxy_raw = _section(raw, "proxy")
        host = proxy_raw.get("host", "127.0.0.1")
        if not isinstance(host, str) or not host:
            _exit_with_config_error("proxy.host must be a non-empty string.")
        port = proxy_raw.get("port", 8080)
        # bool is an int subclass; "port: yes" is not a port
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
            _exit_with_config_error("proxy.port must be an integer between 1 and 65535.")
        proxy = ProxyConfig(host=host, port=port)

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            platform=platform,
            access=access,
            auth=AuthConfig(tokens=tokens),
            proxy=proxy,
            path=path,
        )


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name)
    return value if isinstance(value, dict) else {}


def _exit_with_config_error(message: str) -> NoReturn:
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)


def parse_token_entries(raw: object) -> list[TokenEntry]:
    """Validate the `auth.tokens` list.

    Raises:
        ValueError: On a non-list value, an entry missing login / token_id /
                    token_hash, a token_id of the wrong length, or a token_id
                    listed twice.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("auth.tokens must be a list.")

    entries: list[TokenEntry] = []
    seen_ids: set[str] = set()
    for i, item in enumerate(raw):
        if not isinstance(item, dict) or not all(
            isinstance(item.get(key), str) and item.get(key)
            for key in ("login", "token_id", "token_hash")
        ):
            raise ValueError(
                f"auth.tokens[{i}] must be a mapping with string "
                "'login', 'token_id' and 'token_hash' fields."
            )
        token_id = item["token_id"]
        if len(token_id) != TOKEN_ID_LENGTH:
            raise ValueError(
                f"auth.tokens[{i}].token_id must be the first {TOKEN_ID_LENGTH} "
                "characters of the token."
            )
        if token_id in seen_ids:
            raise ValueError(f"auth.tokens[{i}].token_id '{token_id}' is listed twice.")
        seen_ids.add(token_id)
        entries.append(
            TokenEntry(login=item["login"], token_id=token_id, token_hash=item["token_hash"])
        )
    return entries


# ─── Config loading ───────────────────────────────────────────────────────────


def read_config_file(path: str) -> dict:
    """Read and validate the top level of a config file.

    Raises:
        SystemExit(1): On YAML parse error, unreadable file, non-mapping root,
                       missing ``version`` or unsupported version.
    """
    try:
        with open(path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        msg = (
            f"CONFIG ERROR: Failed to parse {path}: {exc}\n"
            "AnonGuard refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)
    except OSError as exc:
        msg = f"CONFIG ERROR: Could not read {path}: {exc}"
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if not isinstance(raw, dict):
        if raw is None:
            msg = (
                f"CONFIG ERROR: {path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        else:
            msg = (
                f"CONFIG ERROR: {path} is not a valid YAML mapping.\n"
                "The config file must be a YAML dictionary at the top level."
            )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    version = raw.get("version")
    if version is None:
        msg = (
            f"CONFIG ERROR: {path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if version not in SUPPORTED_VERSIONS:
        msg = (
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    return raw


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate AnonGuard configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("ANONGUARD_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)
    raw = read_config_file(found_path)
    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if not config.platform.host:
        logger.warning(
            "platform.base_url has no host — referrer-based access is disabled",
            base_url=config.platform.base_url,
        )

    if config.proxy.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: AnonGuard is configured to bind on 0.0.0.0 (all interfaces). "
            "Make sure the analytics platform itself is not reachable around the gateway."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        platform_host=config.platform.host,
        token_count=len(config.auth.tokens),
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If ANONGUARD_PORT is set but not a valid integer.
    """
    env_port = os.environ.get("ANONGUARD_PORT")
    if env_port is not None:
        try:
            config.proxy.port = int(env_port)
        except ValueError:
            msg = (
                f"CONFIG ERROR: ANONGUARD_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )
            print(msg, file=sys.stderr)
            raise SystemExit(1)

    env_base_url = os.environ.get("ANONGUARD_BASE_URL")
    if env_base_url:
        config.platform.base_url = env_base_url
