"""Access policy loader with hot-reload.

Holds the current AccessPolicy snapshot and rebuilds it from the `access:`
section of the config file. A watchfiles watcher reloads the policy (and the
`auth.tokens` of an attached TokenAuthenticator) when the file changes,
without restarting the gateway.

Reload failures (unreadable file, invalid YAML) keep the prior policy and
tokens. Malformed values inside `access:` never fail a reload; AccessPolicy
degrades them to empty lists. A malformed `auth.tokens` list keeps the prior
tokens while the access policy is still reloaded.
"""

from __future__ import annotations

import asyncio
import threading

import watchfiles
import yaml

from anonguard.access.policy import AccessPolicy
from anonguard.auth.tokens import TokenAuthenticator
from anonguard.config import AccessConfig, Config, parse_token_entries
from anonguard.utils.logger import get_logger

logger = get_logger(__name__)


class PolicyLoader:
    """Thread-safe holder of the current AccessPolicy.

    Usage (in lifespan):
        loader = PolicyLoader(authenticator=authenticator)
        loader.load_from_config(config)
        app.state.policy_loader = loader
        asyncio.create_task(loader.start_watcher(config.path))

    Policies are immutable, so get_policy() hands out the snapshot itself.
    """

    def __init__(
        self,
        policy: AccessPolicy | None = None,
        authenticator: TokenAuthenticator | None = None,
    ) -> None:
        self._policy = policy or AccessPolicy()
        self._authenticator = authenticator
        self._lock = threading.Lock()

    def get_policy(self) -> AccessPolicy:
        with self._lock:
            return self._policy

    def set_policy(self, policy: AccessPolicy) -> None:
        with self._lock:
            self._policy = policy

    def load_from_config(self, config: Config) -> AccessPolicy:
        policy = AccessPolicy.from_config(config.access)
        self.set_policy(policy)
        _log_policy("Access policy loaded", policy)
        return policy

    def load(self, path: str) -> bool:
        """Reload the policy from the `access:` section of a YAML file.

        Returns True on success, False on read / parse error (prior policy kept).
        A missing `access:` section yields the default (empty) policy.
        Never raises.
        """
        try:
            with open(path) as fh:
                raw = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            logger.error(
                "Config reload failed: YAML parse error — keeping prior access policy",
                path=path,
                error=str(exc),
            )
            return False
        except OSError as exc:
            logger.error(
                "Config reload failed: could not read file — keeping prior access policy",
                path=path,
                error=str(exc),
            )
            return False

        raw = raw if isinstance(raw, dict) else {}
        policy = AccessPolicy.from_config(AccessConfig.from_dict(raw.get("access")))
        self.set_policy(policy)
        _log_policy("Access policy reloaded", policy, path=path)

        if self._authenticator is not None:
            _reload_tokens(self._authenticator, raw, path)
        return True

    async def start_watcher(self, path: str) -> None:
        """Reload the policy each time ``path`` changes.

        Runs as an asyncio.Task until cancelled on shutdown.
        """
        logger.info("Config file watcher started", path=path)
        try:
            async for _ in watchfiles.awatch(path):
                self.load(path)
        except asyncio.CancelledError:
            logger.debug("Config file watcher cancelled", path=path)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Config file watcher error (watcher stopped)",
                error=str(exc),
                path=path,
            )


def _reload_tokens(authenticator: TokenAuthenticator, raw: dict, path: str) -> None:
    auth_raw = raw.get("auth")
    try:
        entries = parse_token_entries(auth_raw.get("tokens") if isinstance(auth_raw, dict) else None)
    except ValueError as exc:
        logger.error(
            "Config reload: invalid auth.tokens — keeping prior tokens",
            path=path,
            error=str(exc),
        )
        return
    authenticator.set_entries(entries)


def _log_policy(event: str, policy: AccessPolicy, **extra: object) -> None:
    logger.info(
        event,
        allowed_requests=len(policy.allowed_requests),
        allowed_referrers=len(policy.allowed_referrers),
        redirect_enabled=policy.redirect_unallowed_to is not None,
        **extra,
    )
