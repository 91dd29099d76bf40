"""Root test configuration for AnonGuard.

Isolates every test from the developer's environment: no ANONGUARD_* env
overrides and no config file picked up from the working or home directory.
Tests that exercise those paths set them explicitly via monkeypatch.
"""

import pytest

from anonguard.access.context import RequestContext
from anonguard.access.decision import AccessGate
from anonguard.access.policy import AccessPolicy
from anonguard.allowlist.patterns import sanitize


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear env overrides and default config search paths for all tests."""
    for name in ("ANONGUARD_CONFIG", "ANONGUARD_PORT", "ANONGUARD_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("anonguard.config.DEFAULT_CONFIG_PATHS", [])


@pytest.fixture
def make_policy():
    """Factory building an AccessPolicy straight from entry strings."""

    def _make(
        allowed_requests: list[str] | None = None,
        allowed_referrers: list[str] | None = None,
        redirect_unallowed_to: str | None = None,
    ) -> AccessPolicy:
        return AccessPolicy(
            allowed_requests=sanitize(allowed_requests or []),
            allowed_referrers=sanitize(allowed_referrers or []),
            redirect_unallowed_to=redirect_unallowed_to,
        )

    return _make


@pytest.fixture
def evaluations(monkeypatch: pytest.MonkeyPatch) -> list[RequestContext]:
    """Record every full AccessGate evaluation (nested dispatches never evaluate)."""
    calls: list[RequestContext] = []
    real_evaluate = AccessGate.evaluate

    def _recording_evaluate(self, request, policy, **kwargs):
        calls.append(request)
        return real_evaluate(self, request, policy, **kwargs)

    monkeypatch.setattr(AccessGate, "evaluate", _recording_evaluate)
    return calls
