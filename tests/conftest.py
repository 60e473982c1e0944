"""Shared test fixtures for opencode-stack tests.

This module provides:
- stack_paths: a StackPaths layout rooted in a temporary home
- settings: deterministic installer settings
- FakeBackend / backend_factory: an in-memory provisioning backend that
  records every call, for orchestration and verification tests
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from opencode_stack.config import Settings
from opencode_stack.shared.paths import StackPaths
from opencode_stack.stack.backends import ProvisioningBackend, ProvisioningContext
from opencode_stack.stack.errors import ProvisioningError
from opencode_stack.stack.probes import ProbeResult
from opencode_stack.stack.profile import HostProfile
from opencode_stack.stack.registry import ComponentSpec
from opencode_stack.stack.results import LifecycleResult
from opencode_stack.stack.selection import CPU_PLAN

# =============================================================================
# Fake backend - Simulates a component without touching the host
# =============================================================================


class FakeBackend(ProvisioningBackend):
    """Backend whose installed state lives in the owning factory."""

    def __init__(self, spec: ComponentSpec, context: ProvisioningContext, factory: FakeBackendFactory):
        super().__init__(spec, context)
        self.factory = factory

    def _is_present(self, variant: str | None) -> bool:
        return self.name in self.factory.installed

    def _acquire(self, variant: str | None) -> None:
        self.factory.journal.append(("install", self.name, variant))
        error = self.factory.failures.get(self.name)
        if error is not None:
            raise error
        if self.name not in self.factory.broken:
            self.factory.installed.add(self.name)

    def is_running(self) -> bool:
        return self.is_installed() and self.name not in self.factory.stopped

    def start(self) -> LifecycleResult:
        self.factory.journal.append(("start", self.name))
        self.factory.stopped.discard(self.name)
        return LifecycleResult(self.name, True, "started")

    def stop(self) -> LifecycleResult:
        self.factory.journal.append(("stop", self.name))
        self.factory.stopped.add(self.name)
        return LifecycleResult(self.name, True, "stopped")

    def remove(self) -> LifecycleResult:
        self.factory.journal.append(("remove", self.name))
        self.factory.installed.discard(self.name)
        return LifecycleResult(self.name, True, "removed")


class FakeBackendFactory:
    """Callable matching the backend factory signature.

    Attributes:
        installed: Names of components considered installed
        stopped: Names of installed components that are not running
        failures: Component name -> exception raised during acquisition
        broken: Components whose acquisition "succeeds" without effect
        journal: Ordered record of backend calls
        contexts: Every context a backend was built with
    """

    def __init__(self):
        self.installed: set[str] = set()
        self.stopped: set[str] = set()
        self.failures: dict[str, Exception] = {}
        self.broken: set[str] = set()
        self.journal: list[tuple] = []
        self.contexts: list[ProvisioningContext] = []

    def __call__(self, spec: ComponentSpec, context: ProvisioningContext) -> FakeBackend:
        self.contexts.append(context)
        return FakeBackend(spec, context, self)

    def fail(self, name: str, error: ProvisioningError | Exception) -> None:
        self.failures[name] = error

    def calls(self, action: str) -> list[str]:
        return [entry[1] for entry in self.journal if entry[0] == action]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def stack_paths(tmp_path: Path) -> StackPaths:
    """Filesystem layout rooted at a temporary home directory."""
    home = tmp_path / "home"
    home.mkdir()
    return StackPaths.from_home(home, use_env=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(user_name="tester", user_email="tester@example.com")


@pytest.fixture
def context(stack_paths: StackPaths, settings: Settings) -> ProvisioningContext:
    """Provisioning context carrying the CPU-only plan."""
    return ProvisioningContext(paths=stack_paths, settings=settings, plan=CPU_PLAN)


@pytest.fixture
def backend_factory() -> FakeBackendFactory:
    return FakeBackendFactory()


@pytest.fixture
def profiler() -> MagicMock:
    """Profiler stub reporting a plain amd64 host without accelerator."""
    stub = MagicMock()
    stub.profile.return_value = HostProfile()
    return stub


@pytest.fixture
def prober() -> MagicMock:
    """Prober stub reporting every endpoint reachable."""
    stub = MagicMock()
    stub.probe_all_sync.side_effect = lambda urls: [
        ProbeResult(url, True, status_code=200) for url in urls
    ]
    return stub


@pytest.fixture
def isolated_path(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep PATH edits made by the workspace manager out of the test process."""
    monkeypatch.setenv("PATH", "/usr/bin:/bin")
