"""Provisioning backend contract.

One backend implementation exists per ComponentKind. The install template
in ProvisioningBackend owns the idempotence rules shared by every kind:
skip when the installed-state predicate already holds, otherwise acquire,
then re-check the predicate before reporting success.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import structlog

from ...config import Settings
from ...shared.paths import StackPaths
from ..errors import PostInstallCheckFailed, ProvisioningError
from ..profile import Architecture
from ..registry import ComponentSpec
from ..results import InstallAction, InstallResult, LifecycleResult
from ..selection import ComponentPlan

logger = structlog.get_logger(__name__)

DEFAULT_HTTP_TIMEOUT = 60.0


@dataclass(frozen=True)
class ProvisioningContext:
    """Everything a backend needs besides its own spec.

    `plan` is None for commands that bypass selection (status, clean,
    start, stop); predicates then only look at what exists on the host.
    """

    paths: StackPaths
    settings: Settings
    architecture: Architecture = Architecture.AMD64
    plan: ComponentPlan | None = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT


class ProvisioningBackend(ABC):
    """Idempotent install/remove/start/stop of one component."""

    def __init__(self, spec: ComponentSpec, context: ProvisioningContext):
        self.spec = spec
        self.context = context
        self.log = logger.bind(component=spec.name, kind=spec.kind.value)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def paths(self) -> StackPaths:
        return self.context.paths

    @property
    def expected_variant(self) -> str | None:
        """Variant the plan picked for this component's slot, if any."""
        if self.context.plan is None or self.spec.slot is None:
            return None
        return self.context.plan.variant(self.spec.slot)

    def is_installed(self) -> bool:
        """Installed-state predicate; side-effect free."""
        return self._is_present(self.expected_variant)

    def is_running(self) -> bool:
        """Liveness predicate. Kinds without a process are live when installed."""
        return self.is_installed()

    def install(self, variant: str | None = None) -> InstallResult:
        """Install the component unless its installed-state predicate holds.

        Args:
            variant: Variant to install (default: the plan's choice)

        Returns:
            InstallResult; provisioning errors are reported, never raised.
        """
        if variant is None:
            variant = self.expected_variant
        log = self.log.bind(variant=variant)

        if self._is_present(variant):
            log.info("component already installed")
            return InstallResult(self.name, InstallAction.SKIPPED, "already installed")

        try:
            self._acquire(variant)
        except ProvisioningError as e:
            log.warning("component install failed", error=str(e))
            return InstallResult(self.name, InstallAction.FAILED, str(e))

        if not self._is_present(variant):
            error = PostInstallCheckFailed(
                self.name, "install finished but the component is still not present"
            )
            log.warning("post-install check failed")
            return InstallResult(self.name, InstallAction.FAILED, str(error))

        log.info("component installed")
        return InstallResult(self.name, InstallAction.INSTALLED, self._installed_detail(variant))

    def start(self) -> LifecycleResult:
        return LifecycleResult(self.name, True, "nothing to start")

    def stop(self) -> LifecycleResult:
        return LifecycleResult(self.name, True, "nothing to stop")

    @abstractmethod
    def remove(self) -> LifecycleResult:
        """Remove the component; an already absent component is a success."""

    @abstractmethod
    def _is_present(self, variant: str | None) -> bool:
        """Installed-state predicate for a given variant."""

    @abstractmethod
    def _acquire(self, variant: str | None) -> None:
        """Perform the acquisition.

        Raises:
            ProvisioningError: On any failure.
        """

    def _installed_detail(self, variant: str | None) -> str:
        return f"installed ({variant})" if variant else "installed"
