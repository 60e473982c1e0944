"""Provisioning error taxonomy.

Backends raise these while acquiring a component. They never cross the
backend boundary: the common install template turns them into `failed`
InstallResults so the orchestrator can carry on with the next component.
"""

from dataclasses import dataclass


@dataclass
class ProvisioningError(Exception):
    """Base error for component provisioning failures."""

    component: str
    message: str

    kind = "ProvisioningError"

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


@dataclass
class ResolutionFailed(ProvisioningError):
    """No source location exists for this host (e.g. unsupported architecture)."""

    kind = "ResolutionFailed"


@dataclass
class AcquisitionFailed(ProvisioningError):
    """Download, extraction, pull or container creation failed."""

    kind = "AcquisitionFailed"


@dataclass
class PostInstallCheckFailed(ProvisioningError):
    """Acquisition completed but the installed-state predicate is still false."""

    kind = "PostInstallCheckFailed"


@dataclass
class DependencyMissing(ProvisioningError):
    """A required external tool (e.g. the container runtime) is absent or unreachable."""

    kind = "DependencyMissing"
