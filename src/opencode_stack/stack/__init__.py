"""Stack provisioning: profiling, selection, backends and lifecycle commands."""

from .errors import (
    AcquisitionFailed,
    DependencyMissing,
    PostInstallCheckFailed,
    ProvisioningError,
    ResolutionFailed,
)
from .orchestrator import (
    CleanOutcome,
    InstallRun,
    Orchestrator,
    ReinstallOutcome,
    accept,
    decline,
)
from .profile import AcceleratorKind, Architecture, HostProfile, HostProfiler
from .registry import ComponentKind, ComponentSpec, default_registry
from .results import (
    CheckResult,
    InstallAction,
    InstallResult,
    LifecycleResult,
    VerificationReport,
)
from .selection import ComponentPlan, ModelSlot, SelectionPolicy
from .status import ComponentStatus, StatusReporter, StatusSnapshot
from .verification import VerificationEngine

__all__ = [
    # Errors
    "ProvisioningError",
    "ResolutionFailed",
    "AcquisitionFailed",
    "PostInstallCheckFailed",
    "DependencyMissing",
    # Host and selection
    "AcceleratorKind",
    "Architecture",
    "HostProfile",
    "HostProfiler",
    "ComponentPlan",
    "ModelSlot",
    "SelectionPolicy",
    # Registry
    "ComponentKind",
    "ComponentSpec",
    "default_registry",
    # Results
    "CheckResult",
    "InstallAction",
    "InstallResult",
    "LifecycleResult",
    "VerificationReport",
    # Commands
    "Orchestrator",
    "InstallRun",
    "CleanOutcome",
    "ReinstallOutcome",
    "accept",
    "decline",
    "VerificationEngine",
    "StatusReporter",
    "StatusSnapshot",
    "ComponentStatus",
]
