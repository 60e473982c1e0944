"""Result values produced by the orchestration engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class InstallAction(Enum):
    """Outcome of installing one component."""

    INSTALLED = "installed"
    SKIPPED = "skipped"  # Installed-state predicate already held
    FAILED = "failed"


@dataclass(frozen=True)
class InstallResult:
    """Result of installing one component."""

    component: str
    action: InstallAction
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.action == InstallAction.FAILED


@dataclass(frozen=True)
class LifecycleResult:
    """Result of a start, stop or remove call on one component."""

    component: str
    success: bool
    detail: str = ""


@dataclass(frozen=True)
class CheckResult:
    """One verification check."""

    name: str
    passed: bool
    detail: str = ""


@dataclass
class VerificationReport:
    """Set of verification checks; succeeds iff every check passed."""

    checks: list[CheckResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def failures(self) -> list[CheckResult]:
        return [check for check in self.checks if not check.passed]

    def get(self, name: str) -> CheckResult | None:
        for check in self.checks:
            if check.name == name:
                return check
        return None
