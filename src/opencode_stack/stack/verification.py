"""Verification of an installed stack.

Every registered component gets one presence/liveness check; components
with an advertised endpoint additionally get a reachability probe. Probes
run concurrently with a bounded timeout each. Failures are recorded in the
report, never raised.
"""

from __future__ import annotations

import structlog

from .backends import ProvisioningBackend
from .probes import EndpointProber
from .results import CheckResult, VerificationReport

logger = structlog.get_logger(__name__)


def presence_check_name(component: str) -> str:
    return f"{component}:present"


def reachability_check_name(component: str) -> str:
    return f"{component}:reachable"


class VerificationEngine:
    """Probe installed components and summarize the outcome."""

    def __init__(
        self,
        backends: list[ProvisioningBackend],
        prober: EndpointProber | None = None,
    ):
        self.backends = backends
        self.prober = prober or EndpointProber()

    def verify(self, probe_endpoints: bool = True) -> VerificationReport:
        """Run all checks.

        Args:
            probe_endpoints: Also probe network-exposed components.

        Returns:
            VerificationReport with one presence check per component, plus
            one reachability check per network-exposed component.
        """
        checks = [self.check_presence(backend) for backend in self.backends]

        if probe_endpoints:
            checks.extend(self.check_endpoints())

        report = VerificationReport(checks)
        logger.info(
            "verification finished",
            checks=len(report.checks),
            failures=len(report.failures),
        )
        return report

    def check_presence(self, backend: ProvisioningBackend) -> CheckResult:
        """Existence check, plus liveness for long-running components."""
        name = presence_check_name(backend.name)
        label = backend.spec.display_name
        try:
            if not backend.is_installed():
                return CheckResult(name, False, f"{label} not installed")
            if backend.spec.long_running and not backend.is_running():
                return CheckResult(name, False, f"{label} not running")
        except Exception as e:
            logger.warning("presence check errored", component=backend.name, error=str(e))
            return CheckResult(name, False, f"{label} check failed: {e}")

        state = "running" if backend.spec.long_running else "installed"
        return CheckResult(name, True, f"{label} {state}")

    def check_endpoints(self) -> list[CheckResult]:
        """Probe every advertised endpoint concurrently."""
        exposed = [b for b in self.backends if b.spec.endpoint]
        results = self.prober.probe_all_sync([b.spec.endpoint for b in exposed])

        checks = []
        for backend, result in zip(exposed, results):
            label = backend.spec.display_name
            if result.reachable:
                detail = f"{label} responding at {result.url}"
            else:
                detail = f"{label} not responding at {result.url}: {result.error}"
            checks.append(CheckResult(reachability_check_name(backend.name), result.reachable, detail))
        return checks
