"""Top-level lifecycle commands over the component registry.

Each command is an independent, idempotent operation against persistent
on-disk and container state. Components are handled strictly in registry
order; a failure in one component never stops the others.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from ..config import Settings
from ..shared.paths import StackPaths
from .backends import ProvisioningBackend, ProvisioningContext, create_backend
from .probes import EndpointProber
from .profile import Architecture, HostProfile, HostProfiler, parse_accelerator
from .registry import ComponentSpec, default_registry
from .results import InstallAction, InstallResult, LifecycleResult, VerificationReport
from .selection import ComponentPlan, SelectionPolicy
from .status import StatusReporter, StatusSnapshot
from .verification import VerificationEngine
from .workspace import WorkspaceManager

logger = structlog.get_logger(__name__)

ConfirmCallback = Callable[[str], bool]
BackendFactory = Callable[[ComponentSpec, ProvisioningContext], ProvisioningBackend]

CLEAN_PROMPT = "This will remove all AI models and configurations! Are you sure?"

# Component whose executable the desktop launcher starts
LAUNCHER_COMPONENT = "opencode"


def decline(prompt: str) -> bool:
    """Confirmation strategy that always declines."""
    return False


def accept(prompt: str) -> bool:
    """Confirmation strategy that always accepts (non-interactive runs)."""
    return True


@dataclass
class InstallRun:
    """Outcome of the install command."""

    profile: HostProfile
    plan: ComponentPlan
    results: list[InstallResult] = field(default_factory=list)
    report: VerificationReport = field(default_factory=VerificationReport)
    desktop_file: Path | None = None
    workspace_errors: list[str] = field(default_factory=list)

    @property
    def failures(self) -> list[InstallResult]:
        return [r for r in self.results if r.failed]

    @property
    def issues(self) -> int:
        """Failed workspace steps, failed components and failed verification checks."""
        return len(self.workspace_errors) + len(self.failures) + len(self.report.failures)

    @property
    def success(self) -> bool:
        return self.issues == 0


@dataclass
class CleanOutcome:
    """Outcome of the clean command."""

    confirmed: bool
    results: list[LifecycleResult] = field(default_factory=list)
    removed_paths: list[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        # A declined clean is a no-op, not an error
        return all(r.success for r in self.results)


@dataclass
class ReinstallOutcome:
    """Outcome of the reinstall command."""

    clean: CleanOutcome
    install: InstallRun | None = None

    @property
    def success(self) -> bool:
        if not self.clean.success:
            return False
        return self.install is None or self.install.success


class Orchestrator:
    """Drive every registered component through its lifecycle."""

    def __init__(
        self,
        paths: StackPaths,
        settings: Settings,
        registry: tuple[ComponentSpec, ...] | None = None,
        profiler: HostProfiler | None = None,
        policy: SelectionPolicy | None = None,
        confirm: ConfirmCallback = decline,
        backend_factory: BackendFactory = create_backend,
        prober: EndpointProber | None = None,
        workspace: WorkspaceManager | None = None,
    ):
        """Initialize orchestrator.

        Args:
            paths: Filesystem layout
            settings: Installer settings
            registry: Ordered component registry (default: built from paths)
            profiler: Host profiler (default honours the accelerator setting)
            policy: Selection policy
            confirm: Confirmation strategy for destructive commands
            backend_factory: Builds a backend for a spec
            prober: HTTP prober used by verification
            workspace: Directory and host integration manager
        """
        self.paths = paths
        self.settings = settings
        self.registry = registry if registry is not None else default_registry(paths)
        self.profiler = profiler or HostProfiler(
            forced_accelerator=parse_accelerator(settings.accelerator)
        )
        self.policy = policy or SelectionPolicy()
        self.confirm = confirm
        self.backend_factory = backend_factory
        self.prober = prober or EndpointProber()
        self.workspace = workspace or WorkspaceManager(paths)

    # ── Helpers ──

    def select(self) -> tuple[HostProfile, ComponentPlan]:
        profile = self.profiler.profile()
        return profile, self.policy.select(profile)

    def backends(
        self,
        profile: HostProfile | None = None,
        plan: ComponentPlan | None = None,
    ) -> list[ProvisioningBackend]:
        """Build one backend per registered component, in registry order."""
        context = ProvisioningContext(
            paths=self.paths,
            settings=self.settings,
            architecture=profile.architecture if profile else Architecture.AMD64,
            plan=plan,
        )
        return [self.backend_factory(spec, context) for spec in self.registry]

    def verifier(self, backends: list[ProvisioningBackend]) -> VerificationEngine:
        return VerificationEngine(backends, self.prober)

    # ── Commands ──

    def install(self, on_result: Callable[[InstallResult], None] | None = None) -> InstallRun:
        """Install every component, continuing past failures, then verify.

        Args:
            on_result: Called with each InstallResult as soon as it is known.
        """
        profile, plan = self.select()
        log = logger.bind(tier=plan.tier)
        log.info("install started", components=len(self.registry))

        run = InstallRun(profile=profile, plan=plan)
        run.workspace_errors = self._prepare_workspace()

        backends = self.backends(profile, plan)

        for backend in backends:
            variant = plan.variant(backend.spec.slot) if backend.spec.slot else None
            try:
                result = backend.install(variant)
            except Exception as e:
                log.exception("unexpected install error", component=backend.name)
                result = InstallResult(backend.name, InstallAction.FAILED, f"Unexpected error: {e}")
            run.results.append(result)
            if on_result:
                on_result(result)

        run.desktop_file = self._write_launcher(backends)
        run.report = self.verifier(backends).verify(probe_endpoints=False)

        log.info("install finished", failures=len(run.failures), issues=run.issues)
        return run

    def start(
        self, on_result: Callable[[LifecycleResult], None] | None = None
    ) -> list[LifecycleResult]:
        """Start long-running components in registry order."""
        return self._lifecycle(self.backends(), "start", on_result)

    def stop(
        self, on_result: Callable[[LifecycleResult], None] | None = None
    ) -> list[LifecycleResult]:
        """Stop long-running components in reverse registry order."""
        return self._lifecycle(list(reversed(self.backends())), "stop", on_result)

    def clean(
        self, on_result: Callable[[LifecycleResult], None] | None = None
    ) -> CleanOutcome:
        """Remove every component and all persisted data after confirmation."""
        if not self.confirm(CLEAN_PROMPT):
            logger.info("clean declined")
            return CleanOutcome(confirmed=False)

        outcome = CleanOutcome(confirmed=True)
        for backend in reversed(self.backends()):
            try:
                result = backend.remove()
            except Exception as e:
                logger.exception("unexpected remove error", component=backend.name)
                result = LifecycleResult(backend.name, False, f"Unexpected error: {e}")
            outcome.results.append(result)
            if on_result:
                on_result(result)

        try:
            outcome.removed_paths = self.workspace.remove_generated()
        except OSError as e:
            logger.warning("could not remove data directories", error=str(e))
            outcome.results.append(LifecycleResult("data", False, str(e)))

        return outcome

    def reinstall(
        self,
        on_removed: Callable[[LifecycleResult], None] | None = None,
        on_installed: Callable[[InstallResult], None] | None = None,
    ) -> ReinstallOutcome:
        """Clean (with confirmation) followed by install."""
        clean = self.clean(on_removed)
        if not clean.confirmed:
            return ReinstallOutcome(clean)
        return ReinstallOutcome(clean, self.install(on_installed))

    def status(self) -> StatusSnapshot:
        """Read-only snapshot; bypasses selection."""
        return StatusReporter(self.backends(), self.paths).snapshot()

    def test(self) -> VerificationReport:
        """Verify the installation including live endpoint probes."""
        profile, plan = self.select()
        return self.verifier(self.backends(profile, plan)).verify(probe_endpoints=True)

    # ── Internals ──

    def _lifecycle(
        self,
        backends: list[ProvisioningBackend],
        action: str,
        on_result: Callable[[LifecycleResult], None] | None,
    ) -> list[LifecycleResult]:
        results = []
        for backend in backends:
            if not backend.spec.long_running:
                continue
            try:
                result = getattr(backend, action)()
            except Exception as e:
                logger.exception(f"unexpected {action} error", component=backend.name)
                result = LifecycleResult(backend.name, False, f"Unexpected error: {e}")
            results.append(result)
            if on_result:
                on_result(result)
        return results

    def _prepare_workspace(self) -> list[str]:
        """Create directories and persist PATH; failures are returned, not raised."""
        errors = []
        try:
            self.workspace.setup_directories()
        except OSError as e:
            logger.warning("could not create directories", error=str(e))
            errors.append(f"Could not create directories: {e}")
        try:
            self.workspace.ensure_on_path()
        except OSError as e:
            logger.warning("could not update shell profile", error=str(e))
            errors.append(f"Could not add {self.paths.bin_dir} to PATH: {e}")
        return errors

    def _write_launcher(self, backends: list[ProvisioningBackend]) -> Path | None:
        for backend in backends:
            if backend.name == LAUNCHER_COMPONENT and backend.is_installed():
                executable = self.paths.bin_dir / (backend.spec.binary or backend.name)
                try:
                    return self.workspace.write_desktop_file(executable)
                except OSError as e:
                    logger.warning("could not write desktop launcher", error=str(e))
        return None
