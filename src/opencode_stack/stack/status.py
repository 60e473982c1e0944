"""Read-only status snapshot of the stack.

Installed and running state is always derived from the backends'
predicates and probes at call time, never from a cached flag.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from pathlib import Path

from ..shared.paths import StackPaths
from .backends import ContainerBackend, ProvisioningBackend
from .registry import ComponentKind

# Model category -> (directory attribute on StackPaths, file patterns)
MODEL_CATEGORIES: dict[str, tuple[str, tuple[str, ...]]] = {
    "language": ("language_models_dir", ("manifests/**/*",)),
    "image": ("image_models_dir", ("**/*.safetensors", "**/*.ckpt")),
    "voice": ("voice_models_dir", ("**/*.onnx",)),
}


@dataclass
class SystemInfo:
    """Host facts shown in the status header."""

    machine: str
    kernel: str
    distribution: str


@dataclass
class ComponentStatus:
    """Snapshot of one component."""

    name: str
    display_name: str
    kind: ComponentKind
    installed: bool
    state: str
    endpoint: str | None = None


@dataclass
class StatusSnapshot:
    """Status of the whole stack."""

    system: SystemInfo
    components: list[ComponentStatus] = field(default_factory=list)
    model_counts: dict[str, int] = field(default_factory=dict)

    def by_kind(self, kind: ComponentKind) -> list[ComponentStatus]:
        return [c for c in self.components if c.kind == kind]


def detect_system() -> SystemInfo:
    try:
        distribution = platform.freedesktop_os_release().get("PRETTY_NAME", "Unknown")
    except OSError:
        distribution = "Unknown"
    return SystemInfo(
        machine=platform.machine() or "unknown",
        kernel=platform.release() or "unknown",
        distribution=distribution,
    )


def count_models(directory: Path, patterns: tuple[str, ...]) -> int:
    if not directory.is_dir():
        return 0
    found: set[Path] = set()
    for pattern in patterns:
        found.update(p for p in directory.glob(pattern) if p.is_file())
    return len(found)


class StatusReporter:
    """Build a StatusSnapshot from the backends."""

    def __init__(self, backends: list[ProvisioningBackend], paths: StackPaths):
        self.backends = backends
        self.paths = paths

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(
            system=detect_system(),
            components=[self.component_status(b) for b in self.backends],
            model_counts=self.model_counts(),
        )

    def component_status(self, backend: ProvisioningBackend) -> ComponentStatus:
        spec = backend.spec
        if isinstance(backend, ContainerBackend):
            state = backend.inspect().state.value
            installed = state in ("running", "stopped")
        else:
            installed = backend.is_installed()
            if not installed:
                state = "absent"
            elif spec.daemon is not None:
                state = "running" if backend.is_running() else "stopped"
            else:
                state = "installed"

        return ComponentStatus(
            name=spec.name,
            display_name=spec.display_name,
            kind=spec.kind,
            installed=installed,
            state=state,
            endpoint=spec.endpoint,
        )

    def model_counts(self) -> dict[str, int]:
        counts = {}
        for category, (attribute, patterns) in MODEL_CATEGORIES.items():
            counts[category] = count_models(getattr(self.paths, attribute), patterns)
        return counts
