"""Host capability detection.

HostProfiler inspects the local machine once per invocation and produces
an immutable HostProfile. Detection never fails: anything ambiguous
resolves to the conservative default (amd64, no accelerator).
"""

from __future__ import annotations

import platform
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


class Architecture(Enum):
    """CPU architecture of the host."""

    AMD64 = "amd64"
    ARM64 = "arm64"
    ARMV7 = "armv7"
    OTHER = "other"


class AcceleratorKind(Enum):
    """Kind of GPU available to model runtimes."""

    NONE = "none"
    NVIDIA = "nvidia"
    AMD = "amd"
    INTEGRATED = "integrated"


_MACHINE_MAP = {
    "x86_64": Architecture.AMD64,
    "amd64": Architecture.AMD64,
    "aarch64": Architecture.ARM64,
    "arm64": Architecture.ARM64,
    "armv7l": Architecture.ARMV7,
    "armv7": Architecture.ARMV7,
}

# Vendor tooling checked first, in order
_VENDOR_TOOLS = (
    ("nvidia-smi", AcceleratorKind.NVIDIA),
    ("rocm-smi", AcceleratorKind.AMD),
)

# PCI device classes that describe a display adapter
_DISPLAY_CLASSES = ("vga", "3d controller", "display controller")

_BUS_VENDORS = (
    (("nvidia",), AcceleratorKind.NVIDIA),
    (("advanced micro devices", "amd", "ati "), AcceleratorKind.AMD),
)


@dataclass(frozen=True)
class HostProfile:
    """Immutable description of the host's capabilities."""

    architecture: Architecture = Architecture.AMD64
    accelerator_kind: AcceleratorKind = AcceleratorKind.NONE


def normalize_architecture(machine: str) -> Architecture:
    """Map a `uname -m` style machine string to an Architecture.

    An empty machine string is ambiguous and maps to amd64; a recognised but
    unsupported machine (riscv64, ppc64le, ...) maps to OTHER.
    """
    m = machine.strip().lower()
    if not m:
        return Architecture.AMD64
    return _MACHINE_MAP.get(m, Architecture.OTHER)


class HostProfiler:
    """Detect host architecture and accelerator."""

    def __init__(
        self,
        dri_dir: Path = Path("/dev/dri"),
        forced_accelerator: AcceleratorKind | None = None,
    ):
        """Initialize profiler.

        Args:
            dri_dir: Directory holding render/card device nodes
            forced_accelerator: Skip accelerator detection and use this kind
        """
        self.dri_dir = dri_dir
        self.forced_accelerator = forced_accelerator

    def profile(self) -> HostProfile:
        """Detect the host profile."""
        architecture = self.detect_architecture()
        if self.forced_accelerator is not None:
            accelerator = self.forced_accelerator
        else:
            accelerator = self.detect_accelerator()

        logger.info(
            "host profiled",
            architecture=architecture.value,
            accelerator=accelerator.value,
        )
        return HostProfile(architecture=architecture, accelerator_kind=accelerator)

    def detect_architecture(self) -> Architecture:
        try:
            machine = platform.machine()
        except OSError:
            machine = ""
        return normalize_architecture(machine)

    def detect_accelerator(self) -> AcceleratorKind:
        """Detect the accelerator kind; first match wins.

        Order: GPU vendor tooling, PCI bus vendor scan, render device nodes.
        """
        for tool, kind in _VENDOR_TOOLS:
            if shutil.which(tool):
                return kind

        kind = self._scan_pci_bus()
        if kind is not None:
            return kind

        if self._has_render_device():
            return AcceleratorKind.INTEGRATED

        return AcceleratorKind.NONE

    def _scan_pci_bus(self) -> AcceleratorKind | None:
        """Look for a discrete GPU vendor in `lspci` output."""
        try:
            result = subprocess.run(
                ["lspci"],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except (FileNotFoundError, OSError, subprocess.TimeoutExpired) as e:
            logger.debug("pci scan unavailable", error=str(e))
            return None

        if result.returncode != 0:
            return None

        display_lines = [
            line.lower()
            for line in result.stdout.splitlines()
            if any(cls in line.lower() for cls in _DISPLAY_CLASSES)
        ]
        for needles, kind in _BUS_VENDORS:
            for line in display_lines:
                if any(needle in line for needle in needles):
                    return kind
        return None

    def _has_render_device(self) -> bool:
        try:
            return any(self.dri_dir.glob("card*"))
        except OSError:
            return False


def parse_accelerator(value: str | None) -> AcceleratorKind | None:
    """Parse a forced accelerator setting; `auto` and unknown values yield None."""
    if not value:
        return None
    try:
        return AcceleratorKind(value.strip().lower())
    except ValueError:
        return None
