"""Model selection policy.

Maps a HostProfile to a ComponentPlan: one concrete variant per pluggable
model slot. The mapping is a total, pure function keyed on the
accelerator kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .profile import AcceleratorKind, HostProfile


class ModelSlot(Enum):
    """Pluggable model slots filled by the plan."""

    LANGUAGE = "language"
    IMAGE = "image"
    VOICE = "voice"


@dataclass(frozen=True)
class ComponentPlan:
    """Immutable set of variant choices for the current host."""

    tier: str
    language_model: str
    image_model: str
    voice_model: str

    def variant(self, slot: ModelSlot) -> str:
        """Variant chosen for a slot."""
        return self.as_dict()[slot]

    def as_dict(self) -> dict[ModelSlot, str]:
        return {
            ModelSlot.LANGUAGE: self.language_model,
            ModelSlot.IMAGE: self.image_model,
            ModelSlot.VOICE: self.voice_model,
        }


GPU_NVIDIA_PLAN = ComponentPlan(
    tier="nvidia",
    language_model="codellama:13b-instruct",
    image_model="dreamshaper-v7",
    voice_model="en-us-libritts-high.onnx",
)

GPU_AMD_PLAN = ComponentPlan(
    tier="amd",
    language_model="llama2:13b",
    image_model="deliberate-v2",
    voice_model="en-us-amy-high.onnx",
)

CPU_PLAN = ComponentPlan(
    tier="cpu",
    language_model="llama2:7b",
    image_model="dreamlike-diffusion-1.0",
    voice_model="en-us-amy-low.onnx",
)

_TIERS = {
    AcceleratorKind.NVIDIA: GPU_NVIDIA_PLAN,
    AcceleratorKind.AMD: GPU_AMD_PLAN,
}


class SelectionPolicy:
    """Pick the plan tier for a host."""

    def __init__(
        self,
        tiers: dict[AcceleratorKind, ComponentPlan] | None = None,
        default: ComponentPlan = CPU_PLAN,
    ):
        self.tiers = dict(_TIERS if tiers is None else tiers)
        self.default = default

    def select(self, profile: HostProfile) -> ComponentPlan:
        """Select the plan; any accelerator without a tier gets the CPU-only plan."""
        return self.tiers.get(profile.accelerator_kind, self.default)
