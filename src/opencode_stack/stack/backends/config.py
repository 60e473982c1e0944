"""Render-config backend.

Expands a template from the current plan and the user settings into a
file. The file counts as installed when it holds exactly what the current
plan renders to, so a changed plan is re-rendered and an unchanged one is
skipped.
"""

from __future__ import annotations

import os
from pathlib import Path

from ..errors import AcquisitionFailed, ResolutionFailed
from ..renderer import render
from ..results import LifecycleResult
from .base import ProvisioningBackend


class ConfigBackend(ProvisioningBackend):
    """Provision a component as a generated configuration file."""

    @property
    def target(self) -> Path:
        if self.spec.target is None:
            raise ValueError(f"Component {self.name} has no target file")
        return self.spec.target

    def rendered(self) -> str | None:
        """Expected file content, or None when no plan is known."""
        if self.context.plan is None or self.spec.template is None:
            return None
        return render(self.spec.template, self.context.plan, self.context.settings)

    def _is_present(self, variant: str | None) -> bool:
        if not self.target.is_file():
            return False
        expected = self.rendered()
        if expected is None:
            return True
        try:
            return self.target.read_text(encoding="utf-8") == expected
        except OSError:
            return False

    def _acquire(self, variant: str | None) -> None:
        if self.context.plan is None:
            raise ResolutionFailed(self.name, "No plan to render the configuration from")
        try:
            content = self.rendered()
        except KeyError as e:
            raise ResolutionFailed(self.name, f"Unknown template: {self.spec.template}") from e

        partial = self.target.with_name(f".{self.target.name}.tmp")
        try:
            self.target.parent.mkdir(parents=True, exist_ok=True)
            partial.write_text(content, encoding="utf-8")
            os.replace(partial, self.target)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise AcquisitionFailed(self.name, f"Could not write {self.target}: {e}") from e

    def _installed_detail(self, variant: str | None) -> str:
        return f"written to {self.target}"

    def remove(self) -> LifecycleResult:
        try:
            self.target.unlink(missing_ok=True)
        except OSError as e:
            return LifecycleResult(self.name, False, str(e))
        return LifecycleResult(self.name, True, "removed")
