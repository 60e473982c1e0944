"""Workspace preparation around the components.

Creates the directory layout, persists the binaries directory on PATH and
writes the desktop launcher. Everything here is idempotent.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path

import structlog

from ..shared.paths import StackPaths

logger = structlog.get_logger(__name__)

PATH_EXPORT_LINE = 'export PATH="$HOME/.local/bin:$PATH"'


class WorkspaceManager:
    """Manage directories and host integration files."""

    def __init__(self, paths: StackPaths):
        self.paths = paths

    def setup_directories(self) -> list[Path]:
        """Create required directories.

        Returns:
            List of directory paths.
        """
        directories = [
            self.paths.bin_dir,
            self.paths.tool_config_dir,
            self.paths.language_models_dir,
            self.paths.image_models_dir,
            self.paths.voice_models_dir,
            self.paths.webui_data_dir,
            self.paths.state_dir,
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

        return directories

    def ensure_on_path(self, environ: dict[str, str] | None = None) -> bool:
        """Persist the binaries directory on PATH.

        The export line is appended to the shell profile at most once; the
        current process PATH is updated as well.

        Args:
            environ: Environment to update (default: os.environ)

        Returns:
            True if the shell profile was modified.
        """
        environ = os.environ if environ is None else environ
        bin_dir = str(self.paths.bin_dir)
        current = environ.get("PATH", "")

        if bin_dir in current:
            return False

        environ["PATH"] = f"{bin_dir}{os.pathsep}{current}" if current else bin_dir

        profile = self.paths.shell_profile
        try:
            existing = profile.read_text() if profile.exists() else ""
        except OSError:
            existing = ""
        if PATH_EXPORT_LINE in existing or bin_dir in existing:
            return False

        with open(profile, "a") as f:
            if existing and not existing.endswith("\n"):
                f.write("\n")
            f.write(PATH_EXPORT_LINE + "\n")

        logger.info("binaries directory added to PATH", profile=str(profile))
        return True

    def desktop_entry(self, executable: Path) -> str:
        return (
            "[Desktop Entry]\n"
            "Name=OpenCode AI\n"
            "Comment=AI-powered development environment\n"
            f"Exec={executable}\n"
            "Icon=code\n"
            "Terminal=true\n"
            "Type=Application\n"
            "Categories=Development;IDE;\n"
            "StartupNotify=true\n"
        )

    def write_desktop_file(self, executable: Path) -> Path:
        """Write the desktop launcher pointing at an executable."""
        desktop_file = self.paths.desktop_file
        desktop_file.parent.mkdir(parents=True, exist_ok=True)
        desktop_file.write_text(self.desktop_entry(executable))
        desktop_file.chmod(0o755)
        return desktop_file

    def remove_generated(self) -> list[Path]:
        """Delete persisted data directories and generated files.

        Returns:
            Paths that existed and were removed.
        """
        removed: list[Path] = []
        for directory in self.paths.data_directories():
            if directory.exists():
                shutil.rmtree(directory)
                removed.append(directory)

        if self.paths.desktop_file.exists():
            self.paths.desktop_file.unlink()
            removed.append(self.paths.desktop_file)

        return removed
