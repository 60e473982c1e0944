"""Path management for opencode-stack.

Manages the XDG-style directory layout shared by every command. Paths are
carried around as a `StackPaths` value so tests can root the whole layout
in a temporary directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

APP_NAME = "opencode-stack"

# Environment variable consumed by the language-model daemon
MODEL_DIR_ENV_VAR = "OLLAMA_MODELS"


def _xdg_dir(env_var: str, home: Path, default: str) -> Path:
    """Resolve an XDG base directory, falling back to the default under home."""
    value = os.environ.get(env_var)
    if value and Path(value).is_absolute():
        return Path(value)
    return home / default


@dataclass(frozen=True)
class StackPaths:
    """Filesystem layout for the stack."""

    home: Path
    bin_dir: Path
    config_root: Path
    data_root: Path
    state_dir: Path

    @classmethod
    def from_home(cls, home: Path | None = None, use_env: bool = True) -> StackPaths:
        """Build the layout rooted at a home directory.

        Args:
            home: Home directory (default: current user's home)
            use_env: Honour XDG_* environment overrides
        """
        home = home or Path.home()
        if use_env:
            config_root = _xdg_dir("XDG_CONFIG_HOME", home, ".config")
            data_root = _xdg_dir("XDG_DATA_HOME", home, ".local/share")
            state_root = _xdg_dir("XDG_STATE_HOME", home, ".local/state")
        else:
            config_root = home / ".config"
            data_root = home / ".local" / "share"
            state_root = home / ".local" / "state"

        return cls(
            home=home,
            bin_dir=home / ".local" / "bin",
            config_root=config_root,
            data_root=data_root,
            state_dir=state_root / APP_NAME,
        )

    @property
    def tool_config_dir(self) -> Path:
        """Config directory of the opencode tool itself."""
        return self.config_root / "opencode"

    @property
    def tool_config_file(self) -> Path:
        return self.tool_config_dir / "config.json"

    @property
    def settings_file(self) -> Path:
        """Settings of this installer (not of the installed tool)."""
        return self.config_root / APP_NAME / "settings.yaml"

    @property
    def models_root(self) -> Path:
        return self.data_root / "models"

    @property
    def language_models_dir(self) -> Path:
        return self.models_root / "ollama"

    @property
    def image_models_dir(self) -> Path:
        return self.models_root / "images"

    @property
    def voice_models_dir(self) -> Path:
        return self.models_root / "tts"

    @property
    def webui_data_dir(self) -> Path:
        """Persisted volume of the chat web UI container."""
        return self.data_root / "openwebui"

    @property
    def desktop_file(self) -> Path:
        return self.data_root / "applications" / "opencode.desktop"

    @property
    def shell_profile(self) -> Path:
        return self.home / ".bashrc"

    def pid_file(self, name: str) -> Path:
        """PID file of a detached daemon component."""
        return self.state_dir / f"{name}.pid"

    def log_file(self, name: str) -> Path:
        """Log file of a detached daemon component."""
        return self.state_dir / f"{name}.log"

    def data_directories(self) -> list[Path]:
        """Directories removed by `clean` (persisted data and generated files)."""
        return [self.models_root, self.webui_data_dir, self.tool_config_dir]
