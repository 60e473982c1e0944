"""Installer settings management.

Handles persistent settings stored in
$XDG_CONFIG_HOME/opencode-stack/settings.yaml. Supports environment
variable overrides. These settings feed the generated tool configuration
(user identity, theme, editor) and a few installer knobs.
"""

import getpass
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

# Default values
DEFAULT_THEME = "dracula"
DEFAULT_EDITOR = "code"
DEFAULT_PROJECT_LANGUAGE = "bash"
DEFAULT_WORKSPACE = "~/Projects/opencode"
DEFAULT_ACCELERATOR = "auto"
DEFAULT_LOG_LEVEL = "warning"

ENV_PREFIX = "OPENCODE_STACK_"

SETTING_KEYS = (
    "user_name",
    "user_email",
    "theme",
    "editor",
    "project_language",
    "workspace",
    "accelerator",
    "log_level",
)


def _default_user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "user"


@dataclass
class Settings:
    """Installer settings."""

    user_name: str = field(default_factory=_default_user_name)
    user_email: str = ""
    theme: str = DEFAULT_THEME
    editor: str = DEFAULT_EDITOR
    project_language: str = DEFAULT_PROJECT_LANGUAGE
    workspace: str = DEFAULT_WORKSPACE
    accelerator: str = DEFAULT_ACCELERATOR
    log_level: str = DEFAULT_LOG_LEVEL

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    def get_source(self, key: str) -> str:
        """Get the source of a setting value."""
        return self._sources.get(key, "default")


def env_var_for(key: str) -> str:
    """Environment variable overriding a setting."""
    return f"{ENV_PREFIX}{key.upper()}"


def load_settings(path: Path | None = None) -> Settings:
    """Load installer settings.

    Precedence (highest to lowest):
    1. Environment variables (OPENCODE_STACK_<KEY>)
    2. Settings file
    3. Defaults

    Args:
        path: Settings file path. Nothing is read when None.

    Returns:
        Settings with values and sources
    """
    settings = Settings()
    sources: dict[str, str] = {key: "default" for key in SETTING_KEYS}

    if path is not None and path.exists():
        try:
            with open(path) as f:
                file_settings = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            file_settings = {}  # Unreadable settings fall back to defaults

        if isinstance(file_settings, dict):
            for key in SETTING_KEYS:
                if file_settings.get(key) is not None:
                    setattr(settings, key, str(file_settings[key]))
                    sources[key] = "config file"

    for key in SETTING_KEYS:
        value = os.environ.get(env_var_for(key))
        if value:
            setattr(settings, key, value)
            sources[key] = "environment"

    settings._sources = sources
    return settings
