"""Shared modules for opencode-stack.

- Paths: XDG-style layout of binaries, configs, models and data
- Logging: structlog configuration
"""

from .logging import configure_logging, level_for_verbosity
from .paths import APP_NAME, MODEL_DIR_ENV_VAR, StackPaths

__all__ = [
    # Paths
    "APP_NAME",
    "MODEL_DIR_ENV_VAR",
    "StackPaths",
    # Logging
    "configure_logging",
    "level_for_verbosity",
]
