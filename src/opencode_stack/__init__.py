"""opencode-stack - Install and manage a local AI development stack."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("opencode-stack")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

from .main import main

__all__ = ["main", "__version__"]
