"""Component registry.

Each installable unit of the stack is described by a static ComponentSpec.
The registry is an ordered tuple built once per process; adding a
component means adding an entry here, not new branches in the commands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..shared.paths import MODEL_DIR_ENV_VAR, StackPaths
from .profile import Architecture
from .selection import ModelSlot


class ComponentKind(Enum):
    """Provisioning backend kind."""

    BINARY = "binary"  # Fetched executable, optionally a daemon
    CONTAINER = "container"  # Container run from an image
    CONFIG = "config"  # File rendered from a template


@dataclass(frozen=True)
class UrlSource:
    """Download location built from a template with an `{arch}` placeholder."""

    template: str
    architectures: tuple[Architecture, ...] = (Architecture.AMD64, Architecture.ARM64)


@dataclass(frozen=True)
class ReleaseSource:
    """Latest GitHub release of a repository; the asset is picked by name."""

    repo: str
    platform: str = "linux"


@dataclass(frozen=True)
class VariantArtifact:
    """Model artifact acquired for the variant chosen in the plan.

    `marker` is a path template relative to `directory` whose existence
    means the variant is present. Templates may use `{variant}`, `{name}`
    and `{tag}` (a `name:tag` variant split at the colon, tag defaulting to
    `latest`). Artifacts are either downloaded from `url_template` or pulled
    by running the component's own binary with `pull_args`.
    """

    slot: ModelSlot
    directory: Path
    marker: str = "{variant}"
    url_template: str | None = None
    pull_args: tuple[str, ...] = ()

    def marker_path(self, variant: str) -> Path:
        name, _, tag = variant.partition(":")
        return self.directory / self.marker.format(variant=variant, name=name, tag=tag or "latest")


@dataclass(frozen=True)
class DaemonSpec:
    """How a binary component runs as a detached background service."""

    args: tuple[str, ...]
    port: int
    environment: dict[str, str] = field(default_factory=dict)
    ready_attempts: int = 10
    ready_interval: float = 0.5


@dataclass(frozen=True)
class ContainerSpec:
    """Host integration points of a container component.

    Values are passed to the container runtime unchanged.
    """

    image: str
    ports: tuple[str, ...] = ()
    volumes: tuple[str, ...] = ()
    environment: dict[str, str] = field(default_factory=dict)
    extra_hosts: tuple[str, ...] = ()
    restart: str = "unless-stopped"


@dataclass(frozen=True)
class ComponentSpec:
    """Registry entry describing one installable unit."""

    name: str
    kind: ComponentKind
    display_name: str
    binary: str | None = None
    source: UrlSource | ReleaseSource | None = None
    artifact: VariantArtifact | None = None
    daemon: DaemonSpec | None = None
    container: ContainerSpec | None = None
    template: str | None = None
    target: Path | None = None
    endpoint: str | None = None

    @property
    def slot(self) -> ModelSlot | None:
        return self.artifact.slot if self.artifact else None

    @property
    def network_exposed(self) -> bool:
        return self.endpoint is not None

    @property
    def long_running(self) -> bool:
        return self.kind == ComponentKind.CONTAINER or self.daemon is not None


def default_registry(paths: StackPaths) -> tuple[ComponentSpec, ...]:
    """Build the fixed, ordered component registry for a filesystem layout."""
    return (
        ComponentSpec(
            name="opencode",
            kind=ComponentKind.BINARY,
            display_name="OpenCode AI",
            binary="opencode",
            source=ReleaseSource("opencode-ai/opencode"),
        ),
        ComponentSpec(
            name="ollama",
            kind=ComponentKind.BINARY,
            display_name="Ollama",
            binary="ollama",
            source=UrlSource("https://ollama.com/download/ollama-linux-{arch}"),
            artifact=VariantArtifact(
                slot=ModelSlot.LANGUAGE,
                directory=paths.language_models_dir,
                marker="manifests/registry.ollama.ai/library/{name}/{tag}",
                pull_args=("pull", "{variant}"),
            ),
            daemon=DaemonSpec(
                args=("serve",),
                port=11434,
                environment={MODEL_DIR_ENV_VAR: str(paths.language_models_dir)},
            ),
            endpoint="http://localhost:11434/api/tags",
        ),
        ComponentSpec(
            name="piper",
            kind=ComponentKind.BINARY,
            display_name="Piper TTS",
            binary="piper",
            source=ReleaseSource("rhasspy/piper"),
            artifact=VariantArtifact(
                slot=ModelSlot.VOICE,
                directory=paths.voice_models_dir,
                url_template="https://github.com/rhasspy/piper/releases/download/v1.2.0/{variant}",
            ),
        ),
        ComponentSpec(
            name="openwebui",
            kind=ComponentKind.CONTAINER,
            display_name="OpenWebUI",
            container=ContainerSpec(
                image="ghcr.io/open-webui/open-webui:main",
                ports=("3000:8080",),
                volumes=(f"{paths.webui_data_dir}:/app/data",),
                environment={
                    "OLLAMA_BASE_URL": "http://host.docker.internal:11434",
                    "ENABLE_OLLAMA_API": "true",
                    "WEBUI_AUTH": "false",
                },
                extra_hosts=("host.docker.internal:host-gateway",),
            ),
            endpoint="http://localhost:3000",
        ),
        ComponentSpec(
            name="opendiffusion",
            kind=ComponentKind.CONTAINER,
            display_name="OpenDiffusion",
            container=ContainerSpec(
                image="ghcr.io/casjaysdevdocker/opendiffusion:latest",
                ports=("7860:7860",),
                volumes=(f"{paths.image_models_dir}:/models",),
            ),
            endpoint="http://localhost:7860",
        ),
        ComponentSpec(
            name="opencode-config",
            kind=ComponentKind.CONFIG,
            display_name="OpenCode configuration",
            template="opencode-config",
            target=paths.tool_config_file,
        ),
    )
