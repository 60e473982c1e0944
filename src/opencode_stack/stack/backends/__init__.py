"""Provisioning backends, one per component kind.

- binary: fetch an executable (optionally run it as a daemon)
- container: run a named docker container
- config: render a configuration file from a template
"""

from ..registry import ComponentKind, ComponentSpec
from .base import ProvisioningBackend, ProvisioningContext
from .binary import BinaryBackend
from .config import ConfigBackend
from .container import ContainerBackend
from .docker import ContainerInfo, ContainerState, DockerClient, DockerDetector, DockerInfo

BACKEND_TYPES: dict[ComponentKind, type[ProvisioningBackend]] = {
    ComponentKind.BINARY: BinaryBackend,
    ComponentKind.CONTAINER: ContainerBackend,
    ComponentKind.CONFIG: ConfigBackend,
}


def create_backend(spec: ComponentSpec, context: ProvisioningContext) -> ProvisioningBackend:
    """Build the backend matching a component's kind."""
    return BACKEND_TYPES[spec.kind](spec, context)


__all__ = [
    "BACKEND_TYPES",
    "create_backend",
    "ProvisioningBackend",
    "ProvisioningContext",
    "BinaryBackend",
    "ConfigBackend",
    "ContainerBackend",
    "ContainerInfo",
    "ContainerState",
    "DockerClient",
    "DockerDetector",
    "DockerInfo",
]
