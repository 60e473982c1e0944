"""Run-container backend.

Installs a component as a single named container. Re-installation always
replaces any container holding the name, so there is never more than one.
"""

from __future__ import annotations

from ..errors import AcquisitionFailed, DependencyMissing
from ..registry import ComponentSpec, ContainerSpec
from ..results import LifecycleResult
from .base import ProvisioningBackend, ProvisioningContext
from .docker import ContainerInfo, ContainerState, DockerClient, DockerDetector


class ContainerBackend(ProvisioningBackend):
    """Provision a component as a docker container."""

    def __init__(
        self,
        spec: ComponentSpec,
        context: ProvisioningContext,
        docker: DockerClient | None = None,
        detector: DockerDetector | None = None,
    ):
        super().__init__(spec, context)
        if spec.container is None:
            raise ValueError(f"Component {spec.name} has no container definition")
        self.docker = docker or DockerClient()
        self.detector = detector or DockerDetector()

    @property
    def container(self) -> ContainerSpec:
        return self.spec.container

    def inspect(self) -> ContainerInfo:
        return self.docker.inspect(self.name)

    def is_running(self) -> bool:
        return self.inspect().state == ContainerState.RUNNING

    def _is_present(self, variant: str | None) -> bool:
        info = self.inspect()
        return info.state == ContainerState.RUNNING and info.image == self.container.image

    def _acquire(self, variant: str | None) -> None:
        docker = self.detector.detect()
        if not docker.docker_available:
            raise DependencyMissing(self.name, docker.error or "Docker is not available")

        existing = self.inspect()
        if existing.state != ContainerState.ABSENT:
            self.log.info("replacing existing container", state=existing.state.value)
            success, msg = self.docker.remove(self.name)
            if not success:
                raise AcquisitionFailed(self.name, f"Could not remove existing container: {msg}")

        success, msg = self.docker.run(self.name, self.container)
        if not success:
            raise AcquisitionFailed(self.name, f"Could not start container: {msg}")

    def _installed_detail(self, variant: str | None) -> str:
        ports = ", ".join(self.container.ports)
        return f"container started ({ports})" if ports else "container started"

    def start(self) -> LifecycleResult:
        info = self.inspect()
        if info.state == ContainerState.RUNNING:
            return LifecycleResult(self.name, True, "already running")
        if info.state == ContainerState.ABSENT:
            return LifecycleResult(self.name, False, "container not installed")
        if info.state == ContainerState.UNKNOWN:
            docker = self.detector.detect()
            return LifecycleResult(self.name, False, docker.error or "Docker is not available")

        success, msg = self.docker.start(self.name)
        return LifecycleResult(self.name, success, "started" if success else msg)

    def stop(self) -> LifecycleResult:
        info = self.inspect()
        if info.state == ContainerState.ABSENT:
            return LifecycleResult(self.name, True, "container not installed")
        if info.state == ContainerState.STOPPED:
            return LifecycleResult(self.name, True, "already stopped")
        if info.state == ContainerState.UNKNOWN and not self.detector.detect().docker_available:
            return LifecycleResult(self.name, True, "Docker not available; nothing to stop")

        success, msg = self.docker.stop(self.name)
        return LifecycleResult(self.name, success, "stopped" if success else msg)

    def remove(self) -> LifecycleResult:
        info = self.inspect()
        if info.state == ContainerState.ABSENT:
            return LifecycleResult(self.name, True, "already absent")
        if info.state == ContainerState.UNKNOWN and not self.detector.detect().docker_available:
            return LifecycleResult(self.name, True, "Docker not available; nothing to remove")

        success, msg = self.docker.remove(self.name)
        return LifecycleResult(self.name, success, "removed" if success else msg)
