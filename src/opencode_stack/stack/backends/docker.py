"""Docker runtime access for container components.

Thin wrapper around the docker CLI: runtime detection plus the handful of
container operations the container backend needs. Operations return
`(success, message)` tuples instead of raising.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum

from ..registry import ContainerSpec

DOCKER_TIMEOUT = 10
RUN_TIMEOUT = 1800  # First run pulls the image


@dataclass
class DockerInfo:
    """Docker runtime detection result."""

    docker_available: bool
    docker_version: str | None = None
    error: str | None = None


class DockerDetector:
    """Detect the Docker CLI and a reachable Docker daemon."""

    def detect(self) -> DockerInfo:
        """Check that docker is installed and its daemon answers."""
        docker_path = shutil.which("docker")
        if not docker_path:
            return DockerInfo(
                docker_available=False,
                error="Docker not found. Install Docker: https://docs.docker.com/get-docker/",
            )

        try:
            result = subprocess.run(
                ["docker", "version", "--format", "{{.Server.Version}}"],
                capture_output=True,
                text=True,
                timeout=DOCKER_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            return DockerInfo(
                docker_available=False,
                error="Docker daemon not responding (timeout)",
            )
        except OSError as e:
            return DockerInfo(docker_available=False, error=f"Docker not runnable: {e}")

        if result.returncode != 0:
            return DockerInfo(
                docker_available=False,
                error=f"Docker daemon is not running or accessible: {result.stderr.strip()}",
            )

        return DockerInfo(docker_available=True, docker_version=result.stdout.strip())


class ContainerState(Enum):
    """State of a named container."""

    RUNNING = "running"
    STOPPED = "stopped"  # Exists but not running
    ABSENT = "absent"
    UNKNOWN = "unknown"  # Runtime unavailable


@dataclass
class ContainerInfo:
    """Inspection result for a named container."""

    state: ContainerState
    image: str | None = None
    status: str | None = None


class DockerClient:
    """Run docker CLI commands against named containers."""

    def inspect(self, name: str) -> ContainerInfo:
        """Inspect a container by name."""
        try:
            result = subprocess.run(
                [
                    "docker",
                    "container",
                    "inspect",
                    "--format",
                    "{{.State.Status}}|{{.Config.Image}}",
                    name,
                ],
                capture_output=True,
                text=True,
                timeout=DOCKER_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired):
            return ContainerInfo(ContainerState.UNKNOWN)

        if result.returncode != 0:
            if "no such" in result.stderr.lower():
                return ContainerInfo(ContainerState.ABSENT)
            return ContainerInfo(ContainerState.UNKNOWN, status=result.stderr.strip())

        status, _, image = result.stdout.strip().partition("|")
        state = ContainerState.RUNNING if status == "running" else ContainerState.STOPPED
        return ContainerInfo(state, image=image or None, status=status)

    def run(self, name: str, container: ContainerSpec) -> tuple[bool, str]:
        """Create and start a detached container.

        Returns:
            Tuple of (success, message).
        """
        return self._run(self.run_args(name, container), timeout=RUN_TIMEOUT)

    def run_args(self, name: str, container: ContainerSpec) -> list[str]:
        """Build the `docker run` command line for a container spec."""
        args = ["docker", "run", "-d", "--name", name]
        if container.restart:
            args.extend(["--restart", container.restart])
        for port in container.ports:
            args.extend(["-p", port])
        for volume in container.volumes:
            args.extend(["-v", volume])
        for key, value in container.environment.items():
            args.extend(["-e", f"{key}={value}"])
        for host in container.extra_hosts:
            args.append(f"--add-host={host}")
        args.append(container.image)
        return args

    def start(self, name: str) -> tuple[bool, str]:
        return self._run(["docker", "start", name])

    def stop(self, name: str) -> tuple[bool, str]:
        return self._run(["docker", "stop", name], timeout=60)

    def remove(self, name: str) -> tuple[bool, str]:
        """Stop and remove a container; a missing container counts as removed."""
        self._run(["docker", "stop", name], timeout=60)
        success, msg = self._run(["docker", "rm", name])
        if not success and "no such" in msg.lower():
            return True, "Container already absent"
        return success, msg

    def _run(self, args: list[str], timeout: float = DOCKER_TIMEOUT * 6) -> tuple[bool, str]:
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            return False, "Docker not found. Is Docker installed?"
        except subprocess.TimeoutExpired:
            return False, f"{' '.join(args[:2])} timed out"
        except OSError as e:
            return False, str(e)

        if result.returncode != 0:
            return False, result.stderr.strip() or f"{' '.join(args[:2])} failed"
        return True, result.stdout.strip()
