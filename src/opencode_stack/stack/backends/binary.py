"""Fetch-binary backend.

Downloads a standalone executable into the binaries directory, optionally
acquires the model variant the component serves, and manages the
component as a detached daemon when its spec declares one.
"""

from __future__ import annotations

import os
import shutil
import signal
import subprocess
import tarfile
import tempfile
import time
import zipfile
from pathlib import Path

import httpx

from ..errors import AcquisitionFailed, ResolutionFailed
from ..probes import is_port_open, wait_for_port
from ..profile import Architecture
from ..registry import ReleaseSource, UrlSource
from ..results import InstallAction, InstallResult, LifecycleResult
from .base import ProvisioningBackend

GITHUB_API = "https://api.github.com"

ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".tar.xz", ".tar.bz2", ".zip")

# Substrings release assets use for each architecture
ARCH_ALIASES: dict[Architecture, tuple[str, ...]] = {
    Architecture.AMD64: ("amd64", "x86_64"),
    Architecture.ARM64: ("arm64", "aarch64"),
    Architecture.ARMV7: ("armv7",),
}

PULL_TIMEOUT = 3600
STOP_TIMEOUT_SECONDS = 5.0


def is_archive(filename: str) -> bool:
    return filename.lower().endswith(ARCHIVE_SUFFIXES)


def extract_archive(archive: Path, destination: Path) -> None:
    """Extract a tar or zip archive into destination.

    Raises:
        OSError, tarfile.TarError, zipfile.BadZipFile: On unreadable archives.
    """
    destination.mkdir(parents=True, exist_ok=True)
    if archive.name.lower().endswith(".zip"):
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(destination)
    else:
        with tarfile.open(archive) as tf:
            tf.extractall(destination, filter="data")


def find_executable(root: Path, name: str) -> Path | None:
    """Find a file called `name` anywhere below root.

    Shallower matches win; an executable match beats a plain file (zip
    archives do not keep permission bits).
    """
    candidates = sorted(
        (p for p in root.rglob(name) if p.is_file()),
        key=lambda p: (len(p.relative_to(root).parts), str(p)),
    )
    for candidate in candidates:
        if os.access(candidate, os.X_OK):
            return candidate
    return candidates[0] if candidates else None


class BinaryBackend(ProvisioningBackend):
    """Provision a component as a downloaded executable."""

    @property
    def executable(self) -> Path:
        return self.paths.bin_dir / (self.spec.binary or self.name)

    @property
    def pid_file(self) -> Path:
        return self.paths.pid_file(self.name)

    def binary_present(self) -> bool:
        return self.executable.is_file() and os.access(self.executable, os.X_OK)

    def _is_present(self, variant: str | None) -> bool:
        if not self.binary_present():
            return False
        if variant is None or self.spec.artifact is None:
            return True
        return self.spec.artifact.marker_path(variant).exists()

    def install(self, variant: str | None = None) -> InstallResult:
        """Install the component; an installed daemon that is down is started again."""
        result = super().install(variant)
        if result.action != InstallAction.SKIPPED or self.spec.daemon is None:
            return result
        if self.is_running():
            return result

        started = self.start()
        if not started.success:
            self.log.warning("installed daemon could not be started", detail=started.detail)
            return InstallResult(
                self.name, InstallAction.FAILED, f"installed but not running: {started.detail}"
            )
        return InstallResult(self.name, InstallAction.SKIPPED, f"already installed; {started.detail}")

    def _acquire(self, variant: str | None) -> None:
        if not self.binary_present():
            url = self.resolve_download_url()
            self._fetch_binary(url)
        if variant is not None and self.spec.artifact is not None:
            self._acquire_artifact(variant)

    # ── Source resolution ──

    def resolve_download_url(self) -> str:
        """Resolve the concrete download location for the host architecture.

        Raises:
            ResolutionFailed: If nothing is published for this architecture.
            AcquisitionFailed: If the release metadata could not be fetched.
        """
        arch = self.context.architecture
        source = self.spec.source

        if isinstance(source, UrlSource):
            if arch not in source.architectures:
                raise ResolutionFailed(self.name, f"No download for architecture: {arch.value}")
            return source.template.format(arch=arch.value)

        if isinstance(source, ReleaseSource):
            aliases = ARCH_ALIASES.get(arch)
            if not aliases:
                raise ResolutionFailed(self.name, f"No release for architecture: {arch.value}")
            for asset in self._latest_release_assets(source.repo):
                asset_name = str(asset.get("name", "")).lower()
                url = asset.get("browser_download_url")
                if url and source.platform in asset_name and any(a in asset_name for a in aliases):
                    return url
            raise ResolutionFailed(
                self.name,
                f"Failed to find {source.repo} release for architecture: {arch.value}",
            )

        raise ResolutionFailed(self.name, "No download source declared")

    def _latest_release_assets(self, repo: str) -> list[dict]:
        url = f"{GITHUB_API}/repos/{repo}/releases/latest"
        try:
            response = httpx.get(
                url,
                headers={"Accept": "application/vnd.github+json"},
                timeout=self.context.http_timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise AcquisitionFailed(self.name, f"Could not query {url}: {e}") from e
        except ValueError as e:
            raise AcquisitionFailed(self.name, f"Invalid release metadata from {url}") from e

        return list(data.get("assets") or []) if isinstance(data, dict) else []

    # ── Acquisition ──

    def _download(self, url: str, destination: Path) -> None:
        self.log.info("downloading", url=url)
        try:
            with httpx.stream(
                "GET",
                url,
                follow_redirects=True,
                timeout=self.context.http_timeout,
            ) as response:
                response.raise_for_status()
                with open(destination, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as e:
            raise AcquisitionFailed(self.name, f"Download failed: {url}: {e}") from e
        except OSError as e:
            raise AcquisitionFailed(self.name, f"Could not write {destination}: {e}") from e

    def _fetch_binary(self, url: str) -> None:
        """Download into a scratch directory and place the executable.

        The scratch directory is removed on every path out of this method.
        """
        filename = url.rstrip("/").rsplit("/", 1)[-1] or self.name
        with tempfile.TemporaryDirectory(prefix=f"{self.name}-") as scratch:
            scratch_dir = Path(scratch)
            download = scratch_dir / filename
            self._download(url, download)

            if is_archive(filename):
                extract_dir = scratch_dir / "extract"
                try:
                    extract_archive(download, extract_dir)
                except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
                    raise AcquisitionFailed(self.name, f"Could not extract {filename}: {e}") from e
                found = find_executable(extract_dir, self.executable.name)
                if found is None:
                    raise AcquisitionFailed(
                        self.name, f"'{self.executable.name}' not found in {filename}"
                    )
            else:
                found = download

            try:
                self.paths.bin_dir.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(found, self.executable)
                self.executable.chmod(0o755)
            except OSError as e:
                raise AcquisitionFailed(self.name, f"Could not install binary: {e}") from e

    def _acquire_artifact(self, variant: str) -> None:
        artifact = self.spec.artifact
        marker = artifact.marker_path(variant)
        if marker.exists():
            return

        artifact.directory.mkdir(parents=True, exist_ok=True)

        if artifact.url_template:
            url = artifact.url_template.format(variant=variant)
            with tempfile.TemporaryDirectory(prefix=f"{self.name}-model-") as scratch:
                partial = Path(scratch) / marker.name
                self._download(url, partial)
                marker.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(partial), marker)
            return

        if artifact.pull_args:
            self._pull_variant(variant)
            return

        raise ResolutionFailed(self.name, f"No way to acquire model {variant}")

    def _pull_variant(self, variant: str) -> None:
        foreign = self.foreign_daemon()
        if self.spec.daemon is not None:
            started = self.start()
            if not started.success:
                raise AcquisitionFailed(self.name, f"Cannot pull {variant}: {started.detail}")

        args = [str(self.executable)] + [
            arg.format(variant=variant) for arg in self.spec.artifact.pull_args
        ]
        self.log.info("pulling model", variant=variant)
        try:
            result = subprocess.run(
                args,
                env=self._environment(),
                capture_output=True,
                text=True,
                timeout=PULL_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise AcquisitionFailed(self.name, f"Pull of {variant} timed out") from e
        except OSError as e:
            raise AcquisitionFailed(self.name, f"Pull of {variant} failed: {e}") from e

        if result.returncode != 0:
            raise AcquisitionFailed(
                self.name, f"Pull of {variant} failed: {result.stderr.strip() or result.returncode}"
            )

        # A daemon we did not start keeps models in its own directory
        if foreign and not self.spec.artifact.marker_path(variant).exists():
            raise AcquisitionFailed(
                self.name,
                f"{variant} was pulled by a daemon on port {self.spec.daemon.port} "
                "that opencode-stack did not start, so it is not stored in "
                f"{self.spec.artifact.directory}; stop that daemon and run install again",
            )

    def _environment(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.spec.daemon is not None:
            env.update(self.spec.daemon.environment)
        return env

    def _installed_detail(self, variant: str | None) -> str:
        if variant:
            return f"installed to {self.executable} with {variant}"
        return f"installed to {self.executable}"

    # ── Daemon lifecycle ──

    def managed_process(self) -> tuple[bool, int | None]:
        """Check the daemon started by us, via its PID file.

        Returns:
            Tuple of (alive, pid). If not running, pid is None.
        """
        if not self.pid_file.exists():
            return False, None

        try:
            pid = int(self.pid_file.read_text().strip())
        except (ValueError, OSError):
            self.pid_file.unlink(missing_ok=True)
            return False, None

        try:
            os.kill(pid, 0)  # Signal 0 = check existence
            return True, pid
        except ProcessLookupError:
            self.pid_file.unlink(missing_ok=True)
            return False, None
        except PermissionError:
            # Process exists but belongs to another user
            return True, pid

    def is_running(self) -> bool:
        if self.spec.daemon is None:
            return False
        alive, _ = self.managed_process()
        return alive or is_port_open(self.spec.daemon.port)

    def foreign_daemon(self) -> bool:
        """True when something we did not start listens on the daemon port."""
        if self.spec.daemon is None:
            return False
        alive, _ = self.managed_process()
        return not alive and is_port_open(self.spec.daemon.port)

    def start(self) -> LifecycleResult:
        daemon = self.spec.daemon
        if daemon is None:
            return LifecycleResult(self.name, True, "not a service")
        if not self.binary_present():
            return LifecycleResult(self.name, False, "binary not installed")
        if self.foreign_daemon():
            return LifecycleResult(
                self.name,
                True,
                f"already running (port {daemon.port} held by a daemon not started by opencode-stack)",
            )
        if self.is_running():
            return LifecycleResult(self.name, True, "already running")

        self.paths.state_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.paths.log_file(self.name)
        try:
            with open(log_path, "ab") as log_fd:
                process = subprocess.Popen(
                    [str(self.executable), *daemon.args],
                    env=self._environment(),
                    stdin=subprocess.DEVNULL,
                    stdout=log_fd,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as e:
            return LifecycleResult(self.name, False, f"could not start: {e}")

        self.pid_file.write_text(str(process.pid))
        self.log.info("daemon started", pid=process.pid, log=str(log_path))

        if wait_for_port(daemon.port, daemon.ready_attempts, daemon.ready_interval):
            return LifecycleResult(self.name, True, f"started (PID {process.pid})")
        return LifecycleResult(
            self.name,
            False,
            f"did not become ready on port {daemon.port}; see {log_path}",
        )

    def stop(self) -> LifecycleResult:
        """Stop the daemon via SIGTERM, force-killing after a timeout."""
        if self.spec.daemon is None:
            return LifecycleResult(self.name, True, "not a service")

        alive, pid = self.managed_process()
        if not alive:
            if is_port_open(self.spec.daemon.port):
                return LifecycleResult(
                    self.name, True, "running outside opencode-stack; left untouched"
                )
            return LifecycleResult(self.name, True, "not running")

        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            self.pid_file.unlink(missing_ok=True)
            return LifecycleResult(self.name, True, "not running")
        except PermissionError as e:
            return LifecycleResult(self.name, False, f"cannot signal PID {pid}: {e}")

        deadline = time.monotonic() + STOP_TIMEOUT_SECONDS
        while time.monotonic() < deadline:
            _reap(pid)
            try:
                os.kill(pid, 0)
            except ProcessLookupError:
                self.pid_file.unlink(missing_ok=True)
                return LifecycleResult(self.name, True, f"stopped (was PID {pid})")
            time.sleep(0.1)

        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass  # Already dead
        _reap(pid)

        self.pid_file.unlink(missing_ok=True)
        return LifecycleResult(self.name, True, f"force-killed (PID {pid})")

    def remove(self) -> LifecycleResult:
        stopped = self.stop()
        if not stopped.success:
            return LifecycleResult(self.name, False, stopped.detail)
        try:
            self.executable.unlink(missing_ok=True)
            self.pid_file.unlink(missing_ok=True)
        except OSError as e:
            return LifecycleResult(self.name, False, str(e))
        return LifecycleResult(self.name, True, "removed")


def _reap(pid: int) -> None:
    """Collect an exited child so it does not linger as a zombie."""
    try:
        os.waitpid(pid, os.WNOHANG)
    except ChildProcessError:
        pass  # Not our child
