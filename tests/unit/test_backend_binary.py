"""Unit tests for the fetch-binary backend."""

from __future__ import annotations

import itertools
import signal
import tarfile
from dataclasses import replace
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from opencode_stack.stack.backends import BinaryBackend
from opencode_stack.stack.backends.binary import extract_archive, find_executable, is_archive
from opencode_stack.stack.errors import AcquisitionFailed, ResolutionFailed
from opencode_stack.stack.profile import Architecture
from opencode_stack.stack.registry import default_registry
from opencode_stack.stack.results import InstallAction, LifecycleResult

BINARY_MODULE = "opencode_stack.stack.backends.binary"


def _spec(paths, name):
    return next(s for s in default_registry(paths) if s.name == name)


def _make_executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n")
    path.chmod(0o755)
    return path


def _write_tarball(destination: Path, members: dict[str, str]) -> None:
    staging = destination.parent / "staging"
    with tarfile.open(destination, "w:gz") as tf:
        for arcname, content in members.items():
            source = staging / arcname
            source.parent.mkdir(parents=True, exist_ok=True)
            source.write_text(content)
            source.chmod(0o755)
            tf.add(source, arcname=arcname)


class TestArchiveHelpers:
    """Tests for archive handling helpers."""

    def test_is_archive(self):
        assert is_archive("piper_linux_x86_64.tar.gz")
        assert is_archive("tool.ZIP")
        assert not is_archive("ollama-linux-amd64")

    def test_find_executable_prefers_shallowest(self, tmp_path):
        _make_executable(tmp_path / "a" / "b" / "tool")
        shallow = _make_executable(tmp_path / "a" / "tool")
        assert find_executable(tmp_path, "tool") == shallow

    def test_find_executable_missing(self, tmp_path):
        assert find_executable(tmp_path, "tool") is None

    def test_extract_nested_tarball(self, tmp_path):
        archive = tmp_path / "dl" / "tool.tar.gz"
        archive.parent.mkdir()
        _write_tarball(archive, {"tool-1.0/bin/tool": "binary"})
        extract_archive(archive, tmp_path / "out")
        assert (tmp_path / "out" / "tool-1.0" / "bin" / "tool").read_text() == "binary"

    def test_extract_rejects_escaping_members(self, tmp_path):
        """Test members pointing outside the destination are refused."""
        archive = tmp_path / "dl" / "evil.tar.gz"
        archive.parent.mkdir()
        with tarfile.open(archive, "w:gz") as tf:
            payload = tmp_path / "payload"
            payload.write_text("escaped")
            tf.add(payload, arcname="../escaped")

        with pytest.raises(tarfile.TarError):
            extract_archive(archive, tmp_path / "out")
        assert not (tmp_path / "escaped").exists()


class TestResolveDownloadUrl:
    """Tests for source resolution."""

    def test_url_source_amd64(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        assert backend.resolve_download_url() == "https://ollama.com/download/ollama-linux-amd64"

    def test_url_source_arm64(self, stack_paths, context):
        backend = BinaryBackend(
            _spec(stack_paths, "ollama"), replace(context, architecture=Architecture.ARM64)
        )
        assert backend.resolve_download_url().endswith("ollama-linux-arm64")

    def test_url_source_unsupported_arch(self, stack_paths, context):
        backend = BinaryBackend(
            _spec(stack_paths, "ollama"), replace(context, architecture=Architecture.OTHER)
        )
        with pytest.raises(ResolutionFailed):
            backend.resolve_download_url()

    def test_release_source_picks_arch_alias(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)
        assets = [
            {"name": "opencode-linux-arm64.tar.gz", "browser_download_url": "https://dl/arm64"},
            {"name": "opencode-darwin-x86_64.tar.gz", "browser_download_url": "https://dl/mac"},
            {"name": "opencode-linux-x86_64.tar.gz", "browser_download_url": "https://dl/x86_64"},
        ]
        with patch.object(BinaryBackend, "_latest_release_assets", return_value=assets):
            assert backend.resolve_download_url() == "https://dl/x86_64"

    def test_release_source_no_match(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)
        assets = [{"name": "opencode-windows-x86_64.zip", "browser_download_url": "https://dl/w"}]
        with patch.object(BinaryBackend, "_latest_release_assets", return_value=assets):
            with pytest.raises(ResolutionFailed):
                backend.resolve_download_url()

    def test_release_metadata_unreachable(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)
        with patch("httpx.get", side_effect=httpx.ConnectError("network down")):
            with pytest.raises(AcquisitionFailed):
                backend.resolve_download_url()

    def test_release_metadata_parsed(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)
        response = MagicMock()
        response.json.return_value = {"assets": [{"name": "x"}]}
        with patch("httpx.get", return_value=response) as mock_get:
            assert backend._latest_release_assets("opencode-ai/opencode") == [{"name": "x"}]
            assert mock_get.call_args[0][0].endswith("/repos/opencode-ai/opencode/releases/latest")


class TestBinaryInstall:
    """Tests for BinaryBackend.install()."""

    def test_skips_when_present(self, stack_paths, context):
        """Test an existing executable is not downloaded again."""
        _make_executable(stack_paths.bin_dir / "opencode")
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)

        with patch.object(BinaryBackend, "_download") as mock_download:
            result = backend.install()

        assert result.action == InstallAction.SKIPPED
        mock_download.assert_not_called()

    def _place_ollama(self, stack_paths):
        _make_executable(stack_paths.bin_dir / "ollama")
        marker = stack_paths.language_models_dir / "manifests/registry.ollama.ai/library/llama2/7b"
        marker.parent.mkdir(parents=True)
        marker.write_text("{}")

    def test_skipped_daemon_is_restarted(self, stack_paths, context):
        """Test a second install brings a stopped daemon back up."""
        self._place_ollama(stack_paths)
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch(f"{BINARY_MODULE}.is_port_open", return_value=False),
            patch(f"{BINARY_MODULE}.wait_for_port", return_value=True),
            patch("subprocess.Popen", return_value=MagicMock(pid=4321)) as mock_popen,
            patch.object(BinaryBackend, "_download") as mock_download,
        ):
            result = backend.install("llama2:7b")

        assert result.action == InstallAction.SKIPPED
        assert "started" in result.detail
        mock_popen.assert_called_once()
        mock_download.assert_not_called()
        assert backend.pid_file.read_text() == "4321"

    def test_skipped_daemon_already_running(self, stack_paths, context):
        self._place_ollama(stack_paths)
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch.object(BinaryBackend, "is_running", return_value=True),
            patch("subprocess.Popen") as mock_popen,
        ):
            result = backend.install("llama2:7b")

        assert result.action == InstallAction.SKIPPED
        assert result.detail == "already installed"
        mock_popen.assert_not_called()

    def test_skipped_daemon_that_cannot_start_fails(self, stack_paths, context):
        self._place_ollama(stack_paths)
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch(f"{BINARY_MODULE}.is_port_open", return_value=False),
            patch(f"{BINARY_MODULE}.wait_for_port", return_value=False),
            patch("subprocess.Popen", return_value=MagicMock(pid=4321)),
        ):
            result = backend.install("llama2:7b")

        assert result.action == InstallAction.FAILED
        assert "11434" in result.detail

    def test_unsupported_arch_fails_without_network(self, stack_paths, context):
        backend = BinaryBackend(
            _spec(stack_paths, "ollama"), replace(context, architecture=Architecture.OTHER)
        )
        with patch("httpx.stream") as mock_stream:
            result = backend.install("llama2:7b")

        assert result.action == InstallAction.FAILED
        assert "ResolutionFailed" in result.detail
        mock_stream.assert_not_called()
        assert not backend.executable.exists()

    def test_archive_with_nested_layout(self, stack_paths, context):
        """Test the executable is found inside a nested archive layout."""
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)
        scratch_dirs = []

        def fake_download(url, destination):
            scratch_dirs.append(destination.parent)
            _write_tarball(destination, {"opencode-1.0/bin/opencode": "real binary"})

        with (
            patch.object(
                BinaryBackend,
                "resolve_download_url",
                return_value="https://dl/opencode-linux-x86_64.tar.gz",
            ),
            patch.object(BinaryBackend, "_download", side_effect=fake_download),
        ):
            result = backend.install()

        assert result.action == InstallAction.INSTALLED
        assert backend.executable.read_text() == "real binary"
        assert backend.binary_present()
        assert not scratch_dirs[0].exists()

    def test_plain_binary_download(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)

        def fake_download(url, destination):
            destination.write_text("plain binary")

        with (
            patch.object(BinaryBackend, "resolve_download_url", return_value="https://dl/opencode"),
            patch.object(BinaryBackend, "_download", side_effect=fake_download),
        ):
            result = backend.install()

        assert result.action == InstallAction.INSTALLED
        assert backend.executable.read_text() == "plain binary"

    def test_corrupt_archive_cleans_up(self, stack_paths, context):
        """Test a broken archive fails the component and leaves no scratch files."""
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)
        scratch_dirs = []

        def fake_download(url, destination):
            scratch_dirs.append(destination.parent)
            destination.write_bytes(b"not a tarball")

        with (
            patch.object(BinaryBackend, "resolve_download_url", return_value="https://dl/x.tar.gz"),
            patch.object(BinaryBackend, "_download", side_effect=fake_download),
        ):
            result = backend.install()

        assert result.action == InstallAction.FAILED
        assert "AcquisitionFailed" in result.detail
        assert not backend.executable.exists()
        assert not scratch_dirs[0].exists()

    def test_archive_without_binary(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)

        def fake_download(url, destination):
            _write_tarball(destination, {"README.md": "docs"})

        with (
            patch.object(BinaryBackend, "resolve_download_url", return_value="https://dl/x.tar.gz"),
            patch.object(BinaryBackend, "_download", side_effect=fake_download),
        ):
            result = backend.install()

        assert result.action == InstallAction.FAILED
        assert "not found" in result.detail

    def test_download_error(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        with patch("httpx.stream", side_effect=httpx.ConnectError("refused")):
            result = backend.install()

        assert result.action == InstallAction.FAILED
        assert "AcquisitionFailed" in result.detail


class TestVariantArtifacts:
    """Tests for model artifacts acquired alongside binaries."""

    def test_missing_voice_model_means_not_installed(self, stack_paths, context):
        _make_executable(stack_paths.bin_dir / "piper")
        backend = BinaryBackend(_spec(stack_paths, "piper"), context)
        assert not backend.is_installed()

    def test_voice_model_download(self, stack_paths, context):
        _make_executable(stack_paths.bin_dir / "piper")
        backend = BinaryBackend(_spec(stack_paths, "piper"), context)
        urls = []

        def fake_download(url, destination):
            urls.append(url)
            destination.write_bytes(b"onnx")

        with patch.object(BinaryBackend, "_download", side_effect=fake_download):
            result = backend.install("en-us-amy-low.onnx")
            again = backend.install("en-us-amy-low.onnx")

        assert result.action == InstallAction.INSTALLED
        assert again.action == InstallAction.SKIPPED
        assert urls == ["https://github.com/rhasspy/piper/releases/download/v1.2.0/en-us-amy-low.onnx"]
        assert (stack_paths.voice_models_dir / "en-us-amy-low.onnx").read_bytes() == b"onnx"
        assert backend.is_installed()

    def test_language_model_pull(self, stack_paths, context):
        """Test a language model is pulled with the component's own binary."""
        executable = _make_executable(stack_paths.bin_dir / "ollama")
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        marker = (
            stack_paths.language_models_dir
            / "manifests/registry.ollama.ai/library/llama2/7b"
        )

        def fake_pull(args, **kwargs):
            marker.parent.mkdir(parents=True, exist_ok=True)
            marker.write_text("{}")
            return MagicMock(returncode=0, stderr="")

        with (
            patch.object(
                BinaryBackend, "start", return_value=LifecycleResult("ollama", True, "started")
            ),
            patch("subprocess.run", side_effect=fake_pull) as mock_run,
        ):
            result = backend.install("llama2:7b")

        assert result.action == InstallAction.INSTALLED
        args, kwargs = mock_run.call_args
        assert args[0] == [str(executable), "pull", "llama2:7b"]
        assert kwargs["env"]["OLLAMA_MODELS"] == str(stack_paths.language_models_dir)

    def test_pull_failure(self, stack_paths, context):
        _make_executable(stack_paths.bin_dir / "ollama")
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch.object(
                BinaryBackend, "start", return_value=LifecycleResult("ollama", True, "started")
            ),
            patch("subprocess.run", return_value=MagicMock(returncode=1, stderr="pull failed")),
        ):
            result = backend.install("llama2:7b")

        assert result.action == InstallAction.FAILED
        assert "pull failed" in result.detail

    def test_pull_without_daemon(self, stack_paths, context):
        _make_executable(stack_paths.bin_dir / "ollama")
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch.object(
                BinaryBackend, "start", return_value=LifecycleResult("ollama", False, "port busy")
            ),
            patch("subprocess.run") as mock_run,
        ):
            result = backend.install("llama2:7b")

        assert result.action == InstallAction.FAILED
        assert "port busy" in result.detail
        mock_run.assert_not_called()

    def test_post_install_check(self, stack_paths, context):
        """Test a pull that reports success but leaves nothing behind."""
        _make_executable(stack_paths.bin_dir / "ollama")
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch.object(
                BinaryBackend, "start", return_value=LifecycleResult("ollama", True, "started")
            ),
            patch("subprocess.run", return_value=MagicMock(returncode=0, stderr="")),
        ):
            result = backend.install("llama2:7b")

        assert result.action == InstallAction.FAILED
        assert "PostInstallCheckFailed" in result.detail

    def test_pull_into_foreign_daemon(self, stack_paths, context):
        """Test a pull served by a daemon we did not start names the cause."""
        _make_executable(stack_paths.bin_dir / "ollama")
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch(f"{BINARY_MODULE}.is_port_open", return_value=True),
            patch("subprocess.Popen") as mock_popen,
            patch("subprocess.run", return_value=MagicMock(returncode=0, stderr="")),
        ):
            result = backend.install("llama2:7b")

        assert result.action == InstallAction.FAILED
        assert result.detail.startswith("AcquisitionFailed:")
        assert "not start" in result.detail
        assert str(stack_paths.language_models_dir) in result.detail
        mock_popen.assert_not_called()


class TestDaemonLifecycle:
    """Tests for daemon start/stop."""

    def test_stale_pid_file_removed(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        backend.pid_file.parent.mkdir(parents=True)
        backend.pid_file.write_text("4242")

        with patch("os.kill", side_effect=ProcessLookupError):
            assert backend.managed_process() == (False, None)
        assert not backend.pid_file.exists()

    def test_garbage_pid_file(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        backend.pid_file.parent.mkdir(parents=True)
        backend.pid_file.write_text("not-a-pid")
        assert backend.managed_process() == (False, None)

    def test_start(self, stack_paths, context):
        _make_executable(stack_paths.bin_dir / "ollama")
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch(f"{BINARY_MODULE}.is_port_open", return_value=False),
            patch(f"{BINARY_MODULE}.wait_for_port", return_value=True),
            patch("subprocess.Popen", return_value=MagicMock(pid=4321)) as mock_popen,
        ):
            result = backend.start()

        assert result.success is True
        assert backend.pid_file.read_text() == "4321"
        args, kwargs = mock_popen.call_args
        assert args[0] == [str(backend.executable), "serve"]
        assert kwargs["start_new_session"] is True
        assert stack_paths.log_file("ollama").exists()

    def test_start_not_ready(self, stack_paths, context):
        _make_executable(stack_paths.bin_dir / "ollama")
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch(f"{BINARY_MODULE}.is_port_open", return_value=False),
            patch(f"{BINARY_MODULE}.wait_for_port", return_value=False),
            patch("subprocess.Popen", return_value=MagicMock(pid=4321)),
        ):
            result = backend.start()

        assert result.success is False
        assert "11434" in result.detail

    def test_start_already_running(self, stack_paths, context):
        _make_executable(stack_paths.bin_dir / "ollama")
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)

        with (
            patch(f"{BINARY_MODULE}.is_port_open", return_value=True),
            patch("subprocess.Popen") as mock_popen,
        ):
            result = backend.start()

        assert result.success is True
        assert "not started by opencode-stack" in result.detail
        mock_popen.assert_not_called()

    def test_start_without_binary(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        assert backend.start().success is False

    def test_stop_not_running(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        with patch(f"{BINARY_MODULE}.is_port_open", return_value=False):
            result = backend.stop()
        assert result.success is True
        assert result.detail == "not running"

    def test_stop_leaves_foreign_daemon(self, stack_paths, context):
        """Test a daemon without our PID file is not killed."""
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        with (
            patch(f"{BINARY_MODULE}.is_port_open", return_value=True),
            patch("os.kill") as mock_kill,
        ):
            result = backend.stop()
        assert result.success is True
        assert "untouched" in result.detail
        mock_kill.assert_not_called()

    def test_stop_sends_sigterm(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        backend.pid_file.parent.mkdir(parents=True)
        backend.pid_file.write_text("4242")
        signals = []

        def fake_kill(pid, sig):
            signals.append(sig)
            if sig == 0 and signal.SIGTERM in signals:
                raise ProcessLookupError

        with (
            patch("os.kill", side_effect=fake_kill),
            patch(f"{BINARY_MODULE}._reap"),
        ):
            result = backend.stop()

        assert result.success is True
        assert signals[:2] == [0, signal.SIGTERM]
        assert signal.SIGKILL not in signals
        assert not backend.pid_file.exists()

    def test_stop_escalates_to_sigkill(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "ollama"), context)
        backend.pid_file.parent.mkdir(parents=True)
        backend.pid_file.write_text("4242")
        clock = itertools.chain([0.0, 1.0], itertools.repeat(10.0))

        with (
            patch("os.kill") as mock_kill,
            patch(f"{BINARY_MODULE}._reap"),
            patch("time.monotonic", side_effect=lambda: next(clock)),
            patch("time.sleep"),
        ):
            result = backend.stop()

        assert result.success is True
        assert "force-killed" in result.detail
        assert mock_kill.call_args_list[-1][0] == (4242, signal.SIGKILL)

    def test_non_daemon_start_stop(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)
        assert backend.start().success is True
        assert backend.stop().success is True
        assert backend.is_running() is False


class TestBinaryRemove:
    """Tests for BinaryBackend.remove()."""

    def test_remove(self, stack_paths, context):
        _make_executable(stack_paths.bin_dir / "opencode")
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)
        result = backend.remove()
        assert result.success is True
        assert not backend.executable.exists()

    def test_remove_absent_is_success(self, stack_paths, context):
        backend = BinaryBackend(_spec(stack_paths, "opencode"), context)
        assert backend.remove().success is True
