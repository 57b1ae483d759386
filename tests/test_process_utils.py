"""process_utils unit tests.

Test coverage:
- Child environment merging
- Liveness probe
- Output logging sink
- Pty channel, output pump and stats sampling
"""

from __future__ import annotations

import errno
import logging
import os
import subprocess
import threading
from pathlib import Path
from unittest import mock

import pytest

from helpers import BufferSink, wait_until
from ttyenv.local.environment import process_utils
from ttyenv.local.environment.process_utils import ProcessHandle, ProcessOutputLogger, PtyChannel, build_environment


# =============================================================================
# Environment Merging
# =============================================================================


class TestBuildEnvironment:
    """Test the child's environment."""

    BASE = {"PATH": "/usr/bin:/bin", "TERM": "dumb", "TTYENV_TOKEN": "secret", "LANG": "C.UTF-8"}

    def test_overrides_win(self, tmp_path: Path):
        env = build_environment(tmp_path, {"TERM": "vt100", "FOO": "bar"}, base_env=self.BASE)

        assert env["TERM"] == "vt100"
        assert env["FOO"] == "bar"
        assert env["HOME"] == str(tmp_path)

    def test_defaults_replace_inherited_values(self, tmp_path: Path):
        env = build_environment(tmp_path, {}, base_env={**self.BASE, "HOME": "/root"})

        assert env["TERM"] == "xterm-256color"
        assert env["HOME"] == str(tmp_path)
        assert env["PATH"] == "/usr/bin:/bin"
        assert env["LANG"] == "C.UTF-8"

    def test_reserved_prefix_is_dropped(self, tmp_path: Path):
        env = build_environment(tmp_path, {}, base_env=self.BASE)
        assert not any(key.startswith("TTYENV_") for key in env)

    def test_keys_are_case_sensitive(self, tmp_path: Path):
        env = build_environment(tmp_path, {"foo": "lower"}, base_env={"FOO": "upper"})

        assert env["FOO"] == "upper"
        assert env["foo"] == "lower"

    def test_defaults_to_process_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SOME_INHERITED_VALUE", "yes")
        monkeypatch.setenv("TTYENV_INTERNAL", "no")

        env = build_environment(tmp_path, {})

        assert env["SOME_INHERITED_VALUE"] == "yes"
        assert "TTYENV_INTERNAL" not in env


# =============================================================================
# Liveness Probe
# =============================================================================


class TestProbePid:
    """Test the zero-signal liveness probe."""

    def test_own_process_is_alive(self):
        assert process_utils.probe_pid(os.getpid()) is True

    def test_reaped_process_is_not_alive(self):
        proc = subprocess.Popen(["true"])
        proc.wait()
        assert process_utils.probe_pid(proc.pid) is False

    def test_permission_error_means_not_running(self):
        with mock.patch.object(process_utils.os, "kill", side_effect=PermissionError(errno.EPERM, "denied")):
            assert process_utils.probe_pid(1) is False

    def test_unexpected_error_propagates(self):
        with mock.patch.object(process_utils.os, "kill", side_effect=OSError(errno.EINVAL, "invalid")):
            with pytest.raises(OSError):
                process_utils.probe_pid(1)

    def test_probe_sends_signal_zero(self):
        with mock.patch.object(process_utils.os, "kill") as kill:
            assert process_utils.probe_pid(1234) is True
        kill.assert_called_once_with(1234, 0)


# =============================================================================
# Output Sink
# =============================================================================


class TestProcessOutputLogger:
    """Test the default output sink."""

    def test_lines_are_logged_on_proc_logger(self, caplog: pytest.LogCaptureFixture):
        sink = ProcessOutputLogger("game")
        with caplog.at_level(logging.INFO, logger="proc.game"):
            sink.write(b"hel")
            sink.write(b"lo\r\nwor")
            sink.write(b"ld\r\n")

        records = [r for r in caplog.records if r.name == "proc.game"]
        assert [r.getMessage() for r in records] == ["hello", "world"]

    def test_flush_emits_partial_line(self, caplog: pytest.LogCaptureFixture):
        sink = ProcessOutputLogger("game")
        with caplog.at_level(logging.INFO, logger="proc.game"):
            sink.write(b"> prompt")
            sink.flush()

        assert [r.getMessage() for r in caplog.records if r.name == "proc.game"] == ["> prompt"]

    def test_blank_lines_and_bad_bytes(self, caplog: pytest.LogCaptureFixture):
        sink = ProcessOutputLogger("game")
        with caplog.at_level(logging.INFO, logger="proc.game"):
            sink.write(b"\r\n\r\n\xffok\n")

        messages = [r.getMessage() for r in caplog.records if r.name == "proc.game"]
        assert messages == ["�ok"]


# =============================================================================
# Pty Channel, Output Pump and Stats
# =============================================================================


class TestPtyChannel:
    """Test the pty master wrapper."""

    def test_write_after_close(self):
        read_fd, write_fd = os.pipe()
        os.close(read_fd)
        channel = PtyChannel(write_fd)
        channel.close()

        assert channel.closed is True
        with pytest.raises(OSError):
            channel.write(b"late\n")

    def test_close_is_idempotent(self):
        read_fd, write_fd = os.pipe()
        os.close(write_fd)
        channel = PtyChannel(read_fd)
        channel.close()
        channel.close()
        assert channel.fileno() == -1

    def test_write_and_read_through_pipe(self):
        read_fd, write_fd = os.pipe()
        writer, reader = PtyChannel(write_fd), PtyChannel(read_fd)
        try:
            writer.write(b"ping\n")
            assert reader.read(16) == b"ping\n"
        finally:
            writer.close()
            reader.close()

    def test_read_after_close(self):
        read_fd, write_fd = os.pipe()
        os.close(write_fd)
        channel = PtyChannel(read_fd)
        channel.close()

        with pytest.raises(OSError) as excinfo:
            channel.read(16)
        assert excinfo.value.errno == errno.EBADF


class TestOutputPump:
    """Test the thread copying terminal output into the sink."""

    def test_pump_closes_channel_at_eof(self):
        read_fd, write_fd = os.pipe()
        channel = PtyChannel(read_fd)
        handle = ProcessHandle(process=mock.Mock(pid=4242), channel=channel)
        sink = BufferSink()

        process_utils.start_output_pump(handle, sink, "pump")
        os.write(write_fd, b"last words\n")
        os.close(write_fd)
        handle.pump_thread.join(5)

        assert sink.text == "last words\n"
        assert channel.closed is True

    def test_stuck_reader_keeps_channel_open(self):
        read_fd, write_fd = os.pipe()
        channel = PtyChannel(read_fd)
        handle = ProcessHandle(process=mock.Mock(pid=4242), channel=channel)
        entered, release = threading.Event(), threading.Event()

        class StuckSink(BufferSink):
            def write(self, data: bytes) -> None:
                entered.set()
                release.wait(5)
                super().write(data)

        try:
            process_utils.start_output_pump(handle, StuckSink(), "pump")
            os.write(write_fd, b"still talking\n")
            assert entered.wait(5)

            process_utils.stop_output_pump(handle, timeout=0.1)
            assert channel.closed is False

            release.set()
            assert wait_until(lambda: channel.closed)
        finally:
            release.set()
            os.close(write_fd)

    def test_stop_without_pump_closes_channel(self):
        read_fd, write_fd = os.pipe()
        os.close(write_fd)
        channel = PtyChannel(read_fd)

        process_utils.stop_output_pump(ProcessHandle(process=mock.Mock(pid=4242), channel=channel), timeout=0.1)
        assert channel.closed is True


class TestSampleStats:
    """Test psutil sampling."""

    def test_sample_own_process(self):
        stats = process_utils.sample_stats(os.getpid(), 0.05)
        assert stats.memory > 0
        assert stats.cpu >= 0.0

    def test_missing_process_raises(self):
        import psutil

        proc = subprocess.Popen(["true"])
        proc.wait()
        with pytest.raises(psutil.NoSuchProcess):
            process_utils.sample_stats(proc.pid, 0.05)
