import os
import pty
import errno
import fcntl
import psutil
import select
import logging
import termios
import threading
import subprocess
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple
from ttyenv.local.config import effective_settings as config
from ttyenv.local.environment.messages import ServerStats

log = logging.getLogger(__name__)


#* --- Process Status & Monitoring ---
def probe_pid(pid: int) -> bool:
    """
    Sends signal 0 to the PID to test that it exists without affecting it.
    Ambiguous answers (no such process, permission denied) count as not alive.
    """
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return False
    return True

def sample_stats(pid: int, interval: float) -> ServerStats:
    """
    Samples CPU usage over `interval` seconds and the current resident memory.

    :param pid: The process to sample.
    :param interval: Length of the CPU sampling window in seconds.
    :raises psutil.Error: If the process vanished or cannot be inspected.
    """
    proc = psutil.Process(pid)
    memory = proc.memory_info().rss
    cpu = proc.cpu_percent(interval=interval)
    return ServerStats(cpu=float(cpu), memory=float(memory))

#* --- Process Creation ---
def build_environment(root_directory: Path, overrides: Mapping[str, str],
                      base_env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Builds the child's environment.

    Starts from the supervisor's environment minus reserved variables, then adds
    HOME and TERM, then the caller's overrides. Later entries win.

    :param root_directory: The environment root, exported as HOME.
    :param overrides: Caller supplied variables.
    :param base_env: Environment to inherit from, defaults to os.environ.
    :return: The merged variables.
    """
    if base_env is None:
        base_env = os.environ

    env: Dict[str, str] = {
        key: value for key, value in base_env.items()
        if not key.startswith(config.RESERVED_ENV_PREFIX)
    }
    env["HOME"] = str(root_directory)
    env["TERM"] = config.TERMINAL_TYPE
    for key, value in overrides.items():
        env[key] = value
    return env

def format_command_line(argv: List[str]) -> str:
    return " ".join(argv)

def _acquire_controlling_terminal() -> None:
    """Runs in the child after setsid(); makes the pty slave on fd 0 its controlling terminal."""
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PtyChannel:
    """
    The master side of a pseudo-terminal. Reads deliver the child's combined
    output, writes land on the child's stdin.
    """

    def __init__(self, master_fd: int) -> None:
        self._fd = master_fd
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._fd < 0

    def fileno(self) -> int:
        return self._fd

    def read(self, size: int) -> bytes:
        fd = self._fd
        if fd < 0:
            raise OSError(errno.EBADF, "pty channel is closed")
        return os.read(fd, size)

    def write(self, data: bytes) -> None:
        """Writes all of `data`, blocking while the terminal buffer is full."""
        with self._lock:
            if self._fd < 0:
                raise OSError(errno.EBADF, "pty channel is closed")
            view = memoryview(data)
            while view:
                written = os.write(self._fd, view)
                view = view[written:]

    def close(self) -> None:
        with self._lock:
            if self._fd < 0:
                return
            fd, self._fd = self._fd, -1
        os.close(fd)


def spawn_in_pty(argv: List[str], cwd: Path, env: Mapping[str, str]) -> Tuple[subprocess.Popen, PtyChannel]:
    """
    Starts `argv` attached to a new pseudo-terminal.

    The child becomes a session and process group leader with the pty as its
    controlling terminal, so terminal signals reach only this child.

    :return: The process and the master side of its terminal.
    :raises OSError: If the pty cannot be allocated or the process cannot be started.
    """
    master_fd, slave_fd = pty.openpty()
    try:
        process = subprocess.Popen(
            argv,
            cwd=str(cwd),
            env=dict(env),
            stdin=slave_fd,
            stdout=slave_fd,
            stderr=slave_fd,
            start_new_session=True,
            preexec_fn=_acquire_controlling_terminal,
        )
    except Exception:
        os.close(master_fd)
        raise
    finally:
        os.close(slave_fd)
    return process, PtyChannel(master_fd)


@dataclass
class ProcessHandle:
    """The running child together with its terminal and output pump."""
    process: subprocess.Popen
    channel: PtyChannel
    pump_thread: Optional[threading.Thread] = None
    pump_stop: Optional[threading.Event] = None
    # Set once the exit has been observed and the output drained.
    completion: threading.Event = field(default_factory=threading.Event)

    @property
    def pid(self) -> int:
        return self.process.pid

#* --- Process Output ---
class ProcessOutputLogger:
    """
    Default output sink. Splits the terminal byte stream into lines and logs
    each one on the `proc.<name>` logger, which the console formatter prints raw.
    """

    def __init__(self, name: str, level: int = logging.INFO) -> None:
        self.logger = logging.getLogger(f"proc.{name}")
        self.level = level
        self._pending = b""
        self._lock = threading.Lock()

    def write(self, data: bytes) -> None:
        with self._lock:
            self._pending += data
            *lines, self._pending = self._pending.split(b"\n")
        for line in lines:
            self._emit(line)

    def flush(self) -> None:
        with self._lock:
            line, self._pending = self._pending, b""
        self._emit(line)

    def _emit(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").rstrip("\r")
        if line.strip():
            self.logger.log(self.level, line)


def _pump_output(channel: PtyChannel, sink, stop_event: threading.Event, name: str) -> None:
    """
    Target function for the output thread. Copies terminal output into the sink until EOF.
    The thread owns the channel and closes it on the way out.
    """
    try:
        _copy_output(channel, sink, stop_event, name)
    finally:
        channel.close()

def _copy_output(channel: PtyChannel, sink, stop_event: threading.Event, name: str) -> None:
    while True:
        try:
            ready, _, _ = select.select([channel], [], [], config.OUTPUT_POLL_INTERVAL)
        except (OSError, ValueError):
            break
        if not ready:
            if stop_event.is_set():
                break
            continue
        try:
            data = channel.read(config.OUTPUT_READ_SIZE)
        except OSError as e:
            # Linux reports EIO once the last slave descriptor is gone
            if e.errno != errno.EIO:
                log.debug(f"Output reader for {name} exited: {e}")
            break
        if not data:
            break
        try:
            sink.write(data)
        except Exception as e:
            log.error(f"Output sink for {name} failed: {e}", exc_info=True)

    flush = getattr(sink, "flush", None)
    if callable(flush):
        flush()

def start_output_pump(handle: ProcessHandle, sink, name: str) -> threading.Thread:
    """Starts the background thread forwarding the handle's terminal output to `sink`."""
    handle.pump_stop = threading.Event()
    handle.pump_thread = threading.Thread(
        target=_pump_output,
        args=(handle.channel, sink, handle.pump_stop, name),
        daemon=True,
        name=f"{name}-output",
    )
    handle.pump_thread.start()
    return handle.pump_thread

def stop_output_pump(handle: ProcessHandle, timeout: float) -> None:
    """
    Lets the pump drain what is left. The pump closes the terminal when it exits,
    which may be after `timeout` if a grandchild still holds the terminal open.
    """
    if handle.pump_thread is None:
        handle.channel.close()
        return
    if handle.pump_stop is not None:
        handle.pump_stop.set()
    if handle.pump_thread is not threading.current_thread():
        handle.pump_thread.join(timeout=timeout)
        if handle.pump_thread.is_alive():
            log.warning(f"Output reader for PID {handle.pid} did not finish within {timeout}s, the terminal stays open until it does.")
