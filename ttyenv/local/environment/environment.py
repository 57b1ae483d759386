import os
import signal
import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Union
from ttyenv.local.config import effective_settings as config
from ttyenv.local.environment import process_utils, watcher
from ttyenv.local.environment.errors import ProcessAlreadyRunning, ServerOffline
from ttyenv.local.environment.messages import EnvironmentState, ExecutionData, ServerStats, StatusEvent
from ttyenv.local.environment.process_utils import ProcessHandle, ProcessOutputLogger
from ttyenv.local.environment.status import StatusTracker

log = logging.getLogger(__name__)


class TtyEnvironment:
    """
    Runs one long-lived child process attached to a pseudo-terminal.

    The environment launches the process, streams its terminal output to a
    console sink, relays input, reports liveness and resource usage and
    publishes a status event whenever the process starts or stops. It outlives
    any number of launch/exit cycles, but never has more than one live child.
    """

    def __init__(
        self,
        root_directory: Union[str, Path],
        name: str = "main",
        console=None,
        status_tracker: Optional[StatusTracker] = None,
        is_installing: Optional[Callable[[], bool]] = None,
        stats_interval: Optional[float] = None,
    ) -> None:
        """
        :param root_directory: Directory the process runs under; exported to it as HOME.
        :param name: Label used for thread names and the `proc.<name>` output logger.
        :param console: Output sink with a `write(bytes)` method. Defaults to logging the output.
        :param status_tracker: Receives a StatusEvent on every start and stop.
        :param is_installing: Returns the externally owned install-mode flag.
        :param stats_interval: CPU sampling window in seconds for get_stats().
        """
        self.root_directory = Path(root_directory)
        self.name = name
        self.console = console if console is not None else ProcessOutputLogger(name)
        self.status_tracker = status_tracker if status_tracker is not None else StatusTracker()
        self.is_installing = is_installing or (lambda: False)
        self.stats_interval = stats_interval if stats_interval is not None else config.STATS_SAMPLE_INTERVAL

        self.last_exit_code: Optional[int] = None
        self._state = EnvironmentState.IDLE
        self._handle: Optional[ProcessHandle] = None
        self._lock = threading.Lock()
        # Completion signal of the latest launch, set while no exit is pending.
        self._completion = threading.Event()
        self._completion.set()

    @property
    def state(self) -> EnvironmentState:
        with self._lock:
            return self._state

    @property
    def pid(self) -> Optional[int]:
        with self._lock:
            return self._handle.pid if self._handle else None

    #* --- Launch ---
    def execute_async(self, steps: ExecutionData) -> None:
        """
        Starts the main process and returns without waiting for it.

        :param steps: What to run and how.
        :raises ProcessAlreadyRunning: If the previous process is still alive.
        :raises OSError: If the terminal cannot be allocated or the process cannot be started.
        """
        argv = [steps.command, *steps.arguments]
        cwd = self.root_directory / steps.working_directory
        env = process_utils.build_environment(self.root_directory, steps.environment)

        with self._lock:
            if self._is_running_locked():
                raise ProcessAlreadyRunning(self._handle.pid)

            completion = threading.Event()
            self._completion = completion
            try:
                process, channel = process_utils.spawn_in_pty(argv, cwd, env)
            except Exception as e:
                completion.set()
                log.error(f"Failed to start process '{steps.command}': {e}")
                raise

            handle = ProcessHandle(process=process, channel=channel, completion=completion)
            self._handle = handle
            self._state = EnvironmentState.ACTIVE

        # The sink may block; the terminal buffers the child's output until the pump runs.
        command_line = process_utils.format_command_line(argv)
        self.display_to_console(f"Starting process: {command_line}")
        log.info(f"Starting process: {command_line}")
        process_utils.start_output_pump(handle, self.console, self.name)

        log.info(f"{self.name.capitalize()} started successfully with PID: {handle.pid}")
        self._publish_status(running=True)
        watcher.start_watcher(self, handle, steps.callback)

    def _mark_exited(self, handle: ProcessHandle, exit_code: int) -> None:
        """Called by the watcher once the OS has reported the exit of `handle`."""
        with self._lock:
            self.last_exit_code = exit_code
            if self._handle is handle:
                self._handle = None
                self._state = EnvironmentState.IDLE

        process_utils.stop_output_pump(handle, config.OUTPUT_DRAIN_TIMEOUT)
        handle.completion.set()
        log.info(f"Process {handle.pid} exited with code {exit_code}")
        self._publish_status(running=False)

    #* --- Control Surface ---
    def is_running(self) -> bool:
        """
        True only while a process handle exists and the OS confirms the process is alive.

        :raises OSError: If the liveness probe fails for a reason other than a missing process or permissions.
        """
        with self._lock:
            return self._is_running_locked()

    def _is_running_locked(self) -> bool:
        if self._handle is None:
            return False
        if process_utils.probe_pid(self._handle.pid):
            return True
        log.warning(f"Process {self._handle.pid} is gone but its exit was not observed yet.")
        return False

    def execute_in_main_process(self, cmd: str) -> None:
        """
        Writes a line of input to the main process.

        :param cmd: The text to send, a newline is appended.
        :raises ServerOffline: If no process is running.
        """
        with self._lock:
            if not self._is_running_locked():
                raise ServerOffline()
            channel = self._handle.channel
        channel.write(f"{cmd}\n".encode("utf-8"))

    def send_code(self, code: int) -> None:
        """Delivers signal `code` to the main process. Does nothing if it is not running."""
        with self._lock:
            if not self._is_running_locked():
                return
            log.debug(f"Sending signal {code} to PID {self._handle.pid}")
            os.kill(self._handle.pid, code)

    def kill(self) -> None:
        """Forcefully terminates the main process without waiting for it to exit."""
        with self._lock:
            if not self._is_running_locked():
                return
            log.warning(f"Killing process {self._handle.pid}.")
            os.kill(self._handle.pid, signal.SIGKILL)

    def wait_for_main_process(self) -> None:
        self.wait_for_main_process_for(0)

    def wait_for_main_process_for(self, timeout: float) -> None:
        """
        Blocks until the main process has exited.

        :param timeout: Seconds to wait before killing the process; 0 waits forever.
        :raises OSError: If the process had to be killed and the kill failed.
        """
        with self._lock:
            running = self._is_running_locked()
            completion = self._completion
        # An observed exit stays pending until its trailing output is drained.
        if not running and completion.is_set():
            return

        if timeout <= 0:
            completion.wait()
            return

        kill_errors: List[Exception] = []

        def _deferred_kill() -> None:
            log.warning(f"Process did not exit within {timeout}s. Forcing shutdown...")
            try:
                self.kill()
            except Exception as e:
                kill_errors.append(e)

        timer = threading.Timer(timeout, _deferred_kill)
        timer.daemon = True
        timer.start()
        try:
            completion.wait()
        finally:
            timer.cancel()
            timer.join()

        if kill_errors:
            raise kill_errors[0]

    def get_stats(self) -> ServerStats:
        """
        Samples CPU and memory usage of the main process.
        Returns a zero snapshot when nothing is running, which does not imply liveness either way.

        :raises psutil.Error: If sampling fails.
        """
        with self._lock:
            if not self._is_running_locked():
                return ServerStats(cpu=0.0, memory=0.0)
            pid = self._handle.pid
        return process_utils.sample_stats(pid, self.stats_interval)

    #* --- Directory ---
    def create(self) -> None:
        """
        Creates the root directory.

        :raises OSError: If the directory cannot be created, including when it already exists.
        """
        self.root_directory.mkdir(mode=config.ROOT_DIRECTORY_MODE)
        log.info(f"Created environment directory {self.root_directory}")

    #* --- Output & Status ---
    def display_to_console(self, message: str) -> None:
        """Writes a supervisor message into the process output stream."""
        try:
            self.console.write(f"{config.CONSOLE_PREFIX} {message}\r\n".encode("utf-8"))
        except Exception as e:
            log.error(f"Failed to write to console sink: {e}")

    def _publish_status(self, running: bool) -> None:
        try:
            event = StatusEvent(running=running, installing=bool(self.is_installing()))
            self.status_tracker.write_message(event)
        except Exception as e:
            log.error(f"Failed to publish status (running={running}): {e}", exc_info=True)
