import os
import logging
import threading
import subprocess
from typing import TYPE_CHECKING, Callable, Optional
from ttyenv.local.environment.process_utils import ProcessHandle

if TYPE_CHECKING:
    from .environment import TtyEnvironment

log = logging.getLogger(__name__)

# Recorded when the real exit status cannot be determined.
UNKNOWN_EXIT_CODE = 1


def wait_for_exit_code(process: subprocess.Popen) -> int:
    """
    Blocks until the process has exited, reaps it and returns its exit code.
    A failed wait yields UNKNOWN_EXIT_CODE, including a child that was
    already reaped elsewhere (for instance while SIGCHLD is ignored).

    The status is also stored on `process.returncode` so Popen never reaps again.

    :param process: The child to reap.
    :return: The OS exit code, negative when the child died from a signal.
    """
    try:
        _, status = os.waitpid(process.pid, 0)
    except OSError as e:
        log.error(f"Error waiting on process {process.pid}: {e}")
        process.returncode = UNKNOWN_EXIT_CODE
        return UNKNOWN_EXIT_CODE

    returncode = os.waitstatus_to_exitcode(status)
    process.returncode = returncode
    log.debug(f"Process {process.pid} exited with status {returncode}")
    return returncode

def handle_close(env: "TtyEnvironment", handle: ProcessHandle,
                 callback: Optional[Callable[[int], None]]) -> None:
    """
    Target function of the watcher thread for a single launch.

    Waits for the child to exit, resets the environment, publishes the stopped
    status and finally runs the caller's callback with no lock held.
    """
    exit_code = wait_for_exit_code(handle.process)
    env._mark_exited(handle, exit_code)

    if callback is None:
        return
    try:
        callback(exit_code)
    except Exception as e:
        log.error(f"Exit callback for PID {handle.pid} failed: {e}", exc_info=True)

def start_watcher(env: "TtyEnvironment", handle: ProcessHandle,
                  callback: Optional[Callable[[int], None]]) -> threading.Thread:
    """Starts the watcher thread for a freshly spawned process."""
    watcher = threading.Thread(
        target=handle_close,
        args=(env, handle, callback),
        daemon=True,
        name=f"{env.name}-watcher-{handle.pid}",
    )
    watcher.start()
    return watcher
