"""Errors raised by the environment's control surface."""


class TtyEnvironmentError(Exception):
    """Base class for precondition failures reported by a TtyEnvironment."""


class ProcessAlreadyRunning(TtyEnvironmentError):
    """Raised when a launch is requested while the main process is alive."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"Process is already running (PID: {pid})")
        self.pid = pid


class ServerOffline(TtyEnvironmentError):
    """Raised when input is sent while no process is running."""

    def __init__(self) -> None:
        super().__init__("Server is offline")
