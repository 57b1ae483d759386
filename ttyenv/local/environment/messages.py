"""
Value objects exchanged between a TtyEnvironment and its callers.
"""
from enum import Enum
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional


class EnvironmentState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass(frozen=True)
class ExecutionData:
    """
    A single launch request.

    :param command: Path or name of the executable.
    :param arguments: Arguments passed after the command.
    :param working_directory: Directory relative to the environment root.
    :param environment: Variables added to the child's environment; they win over defaults.
    :param callback: Invoked with the exit code once the process has exited.
    """
    command: str
    arguments: List[str] = field(default_factory=list)
    working_directory: str = ""
    environment: Dict[str, str] = field(default_factory=dict)
    callback: Optional[Callable[[int], None]] = None


@dataclass(frozen=True)
class StatusEvent:
    running: bool
    installing: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {"running": self.running, "installing": self.installing}


@dataclass(frozen=True)
class ServerStats:
    """CPU percentage and resident memory (bytes) of the main process."""
    cpu: float = 0.0
    memory: float = 0.0
