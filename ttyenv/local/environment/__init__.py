"""
The Environment package.
Runs a single server process inside a pseudo-terminal.

This package contains the central TtyEnvironment class and its helper modules,
which together handle launching, watching, signalling and sampling the
process, and broadcasting its status.
"""
from .environment import TtyEnvironment
from .errors import TtyEnvironmentError, ProcessAlreadyRunning, ServerOffline
from .messages import EnvironmentState, ExecutionData, ServerStats, StatusEvent
from .status import StatusTracker

__all__ = [
    'TtyEnvironment', 'TtyEnvironmentError', 'ProcessAlreadyRunning', 'ServerOffline',
    'EnvironmentState', 'ExecutionData', 'ServerStats', 'StatusEvent', 'StatusTracker',
]
