"""
ttyenv - runs a single long-lived server process inside a pseudo-terminal.

Usage:
    ttyenv                  interactive management console
    ttyenv start <cmd> ...  start a server and stay attached until it exits
"""

__version__ = "0.1.0"
