"""
This module initializes the console package, exposing key functionalities for command execution,
toggling verbose logging, and printing help information.
"""

from .process import execute_command
from .handler import get_environment, toggle_verbose_logging, print_help

__all__ = ["execute_command", "get_environment", "toggle_verbose_logging", "print_help"]
