"""
Local package for the ttyenv supervisor.

This package provides the merged runtime configuration through the
effective_settings object, the process environment and the management console.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
