"""
Logging module for procpool.
This module provides functionality to set up the daemon's log sinks and to
translate syslog style verbosity settings.
"""

from .setup import setup_logging
from .levels import resolve_log_level
from .adapter import ChildLoggerAdapter

__all__ = ["setup_logging", "resolve_log_level", "ChildLoggerAdapter"]
