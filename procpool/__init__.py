"""
procpool: a process supervision daemon.

A long-lived parent keeps a configured number of worker children alive,
restarts them when they fail and shuts them down gracefully or forcefully
on request.
"""

__version__ = "1.0.0"
