"""
Exception types raised by procpool.

Everything derives from DaemonError so the daemon controller can log a fatal
condition at critical severity and exit non-zero without caring which
component raised it.
"""


class DaemonError(Exception):
    """Base class for fatal daemon errors."""


class ConfigNotFoundError(DaemonError):
    """The service's .ini file does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Config file not found, looking for: {path}")


class InvalidConfigError(DaemonError, ValueError):
    """A configuration value is missing its expected type or range."""


class InvalidWorkerError(DaemonError):
    """The worker template handed to the pool cannot produce a runnable child."""


class ForkError(DaemonError):
    """A new child process could not be created."""


class RunawayForkingError(DaemonError):
    """Too many children exited within a second of being spawned."""

    def __init__(self, quick_terminations: int):
        self.quick_terminations = quick_terminations
        super().__init__(f"Runaway forking detected after {quick_terminations} quick terminations")


class PidFileLockedError(DaemonError):
    """Another instance of the daemon holds the PID file lock."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"PID file {path} is locked, is the daemon already running?")
