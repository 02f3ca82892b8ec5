"""
Base class for worker processes.

Workers are typically forked by WorkerProcessPool, however they can be used
independently as well: call execute() and it runs until stopped.
"""
import os
import abc
import enum
import time
import signal
import psutil
import logging
from typing import Dict, Optional
from procpool import settings
from procpool.config import ServiceConfig
from procpool.log import ChildLoggerAdapter
from procpool.worker.title import ProcessTitle, TitleSetter, default_title_setter


class WorkerPhase(enum.Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    STOPPING = "stopping"
    TERMINATED = "terminated"


class StopReason(enum.Enum):
    REQUESTED = "requested"
    SIGNAL = "signal"
    ORPHANED = "orphaned"
    MEMORY_LIMIT = "memory_limit"


class Worker(abc.ABC):
    """
    A cooperative run-loop executed inside one child process.

    Subclasses implement setup(), run() and cleanup(). run() is called once per
    iteration; if it has its own loop it must respect `is_running`.
    """

    #: Seconds to sleep between iterations, fractions allowed.
    iteration_delay: float = settings.ITERATION_DELAY_SECONDS
    #: Resident memory ceiling in MB; reaching it stops the worker.
    memory_limit_mb: float = settings.MEMORY_LIMIT_MB
    #: Seconds between info level memory reports (debug is logged every iteration).
    memory_log_interval: float = settings.MEMORY_LOG_INTERVAL_MINUTES * 60
    #: Role shown in the process title. Defaults to the class name.
    process_title: str = ""

    STOP_SIGNALS = (signal.SIGTERM, signal.SIGHUP, signal.SIGINT)

    def __init__(self, config: Optional[ServiceConfig] = None,
                 title_setter: Optional[TitleSetter] = default_title_setter) -> None:
        self.config = config
        self.parent_pid: Optional[int] = None
        self.started_at: Optional[float] = None
        self.phase = WorkerPhase.INITIALIZING
        self.stop_reason: Optional[StopReason] = None
        self.log = ChildLoggerAdapter(logging.getLogger(f"{type(self).__module__}.{type(self).__name__}"), {})

        self._keep_running = True
        self._title_setter = title_setter
        self._title: Optional[ProcessTitle] = None
        self._last_memory_log: Optional[float] = None
        self._process: Optional[psutil.Process] = None
        self._previous_handlers: Dict[int, object] = {}

        if config is not None:
            self.memory_limit_mb = config.get_float("daemon", "memory_limit_mb", self.memory_limit_mb)
            self.iteration_delay = config.get_float("daemon", "iteration_delay", self.iteration_delay)

    #* --- Callbacks implemented by subclasses ---
    @abc.abstractmethod
    def setup(self) -> None:
        """Called once before the first iteration."""

    @abc.abstractmethod
    def run(self) -> None:
        """The actual work done by this child on each iteration."""

    @abc.abstractmethod
    def cleanup(self) -> None:
        """Called once when the worker is stopping, to release resources."""

    #* --- Lifecycle ---
    @property
    def is_running(self) -> bool:
        return self._keep_running

    @property
    def memory_limit_bytes(self) -> int:
        return int(self.memory_limit_mb * 1024 * 1024)

    def set_parent(self, parent_pid: int) -> None:
        """Keep track of the pid of the process that forks this worker."""
        self.parent_pid = parent_pid

    def set_memory_limit(self, limit_mb: float) -> None:
        """Set the maximum amount of memory (in MB) this worker is allowed to use."""
        self.log.debug(f"The memory limit has been set to {limit_mb}")
        self.memory_limit_mb = float(limit_mb)

    def stop(self, reason: StopReason = StopReason.REQUESTED) -> None:
        """Gracefully stop the worker at the top of the next iteration."""
        self._keep_running = False
        if self.stop_reason is None:
            self.stop_reason = reason

    def execute(self) -> bool:
        """
        Main loop for the worker.

        Runs setup(), then iterates until stopped by a signal, an orphaned
        parent, the memory limit or a call to stop(), then runs cleanup().
        Exceptions from the callbacks propagate to the caller.

        :return: True once the worker has stopped gracefully.
        """
        self.install_signal_handlers()
        try:
            self.started_at = time.time()
            self.phase = WorkerPhase.INITIALIZING
            self.setup()

            self.phase = WorkerPhase.RUNNING
            try:
                while self._keep_running:
                    self.iterate()
            finally:
                self.phase = WorkerPhase.STOPPING
                try:
                    self.cleanup()
                finally:
                    self.phase = WorkerPhase.TERMINATED
        finally:
            self._restore_signal_handlers()

        self.log.info(f"Stopped ({self.stop_reason.value if self.stop_reason else 'finished'})")
        return True

    def iterate(self) -> None:
        """Runs a single iteration of the loop, including the delay that follows it."""
        if not self.is_parent_alive():
            self.log.warning("Child appears to be orphaned, exiting")
            self.stop(StopReason.ORPHANED)
            return

        memory_usage = self.check_memory_usage()
        if not self._keep_running:
            return

        self.update_process_title(memory_usage)
        self.run()

        if self._keep_running:
            time.sleep(self.iteration_delay)

    #* --- Guards ---
    def memory_usage(self) -> int:
        """Returns the resident memory of this process in bytes."""
        if self._process is None or self._process.pid != os.getpid():
            self._process = psutil.Process(os.getpid())
        return self._process.memory_info().rss

    def check_memory_usage(self) -> int:
        """
        Checks if the worker has reached the amount of memory it is allowed to use.
        If it has, the worker is flagged to stop.

        :return: Current memory usage in bytes.
        """
        now = time.monotonic()
        if self._last_memory_log is None:
            self._last_memory_log = now

        current = self.memory_usage()
        limit = self.memory_limit_bytes
        message = f"{current / 1024:.2f}KB memory in use, limit is {limit / 1024:.0f}KB"

        # Surface a heartbeat at info level now and then, debug otherwise.
        if now - self._last_memory_log >= self.memory_log_interval:
            self._last_memory_log = now
            self.log.info(message)
        else:
            self.log.debug(message)

        if current >= limit:
            self.log.warning(f"Memory limit of {self.memory_limit_mb}MB exceeded, exiting")
            self.stop(StopReason.MEMORY_LIMIT)

        return current

    def is_parent_alive(self) -> bool:
        """
        Probes the parent with a zero-effect signal.

        A recycled parent pid would fool this check, which is unlikely in
        practice. A worker without a parent is never considered orphaned.
        """
        if self.parent_pid is None:
            return True
        self.log.debug(f"Checking parent pid: {self.parent_pid}")
        return psutil.pid_exists(self.parent_pid)

    def update_process_title(self, memory_usage: int) -> None:
        if self._title_setter is None:
            return
        if self._title is None:
            role = self.process_title or type(self).__name__
            self._title = ProcessTitle(role, self.started_at or time.time(), self._title_setter)
        self._title.update(memory_usage)

    #* --- Signals ---
    def signal_handler(self, signum, frame) -> None:
        # SIGHUP means the parent is restarting us, so it is an exit as well.
        self.stop(StopReason.SIGNAL)
        self.log.info("Received exit signal")

    def install_signal_handlers(self) -> None:
        """Route the stop signals to signal_handler(). Installing twice is a no-op."""
        if self._previous_handlers:
            return
        for signum in self.STOP_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self.signal_handler)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()
