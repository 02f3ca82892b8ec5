import os
import signal
import logging
from typing import Callable, Dict, Optional
from procpool import settings
from procpool.config import ServiceConfig
from procpool.worker import Worker
from procpool.errors import DaemonError, ForkError, InvalidConfigError, InvalidWorkerError, RunawayForkingError
from procpool.supervisor import process_utils, shutdown
from procpool.supervisor.records import PoolState

log = logging.getLogger(__name__)

Spawner = Callable[[Worker], int]


class WorkerProcessPool:
    """
    Starts and maintains the worker child processes.

    The pool is driven by its owner calling tick() once per control loop
    iteration. Signals only record a request; the request is carried out
    by the next tick so no pool work ever runs inside a signal handler,
    apart from reaping.
    """

    #: If this many children die within QUICK_TERMINATION_SECONDS of starting, the daemon gives up.
    RUNAWAY_FORKING_LIMIT = settings.RUNAWAY_FORKING_LIMIT
    QUICK_TERMINATION_SECONDS = settings.QUICK_TERMINATION_SECONDS

    def __init__(self, worker: Worker, config: ServiceConfig, spawner: Optional[Spawner] = None, new_session: bool = True) -> None:
        """
        :param worker: The worker template run in every child.
        :param config: Configuration for the current service.
        :param spawner: Creates a child for the worker and returns its pid. Defaults to forking.
        :param new_session: Become a session and process group leader.
        :raises InvalidWorkerError: If `worker` is not a Worker.
        :raises InvalidConfigError: If a daemon setting is malformed.
        """
        if not isinstance(worker, Worker):
            raise InvalidWorkerError(f"The child task must be a procpool Worker, got {type(worker).__name__}")

        # How long (seconds) we wait for children to finish before SIGKILL'ing them
        self.child_exit_wait = config.get_int("daemon", "child_exit_wait", settings.CHILD_EXIT_WAIT)
        desired_count = config.get_int("daemon", "num_workers", settings.DEFAULT_NUM_WORKERS)
        if desired_count < 0:
            raise InvalidConfigError(f"Setting 'daemon.num_workers' must not be negative, got {desired_count}")
        self.state = PoolState(desired_count=desired_count)

        if new_session:
            self._become_session_leader()

        self.parent_pid = os.getpid()
        self.worker = worker
        self.worker.set_parent(self.parent_pid)
        self.config = config
        self.spawner: Spawner = spawner or process_utils.fork_worker

        # Set when the pool stopped because of a fatal condition.
        self.fatal_error: Optional[DaemonError] = None

        self._shutdown_requested = False
        self._restart_requested = False
        self._previous_handlers: Dict[int, object] = {}
        self.register_signals()

    def _become_session_leader(self) -> None:
        try:
            os.setsid()
        except PermissionError:
            # Already a process group leader (e.g. run in the foreground from a shell).
            log.debug("Could not create a new session, this process already leads a process group.")

    #* --- Signals ---
    def register_signals(self) -> None:
        """Register handlers for the signals we want to trap in the parent process."""
        self._previous_handlers[signal.SIGCHLD] = signal.signal(signal.SIGCHLD, self._child_signal_handler)
        for signum in (signal.SIGTERM, signal.SIGHUP, signal.SIGINT):
            self._previous_handlers[signum] = signal.signal(signum, self._signal_handler)

    def restore_signals(self) -> None:
        """Put back the handlers that were installed before the pool was created."""
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def _signal_handler(self, signum, frame) -> None:
        if signum == signal.SIGHUP:
            # Don't exit the parent, just restart all the children.
            self._restart_requested = True
        else:
            self._shutdown_requested = True

    def _child_signal_handler(self, signum, frame) -> None:
        self.reap()

    def request_shutdown(self) -> None:
        """Ask for a full shutdown on the next tick (what SIGTERM does)."""
        self._shutdown_requested = True

    def request_restart(self) -> None:
        """Ask for a rolling restart on the next tick (what SIGHUP does)."""
        self._restart_requested = True

    def _service_requests(self) -> None:
        if self._shutdown_requested:
            self._shutdown_requested = False
            self._restart_requested = False
            self.shutdown()
        elif self._restart_requested:
            self._restart_requested = False
            self.restart_all()

    #* --- Control Loop ---
    @property
    def exiting(self) -> bool:
        return self.state.exiting

    def set_desired_count(self, count: int) -> None:
        """Change how many children the pool maintains, from the next tick on."""
        if count < 0:
            raise ValueError(f"The desired worker count must not be negative, got {count}")
        if self.state.exiting:
            log.debug("Pool is exiting, ignoring new desired count.")
            return
        self.state.desired_count = count

    def tick(self) -> bool:
        """
        Keep watch on our children. Called every iteration of the parent process.

        :return: False once the pool has shut down and the daemon should stop.
        """
        self._service_requests()
        if self.state.exiting:
            return False

        # Check for any exited children before counting.
        self.reap()

        if self.state.quick_termination_count >= self.RUNAWAY_FORKING_LIMIT:
            self.fatal_error = RunawayForkingError(self.state.quick_termination_count)
            log.critical("Runaway forking detected, exiting")
            self.shutdown()
            return False

        current = len(self.state)
        desired = self.state.desired_count
        if current < desired:
            for _ in range(desired - current):
                if self.launch_child() is None:
                    break
        elif current > desired:
            self.cull(current - desired)

        return not self.state.exiting

    #* --- Children ---
    def launch_child(self) -> Optional[int]:
        """
        Spawn a new child and register it. A spawn failure shuts the pool down.

        :return: The child pid, or None if it could not be launched.
        """
        try:
            # SIGCHLD is held back so a child that dies instantly is reaped after it is registered,
            # the stop signals so the child only sees them once the worker handles them.
            with process_utils.blocked_signals(process_utils.PARENT_SIGNALS):
                pid = self.spawner(self.worker)
                self.state.add(pid, process_utils.process_handle(pid))
        except (ForkError, OSError) as e:
            self.fatal_error = e if isinstance(e, ForkError) else ForkError(str(e))
            log.critical(f"Could not launch new child, exiting: {e}")
            self.shutdown()
            return None

        log.info(f"New child with PID {pid} launched")
        return pid

    def kill_child(self, pid: int, signum: int = signal.SIGTERM) -> None:
        """
        Send a signal to a child. Its record is removed when it is reaped, not here.
        """
        log.info(f"Killing child {pid} with signal {signal.Signals(signum).name}")
        record = self.state.records.get(pid)
        if record is None or record.process is None or not process_utils.send_signal(record.process, signum):
            log.debug(f"Child {pid} no longer exists.")

    def cull(self, count: int) -> None:
        """Terminate the `count` children that have been running longest."""
        log.info(f"We have {len(self.state)} children, only require {self.state.desired_count}. Killing {count} children")
        for record in self.state.oldest(count):
            log.info(f"Killing redundant child {record.pid}")
            self.kill_child(record.pid)

    def reap(self) -> int:
        """
        Collect every child that has exited, without blocking.

        :return: The number of tracked children that were reaped.
        """
        reaped = 0
        for pid, exit_code in process_utils.reap_exited():
            if self.record_exit(pid, exit_code):
                reaped += 1
        return reaped

    def record_exit(self, pid: int, exit_code: Optional[int]) -> bool:
        """
        Update bookkeeping for a child that has exited. Unknown pids are ignored.
        An exit code of None means the status was collected by someone else.

        :return: True if the pid belonged to this pool.
        """
        log.debug(f"Reaped child {pid}")
        record = self.state.remove(pid)
        if record is None:
            return False

        # Make sure our children are not all dying off quickly
        if not self.state.exiting:
            if record.age() <= self.QUICK_TERMINATION_SECONDS:
                self.state.quick_termination_count += 1
            else:
                # A child that ran for a while proves there is no real problem with spawning.
                self.state.quick_termination_count = 0

        if exit_code is None:
            log.info(f"{pid} exited")
        elif exit_code == 0:
            log.info(f"{pid} exited with status {exit_code}")
        elif exit_code < 0:
            log.warning(f"{pid} was killed by signal {-exit_code}")
        else:
            log.warning(f"{pid} exited with status {exit_code}")
        return True

    #* --- Shutdown ---
    def restart_all(self) -> None:
        """Terminate every child but keep the pool running, so the next ticks replace them."""
        if self.state.exiting:
            return
        log.info("Parent restarting all children")
        shutdown.drain(self, self.child_exit_wait)

    def shutdown(self) -> None:
        """Stop the pool for good: no more spawning, drain every child."""
        if self.state.exiting:
            return
        log.info("Parent exiting")
        self.state.exiting = True
        shutdown.drain(self, self.child_exit_wait)
