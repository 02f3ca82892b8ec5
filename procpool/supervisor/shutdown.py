import signal
import logging
from typing import TYPE_CHECKING
from procpool import settings
from procpool.supervisor import process_utils

if TYPE_CHECKING:
    from .pool import WorkerProcessPool

log = logging.getLogger(__name__)


def _terminate_children(pool: "WorkerProcessPool") -> None:
    """Sends SIGTERM to every tracked child."""
    for pid in pool.state.pids():
        pool.kill_child(pid, signal.SIGTERM)


def _collect(pool: "WorkerProcessPool", timeout: float) -> None:
    """Waits up to `timeout` seconds on the tracked children and records those that exited."""
    for pid, exit_code in process_utils.wait_procs(pool.state.processes(), timeout=timeout):
        pool.record_exit(pid, exit_code)
    pool.reap()


def _wait_for_children(pool: "WorkerProcessPool", timeout: float) -> None:
    """Reaps children as they exit, polling until none are left or the timeout expires."""
    waited = 0.0
    pool.reap()
    while len(pool.state) and waited < timeout:
        log.info(f"Waiting for {len(pool.state)} children to die")
        _collect(pool, settings.DRAIN_POLL_INTERVAL)
        waited += settings.DRAIN_POLL_INTERVAL


def _forceful_kill(pool: "WorkerProcessPool") -> None:
    """Forcefully kills children that didn't terminate gracefully, then waits for them."""
    if not len(pool.state):
        return

    log.warning(f"{len(pool.state)} children did not die gracefully, killing them.")
    for pid in pool.state.pids():
        pool.kill_child(pid, signal.SIGKILL)

    # SIGKILL cannot be ignored, so this wait only runs long for a process stuck in the kernel.
    _collect(pool, settings.KILL_WAIT)
    if len(pool.state):
        log.error(f"{len(pool.state)} children survived SIGKILL: {pool.state.pids()}")


def drain(pool: "WorkerProcessPool", timeout: float) -> None:
    """
    Runs the full drain sequence: graceful termination, a bounded wait, then SIGKILL.
    Children are waited on directly, so SIGCHLD is held back for the duration.

    :param pool: The pool whose children are drained.
    :param timeout: Seconds to wait for graceful exits before escalating.
    """
    if not len(pool.state):
        log.debug("No children to drain.")
        return

    log.info(f"Draining {len(pool.state)} children (waiting up to {timeout}s)...")
    with process_utils.blocked_signals([signal.SIGCHLD]):
        _terminate_children(pool)
        _wait_for_children(pool, timeout)
        _forceful_kill(pool)
