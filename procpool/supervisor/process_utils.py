import os
import signal
import psutil
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterable, Iterator, List, NoReturn, Optional, Tuple
from procpool.errors import ForkError

if TYPE_CHECKING:
    from procpool.worker import Worker

log = logging.getLogger(__name__)

# Handlers the parent installs that must not fire inside a freshly forked child.
PARENT_SIGNALS = (signal.SIGCHLD, signal.SIGTERM, signal.SIGHUP, signal.SIGINT)


#* --- Process Status & Signals ---
def process_handle(pid: int) -> Optional[psutil.Process]:
    """
    Returns a psutil handle for a freshly spawned child.
    The handle remembers the process creation time, so a recycled pid is never signalled.
    """
    try:
        return psutil.Process(pid)
    except psutil.NoSuchProcess:
        return None

def send_signal(process: psutil.Process, signum: int) -> bool:
    """
    Sends a signal to a process through its psutil handle.

    :return: False if the process no longer exists.
    """
    try:
        if signum == signal.SIGTERM:
            process.terminate()
        elif signum == signal.SIGKILL:
            process.kill()
        else:
            process.send_signal(signum)
        return True
    except psutil.NoSuchProcess:
        return False

def exit_code_from_status(status: int) -> int:
    """Converts a waitpid status to an exit code; death by signal N gives -N."""
    return os.waitstatus_to_exitcode(status)

def reap_exited() -> Iterator[Tuple[int, int]]:
    """
    Collects every child that has already exited, without blocking.

    :return: An iterator of (pid, exit_code) pairs.
    """
    while True:
        try:
            pid, status = os.waitpid(-1, os.WNOHANG)
        except ChildProcessError:
            return
        if pid == 0:
            return
        yield pid, exit_code_from_status(status)

def wait_procs(processes: List[psutil.Process], timeout: Optional[float]) -> List[Tuple[int, Optional[int]]]:
    """
    Waits up to `timeout` seconds for the given children to exit, reaping them.

    :return: (pid, exit_code) for every process that is gone. The exit code is
             None when the process was already collected elsewhere.
    """
    if not processes:
        return []
    try:
        gone, _ = psutil.wait_procs(processes, timeout=timeout)
    except psutil.NoSuchProcess:
        return []
    return [(proc.pid, proc.returncode) for proc in gone]

@contextmanager
def blocked_signals(signals: Iterable[int]):
    """Defers delivery of the given signals until the block exits."""
    signals = set(signals)
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, signals)
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


#* --- Process Creation ---
def fork_worker(worker: "Worker") -> int:
    """
    Forks a child that runs the worker. Only the parent returns.

    The caller is expected to hold PARENT_SIGNALS blocked, so that nothing is
    delivered to the child before the worker's own handlers are in place.

    :param worker: The worker template to run in the child.
    :return: The pid of the new child.
    :raises ForkError: If the fork fails.
    """
    try:
        pid = os.fork()
    except OSError as e:
        raise ForkError(f"Could not fork a new child: {e}") from e

    if pid:
        return pid
    _run_child(worker)

def _run_child(worker: "Worker") -> NoReturn:
    """Runs the worker in the forked child and exits with its status."""
    exit_code = 1
    try:
        for signum in PARENT_SIGNALS:
            signal.signal(signum, signal.SIG_DFL)
        # A SIGTERM that arrived while blocked becomes a graceful stop once unblocked.
        worker.install_signal_handlers()
        signal.pthread_sigmask(signal.SIG_SETMASK, set())

        # exit code of 0 means OK, anything else means error.
        exit_code = 0 if worker.execute() else 1
    except SystemExit as e:
        exit_code = 0 if e.code is None else (e.code if isinstance(e.code, int) else 1)
    except BaseException as e:
        log.critical(f"Child {os.getpid()} failed: {e}", exc_info=True)
        exit_code = 1
    finally:
        logging.shutdown()
        os._exit(exit_code)
