import os
import sys
import pwd
import fcntl
import logging
from pathlib import Path
from typing import IO, Optional, Union
from procpool.errors import PidFileLockedError

log = logging.getLogger(__name__)


def daemonize(umask: int = 0o022) -> None:
    """
    Detach the current process from its terminal with the classic double fork.
    Only the grandchild returns; both intermediate processes exit.
    """
    try:
        if os.fork() > 0:
            os._exit(0)
    except OSError as e:
        sys.stderr.write(f"fork #1 failed: {e}\n")
        sys.exit(1)

    # Decouple from parent environment
    os.chdir("/")
    os.setsid()
    os.umask(umask)

    # Second fork
    try:
        if os.fork() > 0:
            os._exit(0)
    except OSError as e:
        sys.stderr.write(f"fork #2 failed: {e}\n")
        sys.exit(1)

    # Redirect standard file descriptors
    sys.stdout.flush()
    sys.stderr.flush()
    with open(os.devnull, "r") as f:
        os.dup2(f.fileno(), sys.stdin.fileno())
    with open(os.devnull, "a+") as f:
        os.dup2(f.fileno(), sys.stdout.fileno())
        os.dup2(f.fileno(), sys.stderr.fileno())


def drop_privileges(uid: Optional[int]) -> None:
    """Switch to the configured user when running as root; a no-op otherwise."""
    if not uid or os.getuid() != 0:
        return
    entry = pwd.getpwuid(uid)
    os.setgid(entry.pw_gid)
    os.setuid(uid)
    log.info(f"Dropped privileges to user '{entry.pw_name}' (uid {uid})")


class PidFile:
    """
    A PID file held under an exclusive flock for as long as the daemon runs.
    The lock is what prevents a second instance from starting.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._file: Optional[IO[str]] = None
        # Forked workers must not keep the lock alive if the daemon dies before them.
        os.register_at_fork(after_in_child=self._close_in_child)

    def acquire(self) -> None:
        """
        :raises PidFileLockedError: If another process holds the lock.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        f = open(self.path, "a+")
        try:
            fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            f.close()
            raise PidFileLockedError(self.path) from None
        f.seek(0)
        f.truncate()
        f.write(str(os.getpid()))
        f.flush()
        self._file = f
        log.debug(f"PID file {self.path} written")

    def release(self) -> None:
        if self._file is None:
            return
        try:
            # Unlink while still locked: a new instance may take the lock as soon as it is dropped.
            self.path.unlink(missing_ok=True)
            fcntl.flock(self._file, fcntl.LOCK_UN)
        except OSError as e:
            log.error(f"Failed to release PID file {self.path}: {e}")
        finally:
            self._file.close()
            self._file = None

    def _close_in_child(self) -> None:
        # Closing only drops this copy of the descriptor; unlocking here would release the parent's lock.
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "PidFile":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
