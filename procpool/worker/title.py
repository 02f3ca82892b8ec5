import os
import sys
import time
import setproctitle
from typing import Callable, Optional
from procpool import settings

TitleSetter = Callable[[str], None]

# The real capability; a worker built with title_setter=None skips titles entirely.
default_title_setter: TitleSetter = setproctitle.setproctitle


def program_name() -> str:
    """Returns the basename of the running program, as shown in process listings."""
    argv0 = sys.argv[0] if sys.argv and sys.argv[0] else "python"
    return os.path.basename(argv0)


class ProcessTitle:
    """
    Keeps a worker's process title in the form
    `<program> <role> [<memory KB> KB used, started <timestamp>]`.

    Refreshes are rate limited; the title is purely cosmetic.
    """

    def __init__(self, role: str, started_at: float, setter: TitleSetter = default_title_setter,
                 update_interval: float = settings.TITLE_UPDATE_INTERVAL) -> None:
        started = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(started_at))
        self.prefix = f"{program_name()} {role}"
        self.started = started
        self.setter = setter
        self.update_interval = update_interval
        self._last_update: Optional[float] = None

    def format(self, memory_bytes: float) -> str:
        return f"{self.prefix} [{int(memory_bytes / 1024)} KB used, started {self.started}]"

    def update(self, memory_bytes: float, now: Optional[float] = None) -> bool:
        """
        Sets the title if the refresh interval has elapsed since the last update.

        :return: True if the title was changed.
        """
        now = time.monotonic() if now is None else now
        if self._last_update is not None and now - self._last_update < self.update_interval:
            return False
        self._last_update = now
        self.setter(self.format(memory_bytes))
        return True
