import sys
import logging
from pathlib import Path
from typing import Optional, Union
from procpool import settings


class MainFormatter(logging.Formatter):
    """The formatter shared by every sink, parent and children alike."""

    def __init__(self) -> None:
        super().__init__(settings.LOG_FORMAT)


def setup_logging(level: int = logging.INFO, logfile: Optional[Union[str, Path]] = None, foreground: bool = True) -> None:
    """
    Configures the root logger for the daemon.
    This sets up a console handler when running in the foreground and a file
    handler when a logfile is given, clearing any previously configured handlers
    to prevent duplication.

    Forked workers inherit these handlers, so every child writes to the same sink.

    :param level: The logging level for all sinks (e.g., logging.INFO).
    :param logfile: Path of the log file. None disables file logging.
    :param foreground: If True, also log to stdout.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

    # --- Console Handler ---
    if foreground:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(MainFormatter())
        root_logger.addHandler(console_handler)

    # --- File Handler ---
    # Append mode so logrotate's copytruncate keeps working without a reopen.
    if logfile:
        try:
            log_path = Path(logfile)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(MainFormatter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to open log file '{logfile}': {e}. Logging to file will be disabled.")

    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())
