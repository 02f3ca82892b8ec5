import logging
from typing import Union

# Syslog verbosity (as used in the .ini files and --loglevel) to logging levels.
# NOTICE and ALERT/EMERG have no direct equivalent and are folded into neighbours.
SYSLOG_LEVELS = {
    0: logging.CRITICAL,  # EMERG
    1: logging.CRITICAL,  # ALERT
    2: logging.CRITICAL,  # CRIT
    3: logging.ERROR,     # ERR
    4: logging.WARNING,   # WARNING
    5: logging.INFO,      # NOTICE
    6: logging.INFO,      # INFO
    7: logging.DEBUG,     # DEBUG
}

LEVEL_NAMES = {
    "emerg": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
    "err": logging.ERROR,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "notice": logging.INFO,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def resolve_log_level(value: Union[int, str, None], default: int = logging.INFO) -> int:
    """
    Translates a configured verbosity into a logging level.

    Accepts syslog numbers (1-7, 7 being DEBUG) as ints or strings, and level
    names such as 'debug' or 'warning'. Anything unrecognised yields `default`.

    :param value: The configured verbosity.
    :param default: Level returned for empty or unknown values.
    :return: A logging module level.
    """
    if value is None or value == "":
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text in LEVEL_NAMES:
            return LEVEL_NAMES[text]
        try:
            value = int(text)
        except ValueError:
            return default
    return SYSLOG_LEVELS.get(value, default)
