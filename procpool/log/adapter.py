import os
import logging


class ChildLoggerAdapter(logging.LoggerAdapter):
    """
    Prefixes every message with the pid of the process that emits it.

    The pid is read at log time rather than at construction, so an adapter
    created in the parent still reports the right pid after a fork.
    """

    def process(self, msg, kwargs):
        return f"Child {os.getpid()} {msg}", kwargs
