"""
A runnable example service: one daemon and the worker it keeps alive.
"""

from .daemon import DemoDaemon
from .worker import DemoWorker

__all__ = ["DemoDaemon", "DemoWorker"]
