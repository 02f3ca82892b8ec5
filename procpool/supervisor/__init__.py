"""
The Supervisor package.
Keeps the configured number of worker children alive.

This package contains the WorkerProcessPool class and its helper modules,
which together handle spawning, reaping, culling and draining children.
"""
from .pool import WorkerProcessPool
from .records import PoolState, ProcessRecord

__all__ = ['WorkerProcessPool', 'PoolState', 'ProcessRecord']
