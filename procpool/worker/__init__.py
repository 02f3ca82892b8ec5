"""
The worker package.
Contains the base class for the run-loop executed in every child process and
the process title helper it reports through.
"""
from .worker import StopReason, Worker, WorkerPhase
from .title import ProcessTitle

__all__ = ['Worker', 'WorkerPhase', 'StopReason', 'ProcessTitle']
