"""
The daemon controller package.

Parses the command line, loads the service configuration, detaches from the
terminal and drives the worker pool until it stops.
"""
from .controller import Daemon
from .cli import CLI_OPTIONS, CliOption, RuntimeOptions, parse_command_line

__all__ = ['Daemon', 'CLI_OPTIONS', 'CliOption', 'RuntimeOptions', 'parse_command_line']
