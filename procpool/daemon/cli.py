import argparse
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence


@dataclass
class RuntimeOptions:
    """Option flags that can change the behaviour of a daemon."""

    help: bool = False
    write_init: bool = False
    no_daemon: bool = False
    loglevel: Optional[int] = None


OptionHandler = Callable[[RuntimeOptions, Any], None]


@dataclass(frozen=True)
class CliOption:
    """One command line option and the handler that applies it."""

    name: str
    short: str
    description: str
    handler: OptionHandler
    takes_value: bool = False
    value_type: Callable[[str], Any] = str
    choices: Optional[Sequence[Any]] = None

    @property
    def dest(self) -> str:
        return self.name.replace("-", "_")


def _show_help(options: RuntimeOptions, value: Any) -> None:
    options.help = True

def _write_init(options: RuntimeOptions, value: Any) -> None:
    options.write_init = True

def _no_daemon(options: RuntimeOptions, value: Any) -> None:
    options.no_daemon = True

def _loglevel(options: RuntimeOptions, value: Any) -> None:
    options.loglevel = int(value)


CLI_OPTIONS = (
    CliOption("help", "h", "This help", _show_help),
    CliOption("write-init", "w", "Generate and install an init.d autorun script.", _write_init),
    CliOption("no-daemon", "n", "Do not daemonize the parent process, stay in the foreground", _no_daemon),
    CliOption("loglevel", "", "The log verbosity level. Overrides the ini file. 1-7 with 7 being DEBUG",
              _loglevel, takes_value=True, value_type=int, choices=range(0, 8)),
)


def build_parser(description: str = "", prog: Optional[str] = None) -> argparse.ArgumentParser:
    """Builds the argument parser from CLI_OPTIONS."""
    parser = argparse.ArgumentParser(prog=prog, description=description, add_help=False)
    for option in CLI_OPTIONS:
        flags = [f"-{option.short}"] if option.short else []
        flags.append(f"--{option.name}")
        if option.takes_value:
            parser.add_argument(*flags, dest=option.dest, help=option.description, type=option.value_type,
                                choices=option.choices, metavar="N", default=None)
        else:
            parser.add_argument(*flags, dest=option.dest, help=option.description, action="store_true")
    return parser


def parse_command_line(argv: Optional[List[str]] = None, description: str = "", prog: Optional[str] = None) -> RuntimeOptions:
    """
    Process the command line arguments into RuntimeOptions.

    :param argv: Arguments without the program name. Defaults to sys.argv[1:].
    :raises SystemExit: On unknown options or invalid values (argparse behaviour).
    """
    namespace = build_parser(description, prog).parse_args(argv)
    options = RuntimeOptions()
    for option in CLI_OPTIONS:
        value = getattr(namespace, option.dest)
        if value is None or value is False:
            continue
        option.handler(options, value)
    return options


def format_help(description: str = "", prog: Optional[str] = None) -> str:
    return build_parser(description, prog).format_help()
