import os
import sys
import time
import shlex
import logging
import setproctitle
from pathlib import Path
from typing import List, Optional, Type, Union
from procpool import settings
from procpool.config import ServiceConfig, load_config, load_global_config
from procpool.errors import DaemonError, InvalidWorkerError
from procpool.log import resolve_log_level, setup_logging
from procpool.supervisor import WorkerProcessPool
from procpool.worker import Worker
from procpool.daemon import cli, daemonize, init_scripts

log = logging.getLogger(__name__)


class Daemon:
    """
    Base class that all daemons are built on.
    Bootstraps a multi-process daemon and provides the CLI option parsing.

    Subclasses set the service attributes and `worker_class`; execute() does the rest.
    """

    #: Name of this service. Determines log and PID file names amongst other things.
    service_name: str = ""
    #: Overview description of what this service does.
    service_description: str = ""
    #: Service group this service belongs to; its settings live in config/<service_group>.ini.
    service_group: str = ""
    #: The worker run in every child, built with the service config.
    worker_class: Optional[Type[Worker]] = None

    def __init__(self, worker: Optional[Worker] = None, config_dir: Optional[Union[str, Path]] = None) -> None:
        self.worker = worker
        self.config_dir = config_dir
        self.runtime_options = cli.RuntimeOptions()
        self.service_config: Optional[ServiceConfig] = None
        self.daemon_config: Optional[ServiceConfig] = None
        self.logfile: Optional[Path] = None
        self.pidfile: Optional[Path] = None
        self.start_time: Optional[float] = None
        self.pool: Optional[WorkerProcessPool] = None

    def execute(self, argv: Optional[List[str]] = None) -> int:
        """
        Start up the daemon.

        :param argv: Command line arguments without the program name.
        :return: The process exit code.
        """
        self.runtime_options = cli.parse_command_line(argv, self.service_description)
        if self.runtime_options.help:
            print(cli.format_help(self.service_description))
            return 0

        try:
            self.daemon_config = load_global_config(self.config_dir)
            self.service_config = load_config(self.service_group, self.config_dir)
            self.configure()

            if self.runtime_options.write_init:
                return 0 if self.install_init() else 1
            return self.start()
        except DaemonError as e:
            log.critical(str(e))
            print(f"Error: {e}", file=sys.stderr)
            return 1

    def configure(self) -> None:
        """Resolve file locations and wire up logging from the service config."""
        daemon_section = self.service_config.section("daemon")
        self.logfile = Path(daemon_section.get("logfile") or self.default_log_name())
        self.pidfile = Path(daemon_section.get("pidfile") or self.default_pid_name())

        default_level = daemon_section.get("loglevel", settings.DEFAULT_LOG_LEVEL)
        level = self.runtime_options.loglevel if self.runtime_options.loglevel is not None else default_level
        setup_logging(resolve_log_level(level), self.logfile, foreground=self.runtime_options.no_daemon)

    def default_log_name(self) -> Path:
        return settings.LOG_DIR / f"{self.service_name}.log"

    def default_pid_name(self) -> Path:
        return settings.PID_DIR / f"{self.service_name}.pid"

    def start_command(self) -> str:
        """The command an init script runs to start this daemon."""
        program = os.path.abspath(sys.argv[0])
        if program.endswith(".py"):
            return shlex.join([sys.executable, program])
        return shlex.quote(program)

    def install_init(self) -> bool:
        """Write out the init.d script as well as a logrotate script."""
        log.info("Just writing init file")
        daemon_section = self.service_config.section("daemon")
        author = " ".join(filter(None, [daemon_section.get("author_name"), daemon_section.get("author_email")]))
        script = init_scripts.render_init_script(
            self.service_name, self.service_description, self.start_command(), self.pidfile, author)
        if not init_scripts.write_init_script(self.service_name, script):
            return False
        init_scripts.write_logrotate_config(self.service_name, self.logfile)
        return True

    def create_worker(self) -> Worker:
        if self.worker is not None:
            return self.worker
        if self.worker_class is None:
            raise InvalidWorkerError(f"Daemon '{self.service_name}' has no worker to run")
        return self.worker_class(self.service_config)

    def start(self) -> int:
        """Detach (unless told not to), take the PID file and run the pool."""
        self.start_time = time.time()

        # Fork and start our new 'parent' process.
        if self.runtime_options.no_daemon:
            log.info("Running in the foreground")
        else:
            daemonize.daemonize()

        with daemonize.PidFile(self.pidfile):
            run_as = self.daemon_config.get_int("global", "run_as_user_id", 0) if self.daemon_config else 0
            daemonize.drop_privileges(run_as)
            setproctitle.setproctitle(f"{self.service_name} - Supervisor")
            log.info(f"Daemon: {self.service_name} started.")
            return self.run(self.create_worker())

    def run(self, worker: Worker) -> int:
        """
        Bring up and maintain the worker children until the pool stops.

        :param worker: The worker template forked into every child.
        :return: 0 after a normal stop, 1 after a fatal error.
        """
        self.pool = WorkerProcessPool(worker, self.service_config)
        try:
            still_running = True
            while still_running:
                still_running = self.pool.tick()
                if still_running:
                    time.sleep(settings.TICK_INTERVAL)
        except Exception as e:
            log.critical(f"Critical error in supervisor loop: {e}", exc_info=True)
            self.pool.shutdown()
            return 1
        finally:
            self.pool.restore_signals()

        if self.pool.fatal_error is not None:
            log.critical(f"Daemon: {self.service_name} stopped after a fatal error: {self.pool.fatal_error}")
            return 1

        uptime = time.strftime('%H:%M:%S', time.gmtime(time.time() - self.start_time)) if self.start_time else "unknown"
        log.info(f"Daemon: {self.service_name} stopped. Total runtime: {uptime}")
        return 0
