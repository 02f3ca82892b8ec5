"""
This module contains the default settings for procpool daemons.
It defines paths, supervisor limits and worker defaults that are used
throughout the package when a service's .ini file does not override them.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
BASE_DIR = pathlib.Path(os.getcwd())
CONFIG_DIR = pathlib.Path(os.getenv("PROCPOOL_CONFIG_DIR", str(BASE_DIR / "config")))
GLOBAL_CONFIG_NAME = "daemons"  # config/daemons.ini, shared by every service
LOG_DIR = pathlib.Path(os.getenv("PROCPOOL_LOG_DIR", "/tmp"))
PID_DIR = pathlib.Path(os.getenv("PROCPOOL_PID_DIR", "/tmp"))

#* --- Generated System Files ---
INIT_SCRIPT_DIR = pathlib.Path(os.getenv("PROCPOOL_INIT_DIR", "/etc/init.d"))
LOGROTATE_DIR = pathlib.Path(os.getenv("PROCPOOL_LOGROTATE_DIR", "/etc/logrotate.d"))

#* --- Supervisor Settings ---
DEFAULT_NUM_WORKERS = 1
RUNAWAY_FORKING_LIMIT = 10      # quick terminations before the daemon gives up
QUICK_TERMINATION_SECONDS = 1   # a child dying this soon after spawn counts as "quick"
CHILD_EXIT_WAIT = 10            # seconds before force-killing during a drain
DRAIN_POLL_INTERVAL = 1         # seconds between reaps while draining
KILL_WAIT = 5                   # seconds to wait for SIGKILL'd children to be reaped
TICK_INTERVAL = 1               # seconds between supervisor ticks

#* --- Worker Defaults ---
ITERATION_DELAY_SECONDS = 1.0
MEMORY_LIMIT_MB = 128
MEMORY_LOG_INTERVAL_MINUTES = 60
TITLE_UPDATE_INTERVAL = 120     # seconds between process title refreshes

#* --- Logging ---
# Syslog style verbosity, 1-7 with 7 being DEBUG
DEFAULT_LOG_LEVEL = int(os.getenv("PROCPOOL_LOG_LEVEL", "6"))
LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'
