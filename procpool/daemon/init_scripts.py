import logging
from pathlib import Path
from typing import Union
from procpool import settings

log = logging.getLogger(__name__)

INIT_SCRIPT_TEMPLATE = """#!/bin/sh
### BEGIN INIT INFO
# Provides:          {name}
# Required-Start:    $local_fs $remote_fs $network $syslog
# Required-Stop:     $local_fs $remote_fs $network $syslog
# Default-Start:     2 3 4 5
# Default-Stop:      0 1 6
# Short-Description: {description}
### END INIT INFO
# Author: {author}

NAME="{name}"
DAEMON="{command}"
PIDFILE="{pidfile}"

running() {{
    [ -f "$PIDFILE" ] && kill -0 "$(cat "$PIDFILE")" 2>/dev/null
}}

case "$1" in
    start)
        if running; then
            echo "$NAME is already running"
            exit 0
        fi
        echo "Starting $NAME"
        $DAEMON
        ;;
    stop)
        if running; then
            echo "Stopping $NAME"
            kill -TERM "$(cat "$PIDFILE")"
            while running; do sleep 1; done
        else
            echo "$NAME is not running"
        fi
        ;;
    reload)
        running && kill -HUP "$(cat "$PIDFILE")"
        ;;
    restart|force-reload)
        $0 stop
        $0 start
        ;;
    status)
        if running; then
            echo "$NAME is running"
            exit 0
        fi
        echo "$NAME is not running"
        exit 3
        ;;
    *)
        echo "Usage: $0 {{start|stop|restart|reload|force-reload|status}}" >&2
        exit 3
        ;;
esac

exit 0
"""

# Rotate the log daily, keep 30 days worth of files.
LOGROTATE_TEMPLATE = """{logfile} {{
\tdaily
\trotate 30
\tcopytruncate
\tdelaycompress
\tcompress
\tnotifempty
\tmissingok
\tdateext
}}
"""


def render_init_script(name: str, description: str, command: str, pidfile: Union[str, Path], author: str = "") -> str:
    return INIT_SCRIPT_TEMPLATE.format(
        name=name,
        description=description or name,
        command=command,
        pidfile=str(pidfile),
        author=author or "unknown",
    )


def render_logrotate_config(logfile: Union[str, Path]) -> str:
    return LOGROTATE_TEMPLATE.format(logfile=str(logfile))


def write_init_script(name: str, content: str, init_dir: Union[str, Path, None] = None) -> bool:
    """
    Writes the init.d script for a service.

    :return: True if the script is in place afterwards.
    """
    init_dir = Path(init_dir or settings.INIT_SCRIPT_DIR)
    if not init_dir.is_dir():
        log.warning(f"Unable to write init script. {init_dir} does not exist")
        return False

    script_path = init_dir / name
    try:
        script_path.write_text(content)
        script_path.chmod(0o755)
    except OSError as e:
        log.warning(f"Unable to write init script to {script_path}: {e}. Check file permissions.")
        return False
    log.info(f"Init script written to {script_path}")
    return True


def write_logrotate_config(name: str, logfile: Union[str, Path], logrotate_dir: Union[str, Path, None] = None) -> bool:
    """
    Generates and writes a logrotate configuration. An existing file is never overwritten.

    :return: True if a new configuration was written.
    """
    logrotate_dir = Path(logrotate_dir or settings.LOGROTATE_DIR)
    if not logrotate_dir.is_dir():
        log.warning(f"Unable to write logrotate configuration. {logrotate_dir} does not exist")
        return False

    conf_path = logrotate_dir / name
    if conf_path.exists():
        log.info("Log rotation configuration not installed. Logrotate configuration already exists")
        return False

    try:
        conf_path.write_text(render_logrotate_config(logfile))
    except OSError:
        log.warning("Unable to write logrotate configuration. Check file permissions.")
        return False
    log.info(f"Logrotate configuration written to {conf_path}")
    return True
