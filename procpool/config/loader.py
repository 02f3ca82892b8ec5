import logging
import configparser
from pathlib import Path
from typing import Dict, Optional, Union
from procpool import settings
from procpool.errors import ConfigNotFoundError
from procpool.config.service_config import ServiceConfig

log = logging.getLogger(__name__)


def _strip_quotes(value: str) -> str:
    """Ini files written for the old PHP loader quote their strings; drop the quotes."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def _read_sections(path: Path) -> Dict[str, Dict[str, str]]:
    parser = configparser.ConfigParser(interpolation=None)
    with path.open("r") as f:
        parser.read_file(f)
    return {
        name: {key: _strip_quotes(value) for key, value in parser.items(name)}
        for name in parser.sections()
    }


def config_path(service_group: str, config_dir: Optional[Union[str, Path]] = None) -> Path:
    """Returns the path of the .ini file for a service group."""
    return Path(config_dir or settings.CONFIG_DIR) / f"{service_group}.ini"


def load_config(service_group: str, config_dir: Optional[Union[str, Path]] = None) -> ServiceConfig:
    """
    Reads and parses the .ini file for a service group.

    :param service_group: Name of the service group, which is also the file name.
    :param config_dir: Directory holding the .ini files. Defaults to settings.CONFIG_DIR.
    :return: An immutable ServiceConfig.
    :raises ConfigNotFoundError: If the file does not exist.
    """
    path = config_path(service_group, config_dir)
    if not path.exists():
        raise ConfigNotFoundError(path)

    sections = _read_sections(path)
    log.debug(f"Loaded config '{service_group}' from {path} with sections {sorted(sections)}")
    return ServiceConfig(service_group, sections, path)


def load_global_config(config_dir: Optional[Union[str, Path]] = None) -> ServiceConfig:
    """
    Reads the optional configuration shared by every daemon (daemons.ini).
    A missing file yields an empty config rather than an error.
    """
    try:
        return load_config(settings.GLOBAL_CONFIG_NAME, config_dir)
    except ConfigNotFoundError:
        log.debug("No global daemon configuration found, using defaults.")
        return ServiceConfig(settings.GLOBAL_CONFIG_NAME, {})
