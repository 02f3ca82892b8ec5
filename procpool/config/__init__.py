"""
Configuration provider.

Loads a service group's .ini file into an immutable ServiceConfig that the
supervisor and worker consume as a plain key/value view.
"""

from .service_config import ServiceConfig
from .loader import config_path, load_config, load_global_config

__all__ = ["ServiceConfig", "config_path", "load_config", "load_global_config"]
