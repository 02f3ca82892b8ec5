from pathlib import Path
from types import MappingProxyType
from collections.abc import Mapping
from typing import Any, Dict, Iterator, Optional
from procpool.errors import InvalidConfigError

_EMPTY_SECTION: Mapping = MappingProxyType({})


class ServiceConfig(Mapping):
    """
    A read-only view of one service group's configuration.

    Sections are exposed as immutable mappings of key to string value. The
    object is built once by the loader and handed explicitly to the
    supervisor and worker; a forked child keeps the snapshot it inherited.
    """

    def __init__(self, service_group: str, sections: Mapping[str, Mapping[str, Any]], path: Optional[Path] = None) -> None:
        self.service_group = service_group
        self.path = path
        self._sections = MappingProxyType({
            name: MappingProxyType(dict(values)) for name, values in sections.items()
        })

    @classmethod
    def from_dict(cls, sections: Dict[str, Dict[str, Any]], service_group: str = "inline") -> "ServiceConfig":
        """Builds a config directly from nested dictionaries (handy for embedding and tests)."""
        return cls(service_group, sections)

    def __getitem__(self, section_name: str) -> Mapping:
        return self._sections[section_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._sections)

    def __len__(self) -> int:
        return len(self._sections)

    def section(self, section_name: str) -> Mapping:
        """Returns a section, or an empty mapping when the section is absent."""
        return self._sections.get(section_name, _EMPTY_SECTION)

    def get_value(self, section_name: str, key: str, default: Any = None) -> Any:
        return self.section(section_name).get(key, default)

    def get_int(self, section_name: str, key: str, default: int) -> int:
        """
        Returns a setting coerced to int.

        :raises InvalidConfigError: If the configured value is not an integer.
        """
        value = self.get_value(section_name, key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidConfigError(f"Setting '{section_name}.{key}' must be an integer, got {value!r}") from None

    def get_float(self, section_name: str, key: str, default: float) -> float:
        value = self.get_value(section_name, key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            raise InvalidConfigError(f"Setting '{section_name}.{key}' must be a number, got {value!r}") from None

    def __repr__(self) -> str:
        return f"ServiceConfig({self.service_group!r}, sections={list(self._sections)})"
