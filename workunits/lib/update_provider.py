"""Update-time providers and their registry.

An update-time provider answers one question: when was this unit last
modified at the source? Answers are epoch milliseconds.

Providers are looked up by a configuration key in an explicit registry
and built once per run:

    @register_update_provider("my_source")
    class MySourceUpdateProvider(UpdateTimeProvider):
        ...

    provider = build_update_provider("my_source", {"option": "value"})
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import fsspec
from fsspec.spec import AbstractFileSystem

from workunits.lib.errors import ConfigurationError, ProviderError
from workunits.lib.timeutils import to_millis
from workunits.lib.units import UnitDescriptor

logger = logging.getLogger(__name__)

__all__ = [
    "UpdateTimeProvider",
    "FilesystemUpdateProvider",
    "MetadataUpdateProvider",
    "UPDATE_PROVIDER_REGISTRY",
    "DEFAULT_UPDATE_PROVIDER",
    "register_update_provider",
    "build_update_provider",
    "list_update_provider_types",
]

DEFAULT_UPDATE_PROVIDER = "filesystem"

P = TypeVar("P", bound=Type["UpdateTimeProvider"])

UPDATE_PROVIDER_REGISTRY: Dict[str, Callable[..., "UpdateTimeProvider"]] = {}


def register_update_provider(key: str) -> Callable[[P], P]:
    """Register an update-time provider class under a configuration key."""

    def decorator(cls: P) -> P:
        UPDATE_PROVIDER_REGISTRY[key] = cls
        return cls

    return decorator


def list_update_provider_types() -> List[str]:
    """List all registered update-time provider keys."""
    return sorted(UPDATE_PROVIDER_REGISTRY.keys())


def build_update_provider(
    key: Optional[str] = None, options: Optional[Dict[str, Any]] = None
) -> "UpdateTimeProvider":
    """Resolve ``key`` in the registry and construct the provider.

    Raises:
        ConfigurationError: If the key is unknown or the options are rejected
    """
    key = key or DEFAULT_UPDATE_PROVIDER
    factory = UPDATE_PROVIDER_REGISTRY.get(key)
    if factory is None:
        raise ConfigurationError(
            f"Unknown update provider '{key}'",
            field="update_provider.type",
            value=key,
            suggestion=f"Use one of: {', '.join(list_update_provider_types())}",
        )

    try:
        return factory(**(options or {}))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid options for update provider '{key}': {e}",
            field="update_provider.options",
        ) from e


class UpdateTimeProvider(ABC):
    """Returns the instant at which a unit was last modified at the source."""

    name: str = "abstract"

    @abstractmethod
    def get_update_time(self, unit: UnitDescriptor) -> int:
        """Return the unit's last-modified time in epoch milliseconds.

        Raises:
            ProviderError: If the update time cannot be determined
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


@register_update_provider("filesystem")
class FilesystemUpdateProvider(UpdateTimeProvider):
    """Uses the modification time of the unit's storage location.

    Works with any fsspec filesystem (local paths, s3://, abfs://, gs://,
    hdfs://, ...). By default the modification time of the location
    itself is used. With ``recursive=True`` the newest modification time
    of any file below the location is used instead, which catches
    in-place rewrites that leave a directory's own mtime untouched.
    A directory that reports no time of its own (an object-store prefix)
    always takes the newest time of the files below it.

    Example:
        >>> provider = FilesystemUpdateProvider(recursive=True)
        >>> provider.get_update_time(unit)
        1736937000000
    """

    name = "filesystem"

    def __init__(self, recursive: bool = False, **storage_options: Any) -> None:
        self.recursive = recursive
        self.storage_options = storage_options
        self._filesystems: Dict[str, AbstractFileSystem] = {}

    def _filesystem(self, location: str) -> tuple[AbstractFileSystem, str]:
        protocol = location.split("://")[0] if "://" in location else "file"
        fs = self._filesystems.get(protocol)
        if fs is None:
            fs = fsspec.filesystem(protocol, **self.storage_options)
            self._filesystems[protocol] = fs
        return fs, fs._strip_protocol(location)

    def get_update_time(self, unit: UnitDescriptor) -> int:
        if not unit.location:
            raise ProviderError(
                "Unit has no storage location",
                unit=unit,
                provider=self.name,
                suggestion="Set a location on the table/partition or use the metadata provider.",
            )

        fs, path = self._filesystem(unit.location)
        try:
            info = fs.info(path)
            modified = _modified_time(info)
            # Object-store prefixes carry no mtime of their own
            if info.get("type") == "directory" and (self.recursive or modified is None):
                for child in fs.find(path, detail=True).values():
                    child_modified = _modified_time(child)
                    if child_modified is not None and (
                        modified is None or child_modified > modified
                    ):
                        modified = child_modified
        except OSError as e:
            raise ProviderError(
                f"Could not stat {unit.location}",
                unit=unit,
                provider=self.name,
                cause=e,
            ) from e

        if modified is None:
            raise ProviderError(
                f"Filesystem reports no modification time for {unit.location}",
                unit=unit,
                provider=self.name,
            )
        return modified

    def __repr__(self) -> str:
        return f"FilesystemUpdateProvider(recursive={self.recursive})"


def _modified_time(info: Dict[str, Any]) -> Optional[int]:
    """Extract a modification time in ms from an fsspec info dict."""
    for key in ("mtime", "LastModified", "last_modified", "modified", "updated", "created"):
        value = info.get(key)
        if value is None:
            continue
        if isinstance(value, (datetime, int, float)):
            return to_millis(value)
        if isinstance(value, str):
            return to_millis(datetime.fromisoformat(value.replace("Z", "+00:00")))
    return None


@register_update_provider("metadata")
class MetadataUpdateProvider(UpdateTimeProvider):
    """Reads the update time from a unit metadata parameter.

    Catalogs commonly record a last-modified instant on each table and
    partition (Hive's ``transient_lastDdlTime`` is in epoch seconds).

    Args:
        parameter: Name of the parameter holding the update time
        unit: ``seconds`` or ``millis``
    """

    name = "metadata"

    _SCALES = {"seconds": 1000, "millis": 1}

    def __init__(self, parameter: str = "last_modified_time", unit: str = "millis") -> None:
        if unit not in self._SCALES:
            raise ValueError(f"unit must be one of {sorted(self._SCALES)}, got {unit!r}")
        self.parameter = parameter
        self.unit = unit

    def get_update_time(self, unit: UnitDescriptor) -> int:
        raw = unit.parameter_map.get(self.parameter)
        if raw is None:
            raise ProviderError(
                f"Missing '{self.parameter}' parameter",
                unit=unit,
                provider=self.name,
            )
        try:
            return int(raw) * self._SCALES[self.unit]
        except ValueError as e:
            raise ProviderError(
                f"Parameter '{self.parameter}' is not an integer: {raw!r}",
                unit=unit,
                provider=self.name,
                cause=e,
            ) from e

    def __repr__(self) -> str:
        return f"MetadataUpdateProvider(parameter={self.parameter!r}, unit={self.unit!r})"
