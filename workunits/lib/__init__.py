"""Work-unit discovery library modules.

This package contains the data model, the collaborators (catalogs,
update-time providers, watermark store) and the change-detection core.
"""

from workunits.lib.assembler import WorkUnitAssembler
from workunits.lib.catalog import (
    DatasetCatalog,
    DatasetFilter,
    FilesystemDatasetCatalog,
    YamlDatasetCatalog,
    build_catalog,
)
from workunits.lib.config_loader import DiscoveryConfig, load_discovery_config
from workunits.lib.detector import ChangeCheck, ChangeDetector
from workunits.lib.env import expand_config, expand_env_vars, load_env_file
from workunits.lib.errors import (
    CatalogError,
    ConfigurationError,
    DiscoveryError,
    ProviderError,
    SerializationError,
)
from workunits.lib.observability import JSONFormatter, RunContext, setup_logging
from workunits.lib.runner import DiscoveryResult, commit_work_units, discover_work_units
from workunits.lib.serialization import deserialize_unit, serialize_unit
from workunits.lib.units import (
    Dataset,
    UnitDescriptor,
    UnitOfWork,
    Watermark,
    WatermarkInterval,
)
from workunits.lib.update_provider import (
    FilesystemUpdateProvider,
    MetadataUpdateProvider,
    UpdateTimeProvider,
    build_update_provider,
    register_update_provider,
)
from workunits.lib.watermark import WatermarkRecord, WatermarkStore, build_watermark_store

__all__ = [
    # Model
    "Dataset",
    "UnitDescriptor",
    "UnitOfWork",
    "Watermark",
    "WatermarkInterval",
    # Core
    "ChangeCheck",
    "ChangeDetector",
    "WorkUnitAssembler",
    # Catalogs
    "DatasetCatalog",
    "DatasetFilter",
    "FilesystemDatasetCatalog",
    "YamlDatasetCatalog",
    "build_catalog",
    # Update providers
    "UpdateTimeProvider",
    "FilesystemUpdateProvider",
    "MetadataUpdateProvider",
    "build_update_provider",
    "register_update_provider",
    # Watermarks
    "WatermarkRecord",
    "WatermarkStore",
    "build_watermark_store",
    # Serialization
    "serialize_unit",
    "deserialize_unit",
    # Driver & config
    "DiscoveryConfig",
    "DiscoveryResult",
    "commit_work_units",
    "discover_work_units",
    "load_discovery_config",
    # Errors
    "CatalogError",
    "ConfigurationError",
    "DiscoveryError",
    "ProviderError",
    "SerializationError",
    # Plumbing
    "JSONFormatter",
    "RunContext",
    "setup_logging",
    "expand_config",
    "expand_env_vars",
    "load_env_file",
]
