"""Dataset catalogs.

A catalog lazily yields :class:`~workunits.lib.units.Dataset` values.
Each dataset exposes whether it is partitioned and, if so, lists its
partitions on demand.

Two catalogs are provided:

- :class:`YamlDatasetCatalog` reads table and partition definitions from
  a YAML file.
- :class:`FilesystemDatasetCatalog` walks a warehouse directory laid out
  as ``<root>/<database>/<table>/<k1=v1>/<k2=v2>/`` on any fsspec
  filesystem.

Both honour ``whitelist``/``blacklist`` glob patterns matched against
``database.table``.
"""

from __future__ import annotations

import fnmatch
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import fsspec
import yaml
from fsspec.spec import AbstractFileSystem

from workunits.lib.errors import CatalogError, ConfigurationError
from workunits.lib.units import Column, Dataset, UnitDescriptor

logger = logging.getLogger(__name__)

__all__ = [
    "DatasetCatalog",
    "DatasetFilter",
    "YamlDatasetCatalog",
    "FilesystemDatasetCatalog",
    "TABLE_METADATA_FILE",
    "build_catalog",
]

TABLE_METADATA_FILE = "_table.yaml"


class DatasetFilter:
    """Whitelist/blacklist matching on ``database.table`` names.

    An empty whitelist admits every table; the blacklist always wins.

    Example:
        >>> f = DatasetFilter(whitelist=["sales.*"], blacklist=["sales.tmp_*"])
        >>> f.accepts("sales", "orders")
        True
        >>> f.accepts("sales", "tmp_orders")
        False
    """

    def __init__(
        self,
        whitelist: Optional[Sequence[str]] = None,
        blacklist: Optional[Sequence[str]] = None,
    ) -> None:
        self.whitelist = [p.lower() for p in whitelist or []]
        self.blacklist = [p.lower() for p in blacklist or []]

    def accepts(self, database: str, table: str) -> bool:
        name = f"{database}.{table}".lower()
        if any(fnmatch.fnmatchcase(name, p) for p in self.blacklist):
            return False
        if not self.whitelist:
            return True
        return any(fnmatch.fnmatchcase(name, p) for p in self.whitelist)

    def accepts_database(self, database: str) -> bool:
        """Whether any table of ``database`` could pass the whitelist."""
        if not self.whitelist:
            return True
        database = database.lower()
        return any(
            fnmatch.fnmatchcase(database, p.split(".", 1)[0]) for p in self.whitelist
        )


class DatasetCatalog(ABC):
    """Produces the datasets to examine, in a stable order."""

    def __init__(self, dataset_filter: Optional[DatasetFilter] = None) -> None:
        self.dataset_filter = dataset_filter or DatasetFilter()

    @abstractmethod
    def iterate(self) -> Iterator[Dataset]:
        """Yield datasets lazily.

        Raises:
            CatalogError: If datasets or their partitions cannot be listed
        """

    def __iter__(self) -> Iterator[Dataset]:
        return self.iterate()


def _parse_columns(raw: Any, where: str) -> Tuple[Column, ...]:
    """Accept ``[{name, type}]``, ``["name:type"]`` or ``{name: type}``."""
    if raw is None:
        return ()
    if isinstance(raw, dict):
        return tuple((str(name), str(col_type)) for name, col_type in raw.items())

    columns: List[Column] = []
    for item in raw:
        if isinstance(item, dict):
            if "name" not in item:
                raise CatalogError(f"Column without a name in {where}")
            columns.append((str(item["name"]), str(item.get("type", "string"))))
        elif isinstance(item, str):
            name, _, col_type = item.partition(":")
            columns.append((name.strip(), col_type.strip() or "string"))
        else:
            raise CatalogError(f"Unsupported column definition {item!r} in {where}")
    return tuple(columns)


def _parse_parameters(raw: Any) -> Tuple[Tuple[str, str], ...]:
    if not raw:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in raw.items()))


class YamlDatasetCatalog(DatasetCatalog):
    """Catalog backed by a YAML file.

    Example YAML:
        datasets:
          - database: sales
            table: orders
            location: /warehouse/sales/orders
            columns: ["order_id:bigint", "amount:double"]
            partition_columns: ["dt:string"]
            partitions:
              - values: ["2025-01-15"]
                location: /warehouse/sales/orders/dt=2025-01-15
                parameters: {last_modified_time: "1736937000000"}
    """

    def __init__(
        self,
        path: Union[str, Path],
        dataset_filter: Optional[DatasetFilter] = None,
    ) -> None:
        super().__init__(dataset_filter)
        self.path = Path(path)

    def _load(self) -> List[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = yaml.safe_load(f) or {}
        except OSError as e:
            raise CatalogError(
                "Could not read catalog file", location=str(self.path), cause=e
            ) from e
        except yaml.YAMLError as e:
            raise CatalogError(
                "Catalog file is not valid YAML", location=str(self.path), cause=e
            ) from e

        entries = document.get("datasets", []) if isinstance(document, dict) else None
        if not isinstance(entries, list):
            raise CatalogError(
                "Catalog file must contain a 'datasets' list", location=str(self.path)
            )
        return entries

    def iterate(self) -> Iterator[Dataset]:
        for index, entry in enumerate(self._load()):
            where = f"{self.path}#datasets[{index}]"
            if not isinstance(entry, dict) or "database" not in entry or "table" not in entry:
                raise CatalogError(
                    "Dataset entry needs 'database' and 'table'", location=where
                )
            if not self.dataset_filter.accepts(entry["database"], entry["table"]):
                logger.debug("Filtered out %s.%s", entry["database"], entry["table"])
                continue

            table = UnitDescriptor(
                database=str(entry["database"]),
                table=str(entry["table"]),
                columns=_parse_columns(entry.get("columns"), where),
                partition_columns=_parse_columns(entry.get("partition_columns"), where),
                location=entry.get("location"),
                parameters=_parse_parameters(entry.get("parameters")),
            )
            partitions = entry.get("partitions") or []
            if partitions and not table.has_sub_units:
                raise CatalogError(
                    "Partitions listed for a table without partition_columns",
                    location=where,
                )
            yield Dataset(table, self._partition_lister(partitions, where))

    @staticmethod
    def _partition_lister(partitions: List[Dict[str, Any]], where: str):
        def list_partitions(table: UnitDescriptor) -> List[UnitDescriptor]:
            units = []
            for entry in partitions:
                try:
                    units.append(
                        table.partition(
                            list(entry["values"]),
                            location=entry.get("location"),
                            parameters=dict(_parse_parameters(entry.get("parameters"))),
                        )
                    )
                except (KeyError, TypeError, ValueError) as e:
                    raise CatalogError(
                        "Invalid partition definition", location=where, cause=e
                    ) from e
            return units

        return list_partitions


class FilesystemDatasetCatalog(DatasetCatalog):
    """Catalog that discovers tables from a warehouse directory.

    Layout::

        <root>/<database>/<table>/_table.yaml          (optional metadata)
        <root>/<database>/<table>/<k1=v1>/<k2=v2>/...  (partitions)

    ``_table.yaml`` may declare ``columns``, ``partition_columns`` and
    ``parameters``. Without it, partition columns are inferred (typed
    ``string``) from the first ``key=value`` directory chain found.
    Names starting with ``_`` or ``.`` are ignored.
    """

    def __init__(
        self,
        root: str,
        dataset_filter: Optional[DatasetFilter] = None,
        **storage_options: Any,
    ) -> None:
        super().__init__(dataset_filter)
        self.root = root.rstrip("/")
        self.storage_options = storage_options
        self._fs: Optional[AbstractFileSystem] = None

    @property
    def fs(self) -> AbstractFileSystem:
        """Lazy-load the filesystem."""
        if self._fs is None:
            protocol = self.root.split("://")[0] if "://" in self.root else "file"
            self._fs = fsspec.filesystem(protocol, **self.storage_options)
        return self._fs

    def _location(self, path: str) -> str:
        """Map an fsspec path back to a URI with the root's protocol."""
        if "://" in self.root:
            protocol = self.root.split("://")[0]
            return f"{protocol}://{path}" if "://" not in path else path
        return path

    def _list_dirs(self, path: str) -> List[str]:
        try:
            entries = self.fs.ls(path, detail=True)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise CatalogError("Could not list directory", location=path, cause=e) from e

        dirs = []
        for info in entries:
            name = info["name"].rstrip("/")
            basename = name.split("/")[-1]
            if info.get("type") != "directory" or basename.startswith(("_", ".")):
                continue
            dirs.append(name)
        return sorted(dirs)

    def _read_table_metadata(self, table_path: str) -> Dict[str, Any]:
        path = f"{table_path}/{TABLE_METADATA_FILE}"
        try:
            with self.fs.open(path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise CatalogError("Could not read table metadata", location=path, cause=e) from e
        except yaml.YAMLError as e:
            raise CatalogError("Table metadata is not valid YAML", location=path, cause=e) from e

    def _infer_partition_columns(self, table_path: str) -> Tuple[Column, ...]:
        columns: List[Column] = []
        current = table_path
        while True:
            children = [d for d in self._list_dirs(current) if "=" in d.split("/")[-1]]
            if not children:
                return tuple(columns)
            key = children[0].split("/")[-1].split("=", 1)[0]
            columns.append((key, "string"))
            current = children[0]

    def iterate(self) -> Iterator[Dataset]:
        root_path = self.fs._strip_protocol(self.root)
        for database_path in self._list_dirs(root_path):
            database = database_path.split("/")[-1]
            if not self.dataset_filter.accepts_database(database):
                continue
            for table_path in self._list_dirs(database_path):
                table_name = table_path.split("/")[-1]
                if not self.dataset_filter.accepts(database, table_name):
                    logger.debug("Filtered out %s.%s", database, table_name)
                    continue
                yield self._build_dataset(database, table_name, table_path)

    def _build_dataset(self, database: str, table_name: str, table_path: str) -> Dataset:
        where = f"{table_path}/{TABLE_METADATA_FILE}"
        metadata = self._read_table_metadata(table_path)
        if "partition_columns" in metadata:
            partition_columns = _parse_columns(metadata["partition_columns"], where)
        else:
            partition_columns = self._infer_partition_columns(table_path)

        table = UnitDescriptor(
            database=database,
            table=table_name,
            columns=_parse_columns(metadata.get("columns"), where),
            partition_columns=partition_columns,
            location=self._location(table_path),
            parameters=_parse_parameters(metadata.get("parameters")),
        )
        return Dataset(table, lambda t: self._list_partitions(t, table_path))

    def _list_partitions(self, table: UnitDescriptor, table_path: str) -> List[UnitDescriptor]:
        partitions: List[UnitDescriptor] = []

        def walk(path: str, depth: int, values: List[str]) -> None:
            if depth == len(table.partition_columns):
                partitions.append(table.partition(values, location=self._location(path)))
                return
            expected_key = table.partition_columns[depth][0]
            for child in self._list_dirs(path):
                key, sep, value = child.split("/")[-1].partition("=")
                if not sep or key != expected_key:
                    logger.warning(
                        "Ignoring %s: expected a '%s=' partition directory", child, expected_key
                    )
                    continue
                walk(child, depth + 1, values + [value])

        walk(table_path, 0, [])
        return partitions


def build_catalog(cfg: Dict[str, Any], base_dir: Optional[Path] = None) -> DatasetCatalog:
    """Build a catalog from the ``catalog`` config section.

    Raises:
        ConfigurationError: If the catalog type is unknown or its path is missing
    """
    catalog_type = str(cfg.get("type", "yaml")).lower()
    path = cfg.get("path")
    if not path:
        raise ConfigurationError("catalog.path is required", field="catalog.path")

    dataset_filter = DatasetFilter(
        whitelist=_as_list(cfg.get("whitelist")),
        blacklist=_as_list(cfg.get("blacklist")),
    )

    if catalog_type == "yaml":
        catalog_path = Path(path)
        if base_dir is not None and not catalog_path.is_absolute():
            catalog_path = base_dir / catalog_path
        return YamlDatasetCatalog(catalog_path, dataset_filter)

    if catalog_type == "filesystem":
        root = str(path)
        if "://" not in root and base_dir is not None and not Path(root).is_absolute():
            root = str(base_dir / root)
        return FilesystemDatasetCatalog(
            root, dataset_filter, **dict(cfg.get("storage_options") or {})
        )

    raise ConfigurationError(
        f"Unknown catalog type '{catalog_type}'",
        field="catalog.type",
        value=catalog_type,
        suggestion="Use one of: yaml, filesystem",
    )


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]
