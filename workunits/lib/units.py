"""Data model for incremental work-unit discovery.

A *unit* is the smallest addressable thing that can be processed: a
table, or one partition of a table. Both shapes are modelled by one
:class:`UnitDescriptor`; the ``has_sub_units`` flag tells a partitioned
table (iterable into partitions) apart from an atomic unit.

Watermarks are integer instants in milliseconds. Every emitted
:class:`UnitOfWork` carries a :class:`WatermarkInterval` of
``(previous high watermark, expected high watermark of this run)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

__all__ = [
    "Column",
    "UnitDescriptor",
    "Dataset",
    "Watermark",
    "WatermarkInterval",
    "UnitOfWork",
    "UNIT_SERIALIZED_KEY",
    "DATASET_URN_KEY",
    "WATERMARK_LOW_KEY",
    "WATERMARK_EXPECTED_HIGH_KEY",
    "PARTITIONS_COMPLETE_NAME_KEY",
    "PARTITIONS_NAME_KEY",
    "PARTITIONS_TYPE_KEY",
]

# Work unit property keys
UNIT_SERIALIZED_KEY = "unit.serialized"
DATASET_URN_KEY = "dataset.urn"
WATERMARK_LOW_KEY = "watermark.low"
WATERMARK_EXPECTED_HIGH_KEY = "watermark.expected_high"
PARTITIONS_COMPLETE_NAME_KEY = "partitions.complete_name"
PARTITIONS_NAME_KEY = "partitions.name"
PARTITIONS_TYPE_KEY = "partitions.type"

# (name, type) pair, e.g. ("order_id", "bigint")
Column = Tuple[str, str]


@dataclass(frozen=True)
class UnitDescriptor:
    """Identity and metadata snapshot for a table or a partition.

    Attributes:
        database: Database (schema) the table lives in
        table: Table name
        partition_values: Values for each partition column; empty for tables
        columns: Ordered data columns as (name, type) pairs
        partition_columns: Ordered partition columns as (name, type) pairs
        location: Storage path of the unit's data, if known
        parameters: Free-form metadata (owner, format, last DDL time, ...)
    """

    database: str
    table: str
    partition_values: Tuple[str, ...] = ()
    columns: Tuple[Column, ...] = ()
    partition_columns: Tuple[Column, ...] = ()
    location: Optional[str] = None
    parameters: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        if self.partition_values and len(self.partition_values) != len(
            self.partition_columns
        ):
            raise ValueError(
                f"Partition {self.table_complete_name} has "
                f"{len(self.partition_values)} values for "
                f"{len(self.partition_columns)} partition columns"
            )

    @property
    def is_partition(self) -> bool:
        """True when this unit is one partition of a table."""
        return bool(self.partition_values)

    @property
    def has_sub_units(self) -> bool:
        """True for a table that is iterable into partitions."""
        return not self.is_partition and bool(self.partition_columns)

    @property
    def table_complete_name(self) -> str:
        return f"{self.database}@{self.table}"

    @property
    def partition_name(self) -> str:
        """Partition name as ``k1=v1/k2=v2``; empty for tables."""
        return "/".join(
            f"{name}={value}"
            for (name, _), value in zip(self.partition_columns, self.partition_values)
        )

    @property
    def complete_name(self) -> str:
        """Globally unique unit name; also the watermark key."""
        if self.is_partition:
            return f"{self.table_complete_name}@{self.partition_name}"
        return self.table_complete_name

    @property
    def partition_column_types(self) -> str:
        """Colon-separated partition column types, e.g. ``string:int``."""
        return ":".join(col_type for _, col_type in self.partition_columns)

    @property
    def parameter_map(self) -> Dict[str, str]:
        return dict(self.parameters)

    def partition(
        self,
        values: List[str],
        *,
        location: Optional[str] = None,
        parameters: Optional[Dict[str, str]] = None,
    ) -> "UnitDescriptor":
        """Build the descriptor of one partition of this table."""
        if not self.has_sub_units:
            raise ValueError(f"Table {self.table_complete_name} is not partitioned")
        return UnitDescriptor(
            database=self.database,
            table=self.table,
            partition_values=tuple(str(v) for v in values),
            columns=self.columns,
            partition_columns=self.partition_columns,
            location=location,
            parameters=tuple(sorted((parameters or {}).items())),
        )

    def __str__(self) -> str:
        return self.complete_name


class Dataset:
    """A table and, when partitioned, the partitions it exposes.

    Partitions are listed lazily through ``partition_lister`` so that a
    catalog can defer the (possibly expensive) listing until the
    assembler reaches this dataset.
    """

    def __init__(
        self,
        table: UnitDescriptor,
        partition_lister: Optional[Callable[[UnitDescriptor], List[UnitDescriptor]]] = None,
    ) -> None:
        if table.is_partition:
            raise ValueError(f"Dataset root must be a table, got {table.complete_name}")
        self.table = table
        self._partition_lister = partition_lister

    @property
    def urn(self) -> str:
        return self.table.table_complete_name

    def is_partitioned(self) -> bool:
        return self.table.has_sub_units

    def list_units(self) -> List[UnitDescriptor]:
        """Return the units to check: partitions, or the table itself."""
        if not self.is_partitioned():
            return [self.table]
        if self._partition_lister is None:
            return []
        return list(self._partition_lister(self.table))

    def __repr__(self) -> str:
        return f"Dataset(urn={self.urn!r}, partitioned={self.is_partitioned()})"


@dataclass(frozen=True, order=True)
class Watermark:
    """Progress marker for a unit, in milliseconds since epoch."""

    value: int = 0

    @classmethod
    def zero(cls) -> "Watermark":
        """Watermark of a never-processed unit."""
        return cls(0)


@dataclass(frozen=True)
class WatermarkInterval:
    """The (low, expected high) watermark pair attached to a work unit."""

    low: Watermark
    expected_high: Watermark

    def __post_init__(self) -> None:
        if self.low > self.expected_high:
            raise ValueError(
                f"Low watermark {self.low.value} is ahead of expected high "
                f"watermark {self.expected_high.value}"
            )


@dataclass(frozen=True)
class UnitOfWork:
    """Descriptor handed to downstream processing for one stale unit."""

    serialized_unit: str
    interval: WatermarkInterval
    dataset_urn: str
    partition_complete_name: Optional[str] = None
    partition_name: Optional[str] = None
    partition_types: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_partition(self) -> bool:
        return self.partition_complete_name is not None

    @property
    def unit_key(self) -> str:
        """Complete name of the unit this work unit was built for."""
        return self.partition_complete_name or self.dataset_urn

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the flat property map consumed downstream."""
        result: Dict[str, Any] = dict(self.properties)
        result.update({
            UNIT_SERIALIZED_KEY: self.serialized_unit,
            DATASET_URN_KEY: self.dataset_urn,
            WATERMARK_LOW_KEY: self.interval.low.value,
            WATERMARK_EXPECTED_HIGH_KEY: self.interval.expected_high.value,
        })
        if self.is_partition:
            result[PARTITIONS_COMPLETE_NAME_KEY] = self.partition_complete_name
            result[PARTITIONS_NAME_KEY] = self.partition_name
            result[PARTITIONS_TYPE_KEY] = self.partition_types
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnitOfWork":
        """Create from a property map produced by :meth:`to_dict`."""
        known = {
            UNIT_SERIALIZED_KEY,
            DATASET_URN_KEY,
            WATERMARK_LOW_KEY,
            WATERMARK_EXPECTED_HIGH_KEY,
            PARTITIONS_COMPLETE_NAME_KEY,
            PARTITIONS_NAME_KEY,
            PARTITIONS_TYPE_KEY,
        }
        return cls(
            serialized_unit=data[UNIT_SERIALIZED_KEY],
            interval=WatermarkInterval(
                low=Watermark(int(data[WATERMARK_LOW_KEY])),
                expected_high=Watermark(int(data[WATERMARK_EXPECTED_HIGH_KEY])),
            ),
            dataset_urn=data[DATASET_URN_KEY],
            partition_complete_name=data.get(PARTITIONS_COMPLETE_NAME_KEY),
            partition_name=data.get(PARTITIONS_NAME_KEY),
            partition_types=data.get(PARTITIONS_TYPE_KEY),
            properties={k: v for k, v in data.items() if k not in known},
        )
