"""Test doubles for discovery collaborators."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from workunits.lib.catalog import DatasetCatalog
from workunits.lib.errors import ProviderError
from workunits.lib.units import Dataset, UnitDescriptor
from workunits.lib.update_provider import UpdateTimeProvider


class StaticUpdateProvider(UpdateTimeProvider):
    """Update times from a dict keyed by unit complete name."""

    name = "static"

    def __init__(
        self,
        times: Dict[str, int],
        failing: Iterable[str] = (),
    ) -> None:
        self.times = dict(times)
        self.failing = set(failing)
        self.calls: List[str] = []

    def get_update_time(self, unit: UnitDescriptor) -> int:
        self.calls.append(unit.complete_name)
        if unit.complete_name in self.failing:
            raise ProviderError("update time unavailable", unit=unit, provider=self.name)
        return self.times[unit.complete_name]


class ListCatalog(DatasetCatalog):
    """Catalog over an in-memory list of datasets."""

    def __init__(self, datasets: List[Dataset]) -> None:
        super().__init__()
        self.datasets = datasets
        self.iterations = 0

    def iterate(self) -> Iterator[Dataset]:
        self.iterations += 1
        yield from self.datasets


def make_table(
    database: str = "sales",
    table: str = "orders",
    partition_columns: Optional[List[str]] = None,
    location: Optional[str] = None,
) -> UnitDescriptor:
    return UnitDescriptor(
        database=database,
        table=table,
        columns=(("order_id", "bigint"), ("amount", "double")),
        partition_columns=tuple(
            (name, "string") for name in (partition_columns or [])
        ),
        location=location,
    )


def make_partitioned_dataset(
    values: List[str],
    database: str = "sales",
    table: str = "orders",
) -> Dataset:
    """Dataset partitioned by ``dt`` with one partition per value."""
    root = make_table(database, table, partition_columns=["dt"])
    return Dataset(root, lambda t: [t.partition([v]) for v in values])
