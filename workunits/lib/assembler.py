"""Work-unit assembly over a dataset catalog.

For every unit in the catalog the assembler fetches the previous high
watermark, asks the :class:`~workunits.lib.detector.ChangeDetector`
whether the unit changed since then, and builds a
:class:`~workunits.lib.units.UnitOfWork` for each stale unit.

The expected high watermark is captured once, before the first dataset
is read, and shared by every work unit of the run so that a slow walk
cannot produce inconsistent upper bounds.

A run is all-or-nothing: any catalog or provider failure propagates and
no work units are returned.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Iterator, List, Optional

from workunits.lib.catalog import DatasetCatalog
from workunits.lib.detector import ChangeCheck, ChangeDetector
from workunits.lib.errors import CatalogError, DiscoveryError, ProviderError
from workunits.lib.observability import RunContext
from workunits.lib.serialization import serialize_unit
from workunits.lib.timeutils import now_millis
from workunits.lib.units import (
    Dataset,
    UnitDescriptor,
    UnitOfWork,
    Watermark,
    WatermarkInterval,
)
from workunits.lib.watermark import WatermarkStore

logger = logging.getLogger(__name__)

__all__ = ["WorkUnitAssembler"]


class WorkUnitAssembler:
    """Turns a catalog walk into an ordered list of work units.

    Args:
        watermark_store: Source of each unit's previous high watermark
        detector: Stale/current decision for one unit
        serializer: Encodes a unit's metadata into the work unit payload
        clock: Returns "now" in epoch milliseconds
        max_workers: Values above 1 fan the per-unit lookups of a dataset
            out to a thread pool. Output order is unchanged.

    Example:
        assembler = WorkUnitAssembler(store, ChangeDetector(provider))
        work_units = assembler.run(catalog)
    """

    def __init__(
        self,
        watermark_store: WatermarkStore,
        detector: ChangeDetector,
        *,
        serializer: Callable[[UnitDescriptor], str] = serialize_unit,
        clock: Callable[[], int] = now_millis,
        max_workers: int = 1,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.watermark_store = watermark_store
        self.detector = detector
        self.serializer = serializer
        self.clock = clock
        self.max_workers = max_workers

    def run(
        self, catalog: DatasetCatalog, context: Optional[RunContext] = None
    ) -> List[UnitOfWork]:
        """Walk ``catalog`` once and return the work units of stale units.

        Raises:
            CatalogError: If the catalog cannot list datasets or partitions
            ProviderError: If a watermark or update-time lookup fails
        """
        context = context or RunContext()
        expected_high = Watermark(int(self.clock()))
        logger.debug("Expected high watermark for this run: %d", expected_high.value)

        work_units: List[UnitOfWork] = []
        executor = (
            ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="workunits")
            if self.max_workers > 1
            else None
        )
        try:
            for dataset in _iterate_catalog(catalog):
                context.increment("datasets")
                logger.debug("Processing dataset: %r", dataset)

                if dataset.is_partitioned():
                    units = _list_partitions(dataset)
                else:
                    units = [dataset.table]

                for check in self._check_all(units, executor):
                    context.increment("units_checked")
                    work_unit = self._build_work_unit(dataset, check, expected_high)
                    if work_unit is None:
                        context.increment("units_skipped")
                        continue
                    work_units.append(work_unit)
                    context.increment("work_units_created")
                    logger.debug("Work unit added for %s", check.unit.complete_name)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        logger.info(
            "Created %d work units from %d datasets (%d units checked)",
            len(work_units),
            context.counter("datasets"),
            context.counter("units_checked"),
        )
        return work_units

    def _check_all(
        self, units: List[UnitDescriptor], executor: Optional[ThreadPoolExecutor]
    ) -> Iterable[ChangeCheck]:
        if executor is None:
            return (self._check(unit) for unit in units)
        # map() yields in submission order and re-raises the first failure
        return executor.map(self._check, units)

    def _check(self, unit: UnitDescriptor) -> ChangeCheck:
        low_watermark = self._previous_high_watermark(unit)
        return self.detector.check(unit, low_watermark)

    def _previous_high_watermark(self, unit: UnitDescriptor) -> Watermark:
        try:
            return self.watermark_store.get_previous_high_watermark(unit)
        except DiscoveryError:
            raise
        except Exception as e:
            raise ProviderError(
                "Watermark lookup failed", unit=unit, provider="watermark", cause=e
            ) from e

    def _build_work_unit(
        self, dataset: Dataset, check: ChangeCheck, expected_high: Watermark
    ) -> Optional[UnitOfWork]:
        unit = check.unit
        kind = "partition" if unit.is_partition else "table"

        if not check.stale:
            logger.info(
                "Not creating work unit for %s %s as update time %d is not newer "
                "than low watermark %d",
                kind,
                unit.complete_name,
                check.update_time,
                check.low_watermark.value,
            )
            return None

        if check.low_watermark > expected_high:
            logger.warning(
                "Not creating work unit for %s %s as low watermark %d is ahead of "
                "expected high watermark %d (clock skew?)",
                kind,
                unit.complete_name,
                check.low_watermark.value,
                expected_high.value,
            )
            return None

        interval = WatermarkInterval(low=check.low_watermark, expected_high=expected_high)
        payload = self.serializer(unit)

        if unit.is_partition:
            return UnitOfWork(
                serialized_unit=payload,
                interval=interval,
                dataset_urn=dataset.urn,
                partition_complete_name=unit.complete_name,
                partition_name=unit.partition_name,
                partition_types=unit.partition_column_types,
            )
        return UnitOfWork(serialized_unit=payload, interval=interval, dataset_urn=dataset.urn)


def _iterate_catalog(catalog: DatasetCatalog) -> Iterator[Dataset]:
    """Iterate the catalog, surfacing unexpected failures as CatalogError."""
    iterator = iter(catalog.iterate())
    while True:
        try:
            dataset = next(iterator)
        except StopIteration:
            return
        except DiscoveryError:
            raise
        except Exception as e:
            raise CatalogError("Catalog iteration failed", cause=e) from e
        yield dataset


def _list_partitions(dataset: Dataset) -> List[UnitDescriptor]:
    try:
        return dataset.list_units()
    except DiscoveryError:
        raise
    except Exception as e:
        raise CatalogError(
            "Could not list partitions", location=dataset.urn, cause=e
        ) from e
