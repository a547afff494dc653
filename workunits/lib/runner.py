"""Discovery driver.

Wires the catalog, watermark store and update-time provider together
from a :class:`~workunits.lib.config_loader.DiscoveryConfig`, runs the
assembler and reports run-level events.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from workunits.lib.assembler import WorkUnitAssembler
from workunits.lib.catalog import DatasetCatalog, build_catalog
from workunits.lib.config_loader import DiscoveryConfig
from workunits.lib.detector import ChangeDetector
from workunits.lib.errors import DiscoveryError
from workunits.lib.observability import RunContext
from workunits.lib.timeutils import now_millis
from workunits.lib.units import UnitOfWork
from workunits.lib.update_provider import build_update_provider
from workunits.lib.watermark import WatermarkStore, build_watermark_store

logger = logging.getLogger(__name__)

__all__ = [
    "SETUP_EVENT",
    "FIND_DATASETS_EVENT",
    "COMPLETED_EVENT",
    "FAILED_EVENT",
    "DiscoveryResult",
    "DiscoveryComponents",
    "build_components",
    "discover_work_units",
    "commit_work_units",
]

# Event names
SETUP_EVENT = "Setup"
FIND_DATASETS_EVENT = "FindDatasets"
COMPLETED_EVENT = "DiscoveryCompleted"
FAILED_EVENT = "DiscoveryFailed"


class DiscoveryComponents:
    """Collaborators resolved from configuration for one run."""

    def __init__(
        self,
        catalog: DatasetCatalog,
        watermark_store: WatermarkStore,
        assembler: WorkUnitAssembler,
    ) -> None:
        self.catalog = catalog
        self.watermark_store = watermark_store
        self.assembler = assembler


class DiscoveryResult:
    """Work units of a successful run plus its run context."""

    def __init__(self, work_units: List[UnitOfWork], context: RunContext) -> None:
        self.work_units = work_units
        self.context = context

    @property
    def run_id(self) -> str:
        return self.context.run_id

    def __len__(self) -> int:
        return len(self.work_units)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "work_units": [wu.to_dict() for wu in self.work_units],
            "summary": self.context.summary(),
        }

    def __repr__(self) -> str:
        return f"DiscoveryResult(run_id={self.run_id!r}, work_units={len(self.work_units)})"


def build_components(
    config: DiscoveryConfig, *, clock: Callable[[], int] = now_millis
) -> DiscoveryComponents:
    """Resolve every collaborator named by the config.

    Raises:
        ConfigurationError: Before any unit is processed, if something
            cannot be constructed
    """
    catalog = build_catalog(config.catalog, config.base_dir)
    watermark_store = build_watermark_store(config.watermarks, config.base_dir)
    update_provider = build_update_provider(
        config.update_provider_type, config.update_provider_options
    )
    assembler = WorkUnitAssembler(
        watermark_store,
        ChangeDetector(update_provider),
        clock=clock,
        max_workers=config.max_workers,
    )
    logger.debug(
        "Resolved catalog=%r store=%r provider=%r", catalog, watermark_store, update_provider
    )
    return DiscoveryComponents(catalog, watermark_store, assembler)


def discover_work_units(
    config: DiscoveryConfig,
    *,
    clock: Callable[[], int] = now_millis,
    context: Optional[RunContext] = None,
) -> DiscoveryResult:
    """Run one discovery pass.

    Returns:
        DiscoveryResult with the work units in catalog order

    Raises:
        DiscoveryError: On any configuration, catalog or provider failure.
            No partial result is returned.
    """
    context = context or RunContext()
    context.submit(SETUP_EVENT)

    try:
        components = build_components(config, clock=clock)

        context.submit(FIND_DATASETS_EVENT)
        with context.time_phase("assemble"):
            work_units = components.assembler.run(components.catalog, context)
    except DiscoveryError as e:
        context.submit(FAILED_EVENT, error=e.to_dict())
        logger.error("Discovery run %s failed: %s", context.run_id, e)
        raise

    context.submit(
        COMPLETED_EVENT,
        work_units=len(work_units),
        units_skipped=context.counter("units_skipped"),
    )
    context.finish()
    return DiscoveryResult(work_units, context)


def commit_work_units(
    watermark_store: WatermarkStore,
    work_units: Iterable[UnitOfWork],
    run_id: Optional[str] = None,
) -> int:
    """Persist the expected high watermark of processed work units.

    This is the downstream consumer's step, run after the work units were
    processed successfully.

    Returns:
        Number of work units committed
    """
    count = 0
    for work_unit in work_units:
        watermark_store.commit(work_unit, run_id=run_id)
        count += 1
    logger.info("Committed %d work unit watermarks", count)
    return count
