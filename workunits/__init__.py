"""Incremental work-unit discovery for batch pipelines.

Walks a catalog of tables and partitions, compares each unit's source
update time with the watermark recorded by the previous successful run,
and emits a work unit for every unit that changed.

Usage:
    python -m workunits discover ./discovery.yaml
"""

from workunits.lib.assembler import WorkUnitAssembler
from workunits.lib.detector import ChangeDetector
from workunits.lib.runner import discover_work_units
from workunits.lib.units import Dataset, UnitDescriptor, UnitOfWork, Watermark, WatermarkInterval

__version__ = "1.0.0"

__all__ = [
    "ChangeDetector",
    "Dataset",
    "UnitDescriptor",
    "UnitOfWork",
    "Watermark",
    "WatermarkInterval",
    "WorkUnitAssembler",
    "discover_work_units",
]
