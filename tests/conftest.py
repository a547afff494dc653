"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from workunits.lib.watermark import WatermarkRecord, WatermarkStore  # noqa: E402


@pytest.fixture
def watermark_store(tmp_path):
    """Local watermark store in a temporary directory."""
    return WatermarkStore(storage_backend="local", local_path=tmp_path / "watermarks")


@pytest.fixture
def seed_watermark(watermark_store):
    """Store a previous high watermark for a unit key."""

    def _seed(unit_key: str, value: int) -> WatermarkRecord:
        record = WatermarkRecord(unit_key=unit_key, watermark_value=value)
        watermark_store.save(record)
        return record

    return _seed


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed expected high watermark of 200."""
    return lambda: 200
