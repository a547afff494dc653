"""Tests for the discovery driver."""

from pathlib import Path

import pytest
import yaml

from workunits.lib.config_loader import parse_discovery_config
from workunits.lib.errors import ConfigurationError, ProviderError
from workunits.lib.observability import RunContext
from workunits.lib.runner import (
    COMPLETED_EVENT,
    FAILED_EVENT,
    FIND_DATASETS_EVENT,
    SETUP_EVENT,
    build_components,
    commit_work_units,
    discover_work_units,
)
from workunits.lib.watermark import WatermarkRecord, build_watermark_store


def sales_catalog(tmp_path: Path, p2_parameters=None) -> Path:
    path = tmp_path / "catalog.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "datasets": [
                    {
                        "database": "sales",
                        "table": "sales",
                        "partition_columns": ["dt:string"],
                        "partitions": [
                            {"values": ["P1"], "parameters": {"last_modified_time": 100}},
                            {
                                "values": ["P2"],
                                "parameters": (
                                    {"last_modified_time": 40}
                                    if p2_parameters is None
                                    else p2_parameters
                                ),
                            },
                        ],
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    return path


def sales_config(tmp_path: Path, **overrides):
    raw = {
        "catalog": {"type": "yaml", "path": "catalog.yaml"},
        "update_provider": {"type": "metadata"},
        "watermarks": {"local_path": "state"},
    }
    raw.update(overrides)
    return parse_discovery_config(raw, base_dir=tmp_path)


def seed(config, **values):
    store = build_watermark_store(config.watermarks, config.base_dir)
    for key, value in values.items():
        store.save(WatermarkRecord(unit_key=key, watermark_value=value))
    return store


class TestDiscoverWorkUnits:
    def test_sales_example(self, tmp_path):
        """P1 changed after its watermark, P2 did not."""
        sales_catalog(tmp_path)
        config = sales_config(tmp_path)
        seed(config, **{"sales@sales@dt=P1": 50, "sales@sales@dt=P2": 50})

        result = discover_work_units(config, clock=lambda: 200)

        assert len(result) == 1
        properties = result.work_units[0].to_dict()
        assert properties["partitions.complete_name"] == "sales@sales@dt=P1"
        assert properties["watermark.low"] == 50
        assert properties["watermark.expected_high"] == 200
        assert result.context.event_names() == [
            SETUP_EVENT,
            FIND_DATASETS_EVENT,
            COMPLETED_EVENT,
        ]

    def test_result_to_dict(self, tmp_path):
        sales_catalog(tmp_path)
        config = sales_config(tmp_path)

        result = discover_work_units(config, clock=lambda: 200, context=RunContext("run-7"))
        data = result.to_dict()

        assert data["run_id"] == "run-7"
        assert len(data["work_units"]) == 2
        assert data["summary"]["counters"]["work_units_created"] == 2

    def test_configuration_error_before_any_unit(self, tmp_path):
        sales_catalog(tmp_path)
        config = sales_config(tmp_path, update_provider={"type": "unknown"})
        context = RunContext()

        with pytest.raises(ConfigurationError):
            discover_work_units(config, context=context)

        assert context.event_names() == [SETUP_EVENT, FAILED_EVENT]
        assert context.counter("units_checked") == 0
        assert context.events[-1].metadata["error"]["error_type"] == "ConfigurationError"

    def test_provider_failure_aborts_run(self, tmp_path):
        sales_catalog(tmp_path, p2_parameters={})
        config = sales_config(tmp_path)
        context = RunContext()

        with pytest.raises(ProviderError):
            discover_work_units(config, clock=lambda: 200, context=context)

        assert context.event_names()[-1] == FAILED_EVENT

    def test_commit_then_rediscover(self, tmp_path):
        sales_catalog(tmp_path)
        config = sales_config(tmp_path)

        first = discover_work_units(config, clock=lambda: 200)
        store = build_components(config).watermark_store
        committed = commit_work_units(store, first.work_units, run_id=first.run_id)
        second = discover_work_units(config, clock=lambda: 300)

        assert committed == 2
        assert len(second) == 0
        assert store.load("sales@sales@dt=P1").last_run_id == first.run_id


class TestBuildComponents:
    def test_max_workers_reaches_assembler(self, tmp_path):
        config = sales_config(tmp_path, assembler={"max_workers": 3})
        components = build_components(config)
        assert components.assembler.max_workers == 3
        assert components.watermark_store.local_path == tmp_path / "state"
