"""Tests for run context and logging helpers."""

import json
import logging

from workunits.lib.observability import EVENT_NAMESPACE, JSONFormatter, RunContext


class TestRunContext:
    def test_run_ids_are_unique(self):
        assert RunContext().run_id != RunContext().run_id

    def test_events_are_recorded_in_order(self):
        context = RunContext(run_id="r1")
        context.submit("Setup")
        event = context.submit("FindDatasets", datasets=3)

        assert context.event_names() == ["Setup", "FindDatasets"]
        assert event.qualified_name == f"{EVENT_NAMESPACE}.FindDatasets"
        assert event.to_dict()["metadata"] == {"datasets": 3}

    def test_contexts_do_not_share_state(self):
        first, second = RunContext(), RunContext()
        first.submit("Setup")
        first.increment("datasets", 2)

        assert second.events == []
        assert second.counter("datasets") == 0
        assert first.counter("datasets") == 2

    def test_summary(self):
        context = RunContext(run_id="r1")
        context.increment("units_checked")
        with context.time_phase("assemble"):
            pass

        summary = context.summary()

        assert summary["run_id"] == "r1"
        assert summary["counters"] == {"units_checked": 1}
        assert "assemble" in summary["timing"]["phases"]


class TestJSONFormatter:
    def test_format(self):
        record = logging.LogRecord(
            "workunits.lib.assembler", logging.INFO, __file__, 10, "Created %d", (3,), None
        )
        record.run_id = "r1"
        record.event_metadata = {"datasets": 2}

        payload = json.loads(JSONFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "workunits.lib.assembler"
        assert payload["message"] == "Created 3"
        assert payload["run_id"] == "r1"
        assert payload["extra"] == {"event_metadata": {"datasets": 2}}
        assert payload["timestamp"].endswith("Z")

    def test_record_without_extras(self):
        record = logging.LogRecord("x", logging.WARNING, __file__, 1, "plain", (), None)
        payload = json.loads(JSONFormatter().format(record))
        assert "run_id" not in payload
        assert "extra" not in payload
