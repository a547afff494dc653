"""Tests for unit payload serialization."""

import json

import pytest

from tests.helpers import make_table
from workunits.lib.errors import SerializationError
from workunits.lib.serialization import (
    deserialize_unit,
    serialize_unit,
    unit_from_dict,
    unit_to_dict,
)


class TestSerializeUnit:
    def test_table_payload(self):
        payload = json.loads(serialize_unit(make_table(location="/data/orders")))
        assert payload["kind"] == "table"
        assert payload["version"] == 1
        assert payload["database"] == "sales"
        assert payload["columns"] == [["order_id", "bigint"], ["amount", "double"]]
        assert "partition_values" not in payload

    def test_partition_payload_roundtrip(self):
        """A partition survives serialization with every field intact."""
        partition = make_table(partition_columns=["dt"]).partition(
            ["2025-01-15"], location="/data/dt=2025-01-15", parameters={"rows": "10"}
        )
        payload = serialize_unit(partition)

        assert json.loads(payload)["kind"] == "partition"
        assert deserialize_unit(payload) == partition

    def test_payload_is_stable(self):
        table = make_table()
        assert serialize_unit(table) == serialize_unit(make_table())
        assert " " not in serialize_unit(table)


class TestDeserializeUnit:
    def test_invalid_json(self):
        with pytest.raises(SerializationError, match="not valid JSON"):
            deserialize_unit("{not json")

    def test_non_object_payload(self):
        with pytest.raises(SerializationError, match="JSON object"):
            deserialize_unit("[1, 2]")

    def test_unsupported_version(self):
        data = unit_to_dict(make_table())
        data["version"] = 99
        with pytest.raises(SerializationError, match="version 99"):
            unit_from_dict(data)

    def test_missing_fields(self):
        with pytest.raises(SerializationError, match="Malformed"):
            deserialize_unit('{"database": "sales"}')

    def test_error_carries_suggestion(self):
        with pytest.raises(SerializationError) as exc_info:
            deserialize_unit("")
        assert "serialize_unit" in exc_info.value.suggestion
