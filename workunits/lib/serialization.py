"""JSON serialization of unit metadata snapshots.

The payload embedded in a work unit must let the downstream consumer
rebuild exactly the descriptor it was given, so the encoding is stable:
sorted keys, compact separators, and a ``kind`` tag telling a table
snapshot from a partition snapshot.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from workunits.lib.errors import SerializationError
from workunits.lib.units import UnitDescriptor

__all__ = ["serialize_unit", "deserialize_unit", "unit_to_dict", "unit_from_dict"]

PAYLOAD_VERSION = 1


def unit_to_dict(unit: UnitDescriptor) -> Dict[str, Any]:
    """Convert a descriptor to a JSON-friendly dictionary."""
    data: Dict[str, Any] = {
        "version": PAYLOAD_VERSION,
        "kind": "partition" if unit.is_partition else "table",
        "database": unit.database,
        "table": unit.table,
        "columns": [[name, col_type] for name, col_type in unit.columns],
        "partition_columns": [
            [name, col_type] for name, col_type in unit.partition_columns
        ],
        "location": unit.location,
        "parameters": unit.parameter_map,
    }
    if unit.is_partition:
        data["partition_values"] = list(unit.partition_values)
    return data


def unit_from_dict(data: Dict[str, Any]) -> UnitDescriptor:
    """Rebuild a descriptor from :func:`unit_to_dict` output."""
    version = data.get("version", PAYLOAD_VERSION)
    if version != PAYLOAD_VERSION:
        raise SerializationError(
            f"Unsupported unit payload version {version}",
            details={"expected_version": PAYLOAD_VERSION},
        )

    try:
        return UnitDescriptor(
            database=data["database"],
            table=data["table"],
            partition_values=tuple(data.get("partition_values", [])),
            columns=tuple((name, col_type) for name, col_type in data.get("columns", [])),
            partition_columns=tuple(
                (name, col_type) for name, col_type in data.get("partition_columns", [])
            ),
            location=data.get("location"),
            parameters=tuple(sorted(data.get("parameters", {}).items())),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise SerializationError("Malformed unit payload", cause=e) from e


def serialize_unit(unit: UnitDescriptor) -> str:
    """Serialize a descriptor into the payload stored on a work unit."""
    return json.dumps(unit_to_dict(unit), sort_keys=True, separators=(",", ":"))


def deserialize_unit(payload: str) -> UnitDescriptor:
    """Inverse of :func:`serialize_unit`."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise SerializationError("Unit payload is not valid JSON", cause=e) from e

    if not isinstance(data, dict):
        raise SerializationError(
            "Unit payload must be a JSON object",
            details={"payload_type": type(data).__name__},
        )
    return unit_from_dict(data)
