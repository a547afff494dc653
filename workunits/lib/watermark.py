"""Watermark storage and retrieval for work-unit discovery.

A watermark records the progress of a unit: the expected high watermark
of the last work unit that was successfully processed for it. Discovery
only reads watermarks; the downstream consumer calls
:meth:`WatermarkStore.commit` once a work unit has been processed.

Supported storage backends:
- local: JSON files in a state directory (default)
- s3: JSON objects under an S3 prefix

Watermark file structure:
```json
{
  "unit_key": "sales@orders@dt=2025-01-15",
  "dataset_urn": "sales@orders",
  "watermark_value": 1736937000000,
  "last_run_id": "4f1c...",
  "created_at": "2025-01-10T08:00:00Z",
  "updated_at": "2025-01-15T10:30:00Z"
}
```
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import quote

from workunits.lib.errors import ConfigurationError, ProviderError
from workunits.lib.timeutils import utc_isoformat as _utc_isoformat
from workunits.lib.units import UnitDescriptor, UnitOfWork, Watermark

logger = logging.getLogger(__name__)

__all__ = [
    "WatermarkRecord",
    "WatermarkStore",
    "WATERMARK_LEVELS",
    "build_watermark_store",
]

WATERMARK_LEVELS = ("unit", "table")
STORAGE_BACKENDS = ("local", "s3")
WATERMARK_SUFFIX = "_watermark.json"
DEFAULT_S3_PREFIX = "_watermarks"


@dataclass
class WatermarkRecord:
    """Persisted watermark state for one unit key."""

    unit_key: str
    watermark_value: int = 0
    dataset_urn: Optional[str] = None
    last_run_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = _utc_isoformat()

    @property
    def watermark(self) -> Watermark:
        return Watermark(self.watermark_value)

    def advance(self, value: int, run_id: Optional[str] = None) -> "WatermarkRecord":
        """Move the watermark forward; an older value never regresses it."""
        if value > self.watermark_value:
            self.watermark_value = value
        self.last_run_id = run_id
        self.updated_at = _utc_isoformat()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_key": self.unit_key,
            "dataset_urn": self.dataset_urn,
            "watermark_value": self.watermark_value,
            "last_run_id": self.last_run_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatermarkRecord":
        return cls(
            unit_key=data["unit_key"],
            watermark_value=int(data.get("watermark_value", 0)),
            dataset_urn=data.get("dataset_urn"),
            last_run_id=data.get("last_run_id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class WatermarkStore:
    """Watermark storage keyed by unit complete name.

    With ``level="table"`` every partition shares its parent table's
    watermark, so a table is re-examined as a whole once any of its
    partitions is committed.
    """

    def __init__(
        self,
        storage_backend: str = "local",
        local_path: Optional[Path] = None,
        s3_bucket: Optional[str] = None,
        s3_prefix: Optional[str] = DEFAULT_S3_PREFIX,
        level: str = "unit",
    ):
        """Initialize watermark store.

        Args:
            storage_backend: Storage backend ("local" or "s3")
            local_path: Local directory for watermark files
            s3_bucket: S3 bucket for watermark files
            s3_prefix: S3 prefix for watermark files
            level: Watermark granularity ("unit" or "table")
        """
        if storage_backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"Unknown watermark storage backend '{storage_backend}'",
                field="watermarks.storage_backend",
                value=storage_backend,
                suggestion=f"Use one of: {', '.join(STORAGE_BACKENDS)}",
            )
        if level not in WATERMARK_LEVELS:
            raise ConfigurationError(
                f"Unknown watermark level '{level}'",
                field="watermarks.level",
                value=level,
                suggestion=f"Use one of: {', '.join(WATERMARK_LEVELS)}",
            )
        if storage_backend == "s3" and not s3_bucket:
            raise ConfigurationError(
                "s3_bucket is required for the s3 watermark backend",
                field="watermarks.s3_bucket",
            )
        if s3_prefix is None:
            s3_prefix = DEFAULT_S3_PREFIX
        if not isinstance(s3_prefix, str):
            raise ConfigurationError(
                "s3_prefix must be a string",
                field="watermarks.s3_prefix",
                value=s3_prefix,
            )

        self.storage_backend = storage_backend
        self.local_path = Path(local_path) if local_path else Path(".state") / "watermarks"
        self.s3_bucket = s3_bucket
        self.s3_prefix = s3_prefix.strip("/")
        self.level = level
        self._s3_client: Any = None
        self._s3_lock = threading.Lock()

    def watermark_key(self, unit: UnitDescriptor) -> str:
        """Key under which the watermark of ``unit`` is stored."""
        if self.level == "table":
            return unit.table_complete_name
        return unit.complete_name

    def _file_name(self, key: str) -> str:
        return f"{quote(key, safe='')}{WATERMARK_SUFFIX}"

    def _get_local_path(self, key: str) -> Path:
        return self.local_path / self._file_name(key)

    def _get_s3_key(self, key: str) -> str:
        name = self._file_name(key)
        return f"{self.s3_prefix}/{name}" if self.s3_prefix else name

    @property
    def s3(self) -> Any:
        """Lazy-load the boto3 S3 client.

        Lookups may run on several pool threads, so the client is built
        once under a lock from a session owned by this store.
        """
        if self._s3_client is None:
            with self._s3_lock:
                if self._s3_client is None:
                    import boto3

                    self._s3_client = boto3.session.Session().client("s3")
        return self._s3_client

    def get_previous_high_watermark(self, unit: UnitDescriptor) -> Watermark:
        """Return the watermark recorded for ``unit``, or the zero watermark.

        Raises:
            ProviderError: If the stored watermark cannot be read
        """
        record = self.load(self.watermark_key(unit))
        if record is None:
            logger.debug("No previous watermark for %s", unit.complete_name)
            return Watermark.zero()
        return record.watermark

    @contextmanager
    def _read_errors(self, where: str) -> Iterator[None]:
        """Map decode and I/O failures while reading ``where`` to ProviderError."""
        try:
            yield
        except FileNotFoundError:
            raise
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(
                f"Corrupt watermark record for {where}",
                provider=f"watermark:{self.storage_backend}",
                cause=e,
                suggestion="Delete the record to force the unit to be reprocessed.",
            ) from e
        except OSError as e:
            raise ProviderError(
                f"Could not read watermark for {where}",
                provider=f"watermark:{self.storage_backend}",
                cause=e,
            ) from e

    def load(self, key: str) -> Optional[WatermarkRecord]:
        """Load the record stored under ``key``; None when absent."""
        try:
            with self._read_errors(key):
                if self.storage_backend == "s3":
                    return self._load_s3(key)
                return self._load_local(key)
        except FileNotFoundError:
            return None

    def _load_local(self, key: str) -> WatermarkRecord:
        path = self._get_local_path(key)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return WatermarkRecord.from_dict(data)

    def _load_s3(self, key: str) -> WatermarkRecord:
        s3_key = self._get_s3_key(key)
        try:
            response = self.s3.get_object(Bucket=self.s3_bucket, Key=s3_key)
        except self.s3.exceptions.NoSuchKey:
            raise FileNotFoundError(f"Watermark not found in S3: {s3_key}")
        data = json.loads(response["Body"].read().decode("utf-8"))
        return WatermarkRecord.from_dict(data)

    def save(self, record: WatermarkRecord) -> None:
        """Save a watermark record to storage."""
        if self.storage_backend == "s3":
            self._save_s3(record)
        else:
            self._save_local(record)

    def _save_local(self, record: WatermarkRecord) -> None:
        path = self._get_local_path(record.unit_key)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Write-then-rename so a crash never leaves a truncated record
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(record.to_dict(), f, indent=2)
        tmp_path.replace(path)

        logger.info("Saved watermark %s=%d to %s", record.unit_key, record.watermark_value, path)

    def _save_s3(self, record: WatermarkRecord) -> None:
        s3_key = self._get_s3_key(record.unit_key)
        body = json.dumps(record.to_dict(), indent=2)

        self.s3.put_object(
            Bucket=self.s3_bucket,
            Key=s3_key,
            Body=body.encode("utf-8"),
        )

        logger.info(
            "Saved watermark %s=%d to s3://%s/%s",
            record.unit_key,
            record.watermark_value,
            self.s3_bucket,
            s3_key,
        )

    def commit(
        self, work_unit: UnitOfWork, run_id: Optional[str] = None
    ) -> WatermarkRecord:
        """Persist the expected high watermark of a processed work unit.

        Called by the downstream consumer after the work unit succeeded;
        the next discovery run then uses it as the unit's low watermark.
        """
        key = work_unit.dataset_urn if self.level == "table" else work_unit.unit_key
        record = self.load(key) or WatermarkRecord(
            unit_key=key, dataset_urn=work_unit.dataset_urn
        )
        record.advance(work_unit.interval.expected_high.value, run_id=run_id)
        self.save(record)
        return record

    def delete(self, key: str) -> bool:
        """Delete the watermark stored under ``key``.

        Returns:
            True if a watermark was deleted, False if none existed
        """
        if self.storage_backend == "s3":
            if self.load(key) is None:
                return False
            s3_key = self._get_s3_key(key)
            self.s3.delete_object(Bucket=self.s3_bucket, Key=s3_key)
            logger.info("Deleted watermark from s3://%s/%s", self.s3_bucket, s3_key)
            return True

        path = self._get_local_path(key)
        if path.exists():
            path.unlink()
            logger.info("Deleted watermark at %s", path)
            return True
        return False

    def list_watermarks(self) -> List[WatermarkRecord]:
        """List all watermarks in storage, sorted by key."""
        if self.storage_backend == "s3":
            records = self._list_s3()
        else:
            records = self._list_local()
        return sorted(records, key=lambda r: r.unit_key)

    def _list_local(self) -> List[WatermarkRecord]:
        if not self.local_path.exists():
            return []
        records = []
        for path in self.local_path.glob(f"*{WATERMARK_SUFFIX}"):
            try:
                with self._read_errors(str(path)):
                    with open(path, "r", encoding="utf-8") as f:
                        records.append(WatermarkRecord.from_dict(json.load(f)))
            except FileNotFoundError:
                # Deleted between glob and open
                continue
        return records

    def _list_s3(self) -> List[WatermarkRecord]:
        records = []
        with self._read_errors(f"s3://{self.s3_bucket}/{self.s3_prefix}"):
            paginator = self.s3.get_paginator("list_objects_v2")
            pages = list(paginator.paginate(Bucket=self.s3_bucket, Prefix=self.s3_prefix))
        for page in pages:
            for obj in page.get("Contents", []):
                if not obj["Key"].endswith(WATERMARK_SUFFIX):
                    continue
                with self._read_errors(f"s3://{self.s3_bucket}/{obj['Key']}"):
                    response = self.s3.get_object(Bucket=self.s3_bucket, Key=obj["Key"])
                    data = json.loads(response["Body"].read().decode("utf-8"))
                    records.append(WatermarkRecord.from_dict(data))
        return records

    def __repr__(self) -> str:
        location = (
            f"s3://{self.s3_bucket}/{self.s3_prefix}"
            if self.storage_backend == "s3"
            else str(self.local_path)
        )
        return f"WatermarkStore({location!r}, level={self.level!r})"


def build_watermark_store(
    cfg: Dict[str, Any], base_dir: Optional[Path] = None
) -> WatermarkStore:
    """Build a WatermarkStore from the ``watermarks`` config section.

    Args:
        cfg: The ``watermarks`` section of the discovery config
        base_dir: Directory that relative ``local_path`` values resolve against

    Returns:
        Configured WatermarkStore instance
    """
    storage_backend = str(cfg.get("storage_backend", "local")).lower()
    level = str(cfg.get("level", "unit")).lower()

    if storage_backend == "s3":
        return WatermarkStore(
            storage_backend="s3",
            s3_bucket=cfg.get("s3_bucket"),
            s3_prefix=cfg.get("s3_prefix"),
            level=level,
        )

    local_path = cfg.get("local_path")
    if local_path:
        path = Path(local_path)
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        return WatermarkStore(storage_backend=storage_backend, local_path=path, level=level)
    return WatermarkStore(storage_backend=storage_backend, level=level)
