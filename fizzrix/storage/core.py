"""Record collections, id and timestamp helpers.

A `Collection` is one JSON file holding an ordered list of records keyed by
their "id" field. It is the whole persistence backend: create/read/update/
delete by primary key and list with an optional order-by field. There is no
other query shape.
"""

from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def read_json(path: Path, default: Any) -> Any:
    if not path.is_file():
        return default
    return json.loads(path.read_text())


def write_json(path: Path, data: Any) -> None:
    # Write-then-rename so a crash never leaves a half-written file behind
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2))
    tmp.replace(path)


class Collection:
    """Ordered list of dict records persisted as `<name>.json`."""

    def __init__(self, data_dir: Path, name: str) -> None:
        self.name = name
        self.path = data_dir / f"{name}.json"
        self._lock = threading.RLock()

    def _read(self) -> list[dict[str, Any]]:
        records = read_json(self.path, [])
        if not isinstance(records, list):
            raise ValueError(f"{self.path} does not hold a record list")
        return records

    def _write(self, records: list[dict[str, Any]]) -> None:
        write_json(self.path, records)

    def list(self, order_by: str | None = None) -> list[dict[str, Any]]:
        """All records, in insertion order or stably sorted by `order_by`."""
        records = self._read()
        if order_by is not None:
            records.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or ""))
        return records

    def get(self, record_id: str) -> dict[str, Any] | None:
        for record in self._read():
            if record.get("id") == record_id:
                return record
        return None

    def insert(self, record: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            records = self._read()
            if any(r.get("id") == record["id"] for r in records):
                raise ValueError(f"Duplicate id in {self.name}: {record['id']}")
            records.append(record)
            self._write(records)
        return record

    def update(self, record_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        """Apply a field-level patch. Returns the updated record."""
        with self._lock:
            records = self._read()
            for record in records:
                if record.get("id") == record_id:
                    record.update(fields)
                    self._write(records)
                    return record
        return None

    def delete(self, record_id: str) -> bool:
        with self._lock:
            records = self._read()
            kept = [r for r in records if r.get("id") != record_id]
            if len(kept) == len(records):
                return False
            self._write(kept)
        return True

    def delete_where(self, field: str, value: Any) -> int:
        """Delete every record whose `field` equals `value`. Returns the count."""
        with self._lock:
            records = self._read()
            kept = [r for r in records if r.get(field) != value]
            removed = len(records) - len(kept)
            if removed:
                self._write(kept)
        return removed

    def replace_all(self, records: list[dict[str, Any]]) -> None:
        with self._lock:
            self._write(list(records))

    def transaction(self) -> threading.RLock:
        """Lock held across a multi-step read-modify-write on this collection."""
        return self._lock
