from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Protocol

from incident_timeline.assurance.logging import canonical_json
from incident_timeline.config import TimelineConfig
from incident_timeline.timeline.entry import TimelineEntry


class EntryStore(Protocol):
    """Persistence used around append and hydrate.

    ``load_entries`` returns persisted mappings rather than entries so a
    tampered record can still be handed to the verifier.
    """

    def load_entries(self, incident_id: str) -> list[dict[str, Any]]: ...

    def save_entry(self, entry: TimelineEntry) -> None: ...


class MemoryEntryStore:
    def __init__(self) -> None:
        self._records: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def load_entries(self, incident_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return [json.loads(canonical_json(r)) for r in self._records if r.get("incidentId") == incident_id]

    def save_entry(self, entry: TimelineEntry) -> None:
        record = entry.to_dict()
        with self._lock:
            self._records.append(record)


def store_path(cfg: TimelineConfig) -> Path:
    return Path(cfg.store_dir) / cfg.store_filename


class JsonlEntryStore:
    """One canonical JSON line per entry, all incidents in one file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: TimelineConfig) -> "JsonlEntryStore":
        return cls(store_path(cfg))

    def ensure(self) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists() and self.path.is_dir():
            raise RuntimeError(f"Store path {self.path} is a directory, expected a file")
        self.path.touch(exist_ok=True)
        return self.path

    def _read_raw(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []

        records: list[dict[str, Any]] = []
        with self.path.open("r", encoding="utf-8") as store_file:
            for line in store_file:
                stripped = line.strip()
                if not stripped:
                    continue
                records.append(json.loads(stripped))
        return records

    def incident_ids(self) -> list[str]:
        with self._lock:
            return sorted({str(record.get("incidentId")) for record in self._read_raw()})

    def load_entries(self, incident_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return [record for record in self._read_raw() if record.get("incidentId") == incident_id]

    def save_entry(self, entry: TimelineEntry) -> None:
        line = canonical_json(entry.to_dict()) + "\n"
        with self._lock:
            self.ensure()
            with self.path.open("a", encoding="utf-8") as store_file:
                store_file.write(line)


__all__ = ["EntryStore", "JsonlEntryStore", "MemoryEntryStore", "store_path"]
