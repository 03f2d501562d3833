from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from incident_timeline.config import TimelineConfig


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def compute_checksum(payload: dict[str, Any]) -> str:
    encoded = canonical_json(payload).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def utc_now_iso_z() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class LogEvent:
    schema_version: str
    ts: str
    action: str
    outcome: str
    details: dict[str, Any]
    checksum: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "ts": self.ts,
            "action": self.action,
            "outcome": self.outcome,
            "details": self.details,
            "checksum": self.checksum,
        }


def build_log_event(
    schema_version: str,
    ts: str,
    action: str,
    outcome: str,
    details: dict[str, Any],
    checksum_fn: Callable[[dict[str, Any]], str] | None = None,
) -> LogEvent:
    payload = {
        "schema_version": schema_version,
        "ts": ts,
        "action": action,
        "outcome": outcome,
        "details": details,
    }
    checksum_function = checksum_fn or compute_checksum
    checksum = checksum_function(payload)
    return LogEvent(
        schema_version=schema_version,
        ts=ts,
        action=action,
        outcome=outcome,
        details=details,
        checksum=checksum,
    )


def log_path(cfg: TimelineConfig) -> Path:
    return Path(cfg.home) / cfg.log_path.strip()


def append_jsonl_log_event(
    cfg: TimelineConfig,
    action: str,
    outcome: str,
    details: dict[str, Any],
    ts: str | None = None,
) -> dict[str, Any] | None:
    """Append one checksummed operation record to the JSONL operation log.

    Returns the written record, or ``None`` when logging is disabled.
    """
    if not cfg.log_enabled:
        return None

    event = build_log_event(
        schema_version=cfg.log_schema_version,
        ts=ts or utc_now_iso_z(),
        action=action,
        outcome=outcome,
        details=details,
    ).to_dict()

    path = log_path(cfg)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as log_file:
        log_file.write(canonical_json(event) + "\n")

    return event


__all__ = [
    "LogEvent",
    "append_jsonl_log_event",
    "build_log_event",
    "canonical_json",
    "compute_checksum",
    "log_path",
    "utc_now_iso_z",
]
