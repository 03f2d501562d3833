from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping

from incident_timeline.kernel.failures import DigestError
from incident_timeline.kernel.hashing import DigestFn, digest
from incident_timeline.timeline.entry import CHAIN_FIELDS, TimelineEntry

CHAIN_BROKEN = "Hash chain broken"
HASH_MISMATCH = "Entry hash mismatch"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class Verdict(str, Enum):
    VALID = "VALID"
    BROKEN_LINK = "BROKEN_LINK"
    HASH_MISMATCH = "HASH_MISMATCH"


@dataclass(frozen=True)
class VerificationResult:
    kind: Verdict
    corrupted_entry_id: str | None = None
    checked: int = 0

    @property
    def valid(self) -> bool:
        return self.kind is Verdict.VALID

    @property
    def error(self) -> str | None:
        if self.kind is Verdict.BROKEN_LINK:
            return CHAIN_BROKEN
        if self.kind is Verdict.HASH_MISMATCH:
            return HASH_MISMATCH
        return None

    def to_dict(self) -> dict[str, Any]:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "corruptedEntryId": self.corrupted_entry_id, "error": self.error}


@dataclass(frozen=True)
class _Record:
    entry_id: str
    created_at: str
    prev_hash: Any
    stored_hash: Any
    payload: Any


def _as_record(entry: TimelineEntry | Mapping[str, Any]) -> _Record:
    if isinstance(entry, TimelineEntry):
        return _Record(entry.id, entry.created_at, entry.prev_hash, entry.hash, entry.payload())
    payload = {key: value for key, value in entry.items() if key not in CHAIN_FIELDS}
    return _Record(
        entry_id=str(entry.get("id")),
        created_at=str(entry.get("createdAt", "")),
        prev_hash=entry.get("prevHash"),
        stored_hash=entry.get("hash"),
        payload=payload,
    )


def parse_timestamp(value: str) -> datetime | None:
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def order_key(created_at: str, entry_id: str, sort_mode: str = "lexical") -> tuple:
    """Sort key for chain order: ``createdAt`` then ``id``.

    ``lexical`` compares the raw strings and is only chronological for
    fixed-width timestamps in one zone. ``parsed`` compares ISO-8601 instants;
    unparseable timestamps sort first.
    """
    if sort_mode == "parsed":
        return (parse_timestamp(created_at) or _EPOCH, created_at, entry_id)
    return (created_at, entry_id)


def verify(
    entries: Iterable[TimelineEntry | Mapping[str, Any]],
    sort_mode: str = "lexical",
    digest_fn: DigestFn | None = None,
) -> VerificationResult:
    records = [_as_record(entry) for entry in entries]
    records.sort(key=lambda record: order_key(record.created_at, record.entry_id, sort_mode))

    previous: _Record | None = None
    for index, record in enumerate(records):
        expected_prev = previous.stored_hash if previous is not None else None
        if record.prev_hash != expected_prev:
            return VerificationResult(Verdict.BROKEN_LINK, record.entry_id, checked=index + 1)

        try:
            expected_hash = digest(record.prev_hash, record.payload, digest_fn)
        except DigestError:
            expected_hash = None
        if expected_hash is None or record.stored_hash != expected_hash:
            return VerificationResult(Verdict.HASH_MISMATCH, record.entry_id, checked=index + 1)

        previous = record

    return VerificationResult(Verdict.VALID, checked=len(records))


__all__ = [
    "CHAIN_BROKEN",
    "HASH_MISMATCH",
    "Verdict",
    "VerificationResult",
    "order_key",
    "parse_timestamp",
    "verify",
]
