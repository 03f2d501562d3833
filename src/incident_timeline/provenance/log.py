"""
Per-incident append-only timeline chains.

Each incident owns an independent chain whose first entry has no
``prevHash``. ``append`` is the only mutation: there is no insert, update or
delete. Appends to one incident are serialized; different incidents never
contend.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import timedelta, timezone
from typing import Any, Callable, Iterable, Mapping
from uuid import uuid4

from incident_timeline.assurance.logging import utc_now_iso_z
from incident_timeline.config import TimelineConfig
from incident_timeline.kernel.failures import ChainCorrupted, ChainTipConflict, InvalidPayload
from incident_timeline.kernel.hashing import DigestFn, digest, hashlib_digest
from incident_timeline.kernel.schema import validate_entry_payload
from incident_timeline.provenance.hashchain import VerificationResult, order_key, parse_timestamp, verify
from incident_timeline.provenance.store import EntryStore
from incident_timeline.timeline.entry import CHAIN_FIELDS, ActionType, TimelineEntry

_UNSET: Any = object()


@dataclass(frozen=True)
class ChainState:
    incident_id: str
    tip_hash: str | None = None
    tip_created_at: str | None = None
    tip_id: str | None = None
    length: int = 0

    def advance(self, entry: TimelineEntry) -> "ChainState":
        return ChainState(
            incident_id=self.incident_id,
            tip_hash=entry.hash,
            tip_created_at=entry.created_at,
            tip_id=entry.id,
            length=self.length + 1,
        )


def append_entry(
    payload: Mapping[str, Any],
    state: ChainState,
    digest_fn: DigestFn | None = None,
    sort_mode: str = "lexical",
) -> tuple[TimelineEntry, ChainState]:
    """Chain ``payload`` onto ``state`` without touching any shared state.

    Returns the new entry and the state whose tip is that entry.
    """
    validate_entry_payload(payload)
    if payload["incidentId"] != state.incident_id:
        raise InvalidPayload(f"Entry belongs to incident {payload['incidentId']}, chain is {state.incident_id}")
    if state.tip_created_at is not None:
        tip_key = order_key(state.tip_created_at, state.tip_id or "", sort_mode)
        if order_key(payload["createdAt"], payload["id"], sort_mode) <= tip_key:
            raise InvalidPayload(f"createdAt {payload['createdAt']} does not follow chain tip {state.tip_created_at}")

    candidate = TimelineEntry.from_payload(payload, prev_hash=state.tip_hash, entry_hash="")
    entry = replace(candidate, hash=digest(state.tip_hash, candidate.payload(), digest_fn))
    return entry, state.advance(entry)


def _next_timestamp(now: str, tip_created_at: str | None) -> str:
    if tip_created_at is None or now > tip_created_at:
        return now
    tip = parse_timestamp(tip_created_at)
    if tip is None:
        return now
    bumped = tip.astimezone(timezone.utc) + timedelta(microseconds=1)
    return bumped.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _adopt_stored(record: Mapping[str, Any], incident_id: str) -> TimelineEntry:
    payload = {key: value for key, value in record.items() if key not in CHAIN_FIELDS}
    try:
        validate_entry_payload(payload)
    except InvalidPayload as exc:
        raise InvalidPayload(
            f"Stored entry {record.get('id')} for incident {incident_id} cannot be loaded: {exc.detail}"
        ) from exc
    return TimelineEntry.from_payload(payload, prev_hash=record.get("prevHash"), entry_hash=record["hash"])


class ChainedLog:
    def __init__(
        self,
        store: EntryStore | None = None,
        digest_fn: DigestFn | None = None,
        sort_mode: str = "lexical",
        now_fn: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._digest_fn = digest_fn
        self._sort_mode = sort_mode
        self._now_fn = now_fn or utc_now_iso_z
        self._states: dict[str, ChainState] = {}
        self._entries: dict[str, list[TimelineEntry]] = {}
        self._loaded: set[str] = set()
        self._ids: set[str] = set()
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: TimelineConfig, store: EntryStore | None = None) -> "ChainedLog":
        cfg.validate()
        return cls(store=store, digest_fn=hashlib_digest(cfg.digest_algorithm), sort_mode=cfg.sort_mode)

    def _lock_for(self, incident_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(incident_id)
            if lock is None:
                lock = self._locks[incident_id] = threading.Lock()
            return lock

    def _reserve_id(self, entry_id: str) -> None:
        with self._registry_lock:
            if entry_id in self._ids:
                raise InvalidPayload(f"Duplicate entry id: {entry_id}")
            self._ids.add(entry_id)

    def _release_id(self, entry_id: str) -> None:
        with self._registry_lock:
            self._ids.discard(entry_id)

    def state(self, incident_id: str) -> ChainState:
        return self._states.get(incident_id) or ChainState(incident_id)

    def tip(self, incident_id: str) -> str | None:
        return self.state(incident_id).tip_hash

    def incident_ids(self) -> list[str]:
        return sorted(self._states)

    def _append_locked(self, payload: Mapping[str, Any], expected_tip: Any) -> TimelineEntry:
        incident_id = payload["incidentId"]
        self._load_locked(incident_id)
        state = self.state(incident_id)
        if expected_tip is not _UNSET and expected_tip != state.tip_hash:
            raise ChainTipConflict(incident_id, expected_tip, state.tip_hash)

        self._reserve_id(payload["id"])
        try:
            entry, next_state = append_entry(payload, state, self._digest_fn, self._sort_mode)
            if self._store is not None:
                self._store.save_entry(entry)
        except Exception:
            self._release_id(payload["id"])
            raise

        self._entries.setdefault(incident_id, []).append(entry)
        self._states[incident_id] = next_state
        return entry

    def append(self, payload: Mapping[str, Any], expected_tip: str | None = _UNSET) -> TimelineEntry:
        """Chain a caller-built entry onto its incident's tip.

        ``payload`` carries every persisted field except ``hash``/``prevHash``.
        Passing ``expected_tip`` (``None`` for an empty chain) rejects the
        append with ``ChainTipConflict`` when another writer got there first.
        On any failure the chain is left exactly as it was.
        """
        validate_entry_payload(payload)
        with self._lock_for(payload["incidentId"]):
            return self._append_locked(payload, expected_tip)

    def record(
        self,
        incident_id: str,
        actor_id: str,
        action_type: ActionType | str,
        details: Mapping[str, Any] | None = None,
        media: Iterable[Mapping[str, str]] = (),
    ) -> TimelineEntry:
        """Append with a fresh UUID ``id`` and a monotonic UTC ``createdAt``."""
        with self._lock_for(incident_id):
            self._load_locked(incident_id)
            state = self.state(incident_id)
            payload = {
                "id": str(uuid4()),
                "incidentId": incident_id,
                "actorId": actor_id,
                "actionType": action_type.value if isinstance(action_type, ActionType) else action_type,
                "detailsJSON": details if details is not None else {},
                "media": list(media),
                "createdAt": _next_timestamp(self._now_fn(), state.tip_created_at),
            }
            return self._append_locked(payload, _UNSET)

    def entries_for(
        self,
        incident_id: str,
        action_types: Iterable[ActionType | str] | None = None,
    ) -> tuple[TimelineEntry, ...]:
        with self._lock_for(incident_id):
            self._load_locked(incident_id)
            snapshot = list(self._entries.get(incident_id, ()))

        snapshot.sort(key=lambda entry: order_key(entry.created_at, entry.id, self._sort_mode))
        if action_types is not None:
            wanted = {ActionType(action) for action in action_types}
            snapshot = [entry for entry in snapshot if entry.action_type in wanted]
        return tuple(snapshot)

    def verify(self, incident_id: str) -> VerificationResult:
        return verify(self.entries_for(incident_id), sort_mode=self._sort_mode, digest_fn=self._digest_fn)

    def _load_locked(self, incident_id: str) -> VerificationResult | None:
        # Caller holds the incident lock. Returns None when nothing was loaded.
        if self._store is None or incident_id in self._loaded:
            return None

        records = self._store.load_entries(incident_id)
        result = verify(records, sort_mode=self._sort_mode, digest_fn=self._digest_fn)
        if not result.valid:
            raise ChainCorrupted(incident_id, result)

        entries = [_adopt_stored(record, incident_id) for record in records]
        entries.sort(key=lambda entry: order_key(entry.created_at, entry.id, self._sort_mode))

        with self._registry_lock:
            duplicates = sorted(self._ids.intersection(entry.id for entry in entries))
            if duplicates:
                raise InvalidPayload(f"Duplicate entry id: {duplicates[0]}")
            self._ids.update(entry.id for entry in entries)

        state = ChainState(incident_id)
        for entry in entries:
            state = state.advance(entry)
        self._entries[incident_id] = entries
        self._states[incident_id] = state
        self._loaded.add(incident_id)
        return result

    def hydrate(self, incident_id: str) -> VerificationResult:
        """Load an incident's stored chain, verify it, and adopt its tip.

        Store-backed logs load an incident the first time it is touched, so
        calling this is only needed to surface corruption early. Raises
        ``ChainCorrupted`` without loading anything when the stored chain does
        not verify, and ``InvalidPayload`` when a stored record is not a valid
        entry. Once loaded, returns the verdict for the in-memory chain.
        """
        if self._store is None:
            raise RuntimeError("ChainedLog has no store to hydrate from")

        with self._lock_for(incident_id):
            result = self._load_locked(incident_id)
            if result is not None:
                return result
            snapshot = list(self._entries.get(incident_id, ()))
        return verify(snapshot, sort_mode=self._sort_mode, digest_fn=self._digest_fn)


__all__ = ["ChainState", "ChainedLog", "append_entry"]
