from __future__ import annotations

INVALID_PAYLOAD = "TIMELINE_0x01"
DIGEST_FAILURE = "TIMELINE_0x02"
TIP_CONFLICT = "TIMELINE_0x03"
CHAIN_CORRUPTED = "TIMELINE_0x04"


class TimelineError(Exception):
    def __init__(self, code: str, detail: str):
        super().__init__(f"{code}: {detail}")
        self.code = code
        self.detail = detail


class InvalidPayload(TimelineError):
    def __init__(self, detail: str):
        super().__init__(INVALID_PAYLOAD, detail)


class DigestError(TimelineError):
    def __init__(self, detail: str):
        super().__init__(DIGEST_FAILURE, detail)


class ChainTipConflict(TimelineError):
    """The caller appended against a tip that is no longer current."""

    def __init__(self, incident_id: str, expected: str | None, actual: str | None):
        super().__init__(
            TIP_CONFLICT,
            f"Stale chain tip for incident {incident_id}: expected {expected}, current {actual}",
        )
        self.incident_id = incident_id
        self.expected = expected
        self.actual = actual


class ChainCorrupted(TimelineError):
    """A stored chain failed verification while being loaded."""

    def __init__(self, incident_id: str, result):
        super().__init__(
            CHAIN_CORRUPTED,
            f"Incident {incident_id} failed verification at {result.corrupted_entry_id}: {result.error}",
        )
        self.incident_id = incident_id
        self.result = result


__all__ = [
    "CHAIN_CORRUPTED",
    "DIGEST_FAILURE",
    "INVALID_PAYLOAD",
    "TIP_CONFLICT",
    "ChainCorrupted",
    "ChainTipConflict",
    "DigestError",
    "InvalidPayload",
    "TimelineError",
]
