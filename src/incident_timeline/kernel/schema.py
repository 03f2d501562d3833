from __future__ import annotations

from typing import Any, Mapping

from incident_timeline.kernel.failures import InvalidPayload
from incident_timeline.timeline.entry import CHAIN_FIELDS, PAYLOAD_FIELDS, ActionType, MediaKind

_ACTION_TYPES = {member.value for member in ActionType}
_MEDIA_KINDS = {member.value for member in MediaKind}


def _require_fields(obj: Mapping[str, Any], fields: tuple[str, ...] | list[str]) -> None:
    for field in fields:
        if field not in obj:
            raise InvalidPayload(f"Missing required field: {field}")


def _ensure_type(value: Any, expected_type: type, field: str) -> None:
    if not isinstance(value, expected_type):
        raise InvalidPayload(f"{field} must be {expected_type.__name__}")


def _ensure_text(obj: Mapping[str, Any], field: str) -> None:
    value = obj.get(field)
    _ensure_type(value, str, field)
    if not value.strip():
        raise InvalidPayload(f"{field} must be a non-empty string")


def validate_media(media: Any) -> None:
    _ensure_type(media, list, "media")
    for item in media:
        _ensure_type(item, dict, "media[]")
        _require_fields(item, ["url", "kind"])
        unexpected = set(item) - {"url", "kind"}
        if unexpected:
            raise InvalidPayload(f"media[] has unexpected fields: {', '.join(sorted(unexpected))}")
        _ensure_text(item, "url")
        _ensure_type(item["kind"], str, "media[].kind")
        if item["kind"] not in _MEDIA_KINDS:
            raise InvalidPayload(f"media[].kind must be one of {', '.join(sorted(_MEDIA_KINDS))}")


def validate_entry_payload(obj: Any) -> None:
    """Check the caller-supplied, not-yet-chained shape of a timeline entry.

    Only structure is checked here; whether ``detailsJSON`` values can be
    canonicalized is left to the digest step.
    """
    _ensure_type(obj, dict, "entry payload")
    chain_fields = [name for name in CHAIN_FIELDS if name in obj]
    if chain_fields:
        raise InvalidPayload(f"Chain fields are assigned on append: {', '.join(chain_fields)}")
    _require_fields(obj, PAYLOAD_FIELDS)
    unexpected = set(obj) - set(PAYLOAD_FIELDS)
    if unexpected:
        raise InvalidPayload(f"Unexpected fields: {', '.join(sorted(unexpected))}")

    for field in ("id", "incidentId", "actorId", "actionType", "createdAt"):
        _ensure_text(obj, field)
    if obj["actionType"] not in _ACTION_TYPES:
        raise InvalidPayload(f"Unknown actionType: {obj['actionType']!r}")

    details = obj["detailsJSON"]
    _ensure_type(details, dict, "detailsJSON")
    for key in details:
        _ensure_type(key, str, "detailsJSON keys")
    validate_media(obj["media"])


__all__ = ["validate_entry_payload", "validate_media"]
