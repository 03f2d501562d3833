"""
Timeline entry data contracts.

A ``TimelineEntry`` is one immutable fact about an incident. Its persisted
shape uses the camelCase keys shared with the dashboard:

    {id, incidentId, actorId, actionType, detailsJSON, media[], createdAt,
     prevHash?, hash}

``payload()`` is that shape minus ``hash``/``prevHash`` and is exactly what
the chain digest covers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

CHAIN_FIELDS = ("hash", "prevHash")
PAYLOAD_FIELDS = ("id", "incidentId", "actorId", "actionType", "detailsJSON", "media", "createdAt")


class ActionType(str, Enum):
    CREATED = "Created"
    STATUS_CHANGED = "StatusChanged"
    ASSIGN_UNITS = "AssignUnits"
    NOTE = "Note"
    MEDIA_ATTACHED = "MediaAttached"
    CONTROL_REQUESTED = "ControlRequested"
    CONTROL_APPROVED = "ControlApproved"
    CONTROL_EXECUTED = "ControlExecuted"
    CAMERA_BOOKMARKED = "CameraBookmarked"
    PTZ_COMMAND = "PTZCommand"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


def freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class MediaAttachment:
    url: str
    kind: MediaKind

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MediaAttachment":
        return cls(url=data["url"], kind=MediaKind(data["kind"]))


@dataclass(frozen=True)
class TimelineEntry:
    id: str
    incident_id: str
    actor_id: str
    action_type: ActionType
    details: Mapping[str, Any]
    media: tuple[MediaAttachment, ...]
    created_at: str
    hash: str
    prev_hash: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", freeze(self.details))
        object.__setattr__(self, "media", tuple(self.media))

    def __hash__(self) -> int:
        # details is a mappingproxy, which is unhashable; id and hash identify an entry.
        return hash((self.id, self.hash))

    def payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "incidentId": self.incident_id,
            "actorId": self.actor_id,
            "actionType": self.action_type.value,
            "detailsJSON": thaw(self.details),
            "media": [attachment.to_dict() for attachment in self.media],
            "createdAt": self.created_at,
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.payload()
        if self.prev_hash is not None:
            data["prevHash"] = self.prev_hash
        data["hash"] = self.hash
        return data

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], prev_hash: str | None, entry_hash: str) -> "TimelineEntry":
        return cls(
            id=payload["id"],
            incident_id=payload["incidentId"],
            actor_id=payload["actorId"],
            action_type=ActionType(payload["actionType"]),
            details=payload.get("detailsJSON") or {},
            media=tuple(MediaAttachment.from_dict(item) for item in payload.get("media") or ()),
            created_at=payload["createdAt"],
            hash=entry_hash,
            prev_hash=prev_hash,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimelineEntry":
        return cls.from_payload(data, prev_hash=data.get("prevHash"), entry_hash=data["hash"])


__all__ = [
    "CHAIN_FIELDS",
    "PAYLOAD_FIELDS",
    "ActionType",
    "MediaAttachment",
    "MediaKind",
    "TimelineEntry",
    "freeze",
    "thaw",
]
