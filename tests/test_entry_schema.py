import dataclasses
import unittest

from incident_timeline.kernel.failures import INVALID_PAYLOAD, InvalidPayload
from incident_timeline.kernel.schema import validate_entry_payload
from incident_timeline.timeline.entry import ActionType, MediaAttachment, MediaKind, TimelineEntry


def _payload(**overrides):
    payload = {
        "id": "e-1",
        "incidentId": "inc-1",
        "actorId": "officer-7",
        "actionType": "MediaAttached",
        "detailsJSON": {"note": "north gate"},
        "media": [{"url": "https://cdn.example/a.jpg", "kind": "image"}],
        "createdAt": "2024-01-01T00:00:00.000000Z",
    }
    payload.update(overrides)
    return payload


class ValidateEntryPayloadTest(unittest.TestCase):
    def test_accepts_well_formed_payload(self) -> None:
        validate_entry_payload(_payload())
        validate_entry_payload(_payload(media=[], detailsJSON={}))

    def test_rejects_missing_fields(self) -> None:
        payload = _payload()
        del payload["actorId"]
        with self.assertRaises(InvalidPayload) as ctx:
            validate_entry_payload(payload)
        self.assertEqual(ctx.exception.code, INVALID_PAYLOAD)
        self.assertIn("actorId", ctx.exception.detail)

    def test_rejects_wrong_shapes(self) -> None:
        bad_payloads = [
            _payload(id=""),
            _payload(incidentId=7),
            _payload(actionType="Deleted"),
            _payload(actionType=["Note"]),
            _payload(detailsJSON=["not", "an", "object"]),
            _payload(detailsJSON={1: "non-string key"}),
            _payload(media={"url": "x", "kind": "image"}),
            _payload(media=[{"url": "x", "kind": "hologram"}]),
            _payload(media=[{"url": "", "kind": "image"}]),
            _payload(media=[{"url": "x", "kind": "image", "extra": True}]),
            _payload(createdAt=None),
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(InvalidPayload):
                    validate_entry_payload(payload)

    def test_rejects_chain_fields_and_unknown_fields(self) -> None:
        with self.assertRaises(InvalidPayload):
            validate_entry_payload(_payload(hash="deadbeef"))
        with self.assertRaises(InvalidPayload):
            validate_entry_payload(_payload(prevHash="deadbeef"))
        with self.assertRaises(InvalidPayload):
            validate_entry_payload(_payload(priority="urgent"))

    def test_rejects_non_mapping(self) -> None:
        with self.assertRaises(InvalidPayload):
            validate_entry_payload(["id", "e-1"])


class TimelineEntryTest(unittest.TestCase):
    def _entry(self) -> TimelineEntry:
        return TimelineEntry.from_payload(_payload(detailsJSON={"units": ["E1", "E2"]}), prev_hash=None, entry_hash="h")

    def test_entry_fields_cannot_be_reassigned(self) -> None:
        entry = self._entry()
        with self.assertRaises(dataclasses.FrozenInstanceError):
            entry.actor_id = "someone-else"  # type: ignore[misc]

    def test_details_are_deep_frozen(self) -> None:
        source = {"units": ["E1"]}
        entry = TimelineEntry.from_payload(_payload(detailsJSON=source), prev_hash=None, entry_hash="h")
        source["units"].append("E9")

        self.assertEqual(entry.payload()["detailsJSON"], {"units": ["E1"]})
        with self.assertRaises(TypeError):
            entry.details["units"] = []  # type: ignore[index]
        self.assertIsInstance(entry.details["units"], tuple)

    def test_round_trips_persisted_shape(self) -> None:
        entry = self._entry()
        data = entry.to_dict()

        self.assertNotIn("prevHash", data)
        self.assertEqual(data["hash"], "h")
        self.assertEqual(data["media"], [{"url": "https://cdn.example/a.jpg", "kind": "image"}])
        self.assertEqual(TimelineEntry.from_dict(data), entry)
        self.assertEqual(entry.action_type, ActionType.MEDIA_ATTACHED)
        self.assertEqual(entry.media, (MediaAttachment("https://cdn.example/a.jpg", MediaKind.IMAGE),))

    def test_entries_are_hashable(self) -> None:
        entry = self._entry()
        twin = TimelineEntry.from_dict(entry.to_dict())
        other = TimelineEntry.from_payload(_payload(id="e-2"), prev_hash=None, entry_hash="h2")

        self.assertEqual(hash(entry), hash(twin))
        self.assertEqual({entry, twin, other}, {entry, other})
        self.assertEqual(len({entry: 1, twin: 2}), 1)

    def test_payload_excludes_chain_fields(self) -> None:
        entry = TimelineEntry.from_payload(_payload(), prev_hash="p", entry_hash="h")
        self.assertEqual(set(entry.payload()), set(_payload()))
        self.assertEqual(entry.to_dict()["prevHash"], "p")


if __name__ == "__main__":
    unittest.main()
