import json
import os
import unittest
from contextlib import redirect_stderr, redirect_stdout
from io import StringIO
from tempfile import TemporaryDirectory
from unittest.mock import patch

from incident_timeline.assurance.logging import log_path
from incident_timeline.config import TimelineConfig
from incident_timeline.kernel.hashing import audit_hash
from incident_timeline.provenance import store_path


class CliTimelineCommandsTest(unittest.TestCase):
    def _cfg(self, tmpdir: str) -> TimelineConfig:
        return TimelineConfig(home=tmpdir, store_dir=os.path.join(tmpdir, "store"))

    def _run_cli(self, args: list[str], cfg: TimelineConfig) -> tuple[int, list[str], str]:
        buffer = StringIO()
        errors = StringIO()
        with patch("incident_timeline.config.load_config", return_value=cfg):
            from incident_timeline.cli import main

            with redirect_stdout(buffer), redirect_stderr(errors):
                exit_code = main(args)
        return exit_code, buffer.getvalue().splitlines(), errors.getvalue()

    def test_append_then_list_streams_entries(self) -> None:
        with TemporaryDirectory() as tmpdir:
            cfg = self._cfg(tmpdir)
            code, lines, _ = self._run_cli(
                ["append", "--incident", "inc-9", "--actor", "officer-1", "--action", "Created",
                 "--details", '{"title": "Gas leak"}'],
                cfg,
            )
            self.assertEqual(code, 0)
            created = json.loads(lines[0])["entry"]
            self.assertNotIn("prevHash", created)

            code, lines, _ = self._run_cli(
                ["append", "--incident", "inc-9", "--actor", "officer-1", "--action", "MediaAttached",
                 "--media", '[{"url": "https://cdn.example/leak.mp4", "kind": "video"}]'],
                cfg,
            )
            self.assertEqual(code, 0)
            attached = json.loads(lines[0])["entry"]
            self.assertEqual(attached["prevHash"], created["hash"])

            code, lines, _ = self._run_cli(["list", "--incident", "inc-9"], cfg)
            self.assertEqual(code, 0)
            summary = json.loads(lines[0])
            self.assertEqual(summary["count"], 2)
            self.assertEqual(summary["tip"], attached["hash"])
            self.assertEqual([json.loads(line) for line in lines[1:]], [created, attached])

            code, lines, _ = self._run_cli(["list", "--incident", "inc-9", "--action", "MediaAttached"], cfg)
            self.assertEqual(json.loads(lines[0])["count"], 1)

            logged = log_path(cfg).read_text(encoding="utf-8").splitlines()
            self.assertEqual([json.loads(line)["action"] for line in logged], ["append", "append", "list", "list"])

    def test_append_rejects_bad_media_kind(self) -> None:
        with TemporaryDirectory() as tmpdir:
            cfg = self._cfg(tmpdir)
            code, lines, _ = self._run_cli(
                ["append", "--incident", "inc-9", "--actor", "officer-1", "--action", "Note",
                 "--media", '[{"url": "x", "kind": "hologram"}]'],
                cfg,
            )
            self.assertEqual(code, 2)
            payload = json.loads(lines[0])
            self.assertFalse(payload["ok"])
            self.assertEqual(payload["code"], "TIMELINE_0x01")

    def test_append_rejects_malformed_json_flags(self) -> None:
        cases = (
            ["--details", "{not json"],
            ["--details", "[1, 2]"],
            ["--media", '{"url": "x"}'],
        )
        with TemporaryDirectory() as tmpdir:
            cfg = self._cfg(tmpdir)
            for extra in cases:
                with self.subTest(flags=extra):
                    code, lines, _ = self._run_cli(
                        ["append", "--incident", "inc-9", "--actor", "officer-1", "--action", "Note", *extra],
                        cfg,
                    )
                    self.assertEqual(code, 2)
                    payload = json.loads(lines[0])
                    self.assertFalse(payload["ok"])
                    self.assertIn(extra[0], payload["error"])
            self.assertFalse(store_path(cfg).exists())

    def test_verify_reports_corruption(self) -> None:
        with TemporaryDirectory() as tmpdir:
            cfg = self._cfg(tmpdir)
            for action in ("Created", "StatusChanged", "Note"):
                self._run_cli(["append", "--incident", "inc-9", "--actor", "officer-1", "--action", action], cfg)
            self._run_cli(["append", "--incident", "inc-3", "--actor", "officer-2", "--action", "Created"], cfg)

            code, lines, _ = self._run_cli(["verify"], cfg)
            self.assertEqual(code, 0)
            self.assertEqual(
                json.loads(lines[0]),
                {"ok": True, "incidents": {"inc-3": {"valid": True}, "inc-9": {"valid": True}}},
            )

            path = store_path(cfg)
            records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
            del records[1]
            path.write_text("".join(json.dumps(record) + "\n" for record in records), encoding="utf-8")

            code, lines, human = self._run_cli(["verify", "--incident", "inc-9", "--output", "both"], cfg)
            self.assertEqual(code, 1)
            verdict = json.loads(lines[0])["incidents"]["inc-9"]
            self.assertEqual(verdict, {"valid": False, "corruptedEntryId": records[1]["id"], "error": "Hash chain broken"})
            self.assertIn("INTEGRITY VIOLATION", human)

            code, lines, _ = self._run_cli(["list", "--incident", "inc-9"], cfg)
            self.assertEqual(code, 1)
            self.assertFalse(json.loads(lines[0])["ok"])

    def test_audit_hash_and_version(self) -> None:
        with TemporaryDirectory() as tmpdir:
            cfg = self._cfg(tmpdir)
            code, lines, _ = self._run_cli(
                ["audit-hash", "--actor", "a", "--action", "ControlExecuted", "--resource", "gate-3",
                 "--timestamp", "2024-01-01T00:00:00Z"],
                cfg,
            )
            self.assertEqual(code, 0)
            self.assertEqual(
                json.loads(lines[0])["hash"],
                audit_hash("a", "ControlExecuted", "gate-3", "2024-01-01T00:00:00Z"),
            )

            code, lines, _ = self._run_cli(["version"], cfg)
            self.assertEqual(code, 0)
            self.assertTrue(json.loads(lines[0])["ok"])


if __name__ == "__main__":
    unittest.main()
