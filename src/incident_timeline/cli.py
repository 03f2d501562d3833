from __future__ import annotations

import argparse
import json
import sys
from typing import Any


def _dump(obj: Any) -> str:
    from incident_timeline.assurance.logging import canonical_json

    return canonical_json(obj)


def _emit(obj: Any) -> None:
    sys.stdout.write(_dump(obj) + "\n")
    sys.stdout.flush()


def _emit_stderr(text: str) -> None:
    # Human output should not break machine pipelines.
    sys.stderr.write(text.rstrip("\n") + "\n")
    sys.stderr.flush()


def _parse_json(raw: str, flag: str, expected: type) -> Any:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{flag} must be valid JSON: {exc}") from exc
    if not isinstance(parsed, expected):
        raise ValueError(f"{flag} must be a JSON {'object' if expected is dict else 'array'}")
    return parsed


def _safe_cli_log(cfg: Any, *, action: str, outcome: str, details: dict[str, Any]) -> None:
    try:
        from incident_timeline.assurance.logging import append_jsonl_log_event

        append_jsonl_log_event(cfg=cfg, action=action, outcome=outcome, details=details)
    except Exception:  # pragma: no cover - best-effort logging
        # CLI success/failure must not depend on logging availability.
        pass


def _verify_human_summary(incident_id: str, result: Any) -> str:
    if result.valid:
        return f"Timeline [{incident_id}]: VERIFIED ({result.checked} entries)"
    return f"Timeline [{incident_id}]: INTEGRITY VIOLATION at {result.corrupted_entry_id} ({result.error})"


def _build_parser() -> argparse.ArgumentParser:
    from incident_timeline.timeline.entry import ActionType

    parser = argparse.ArgumentParser(prog="incident-timeline", description="Hash-chained incident timeline CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    append_parser = sub.add_parser("append", help="Append an entry to an incident timeline")
    append_parser.add_argument("--incident", required=True, help="Incident identifier")
    append_parser.add_argument("--actor", required=True, help="Actor identifier recorded on the entry")
    append_parser.add_argument(
        "--action",
        required=True,
        choices=[member.value for member in ActionType],
        help="Timeline action type",
    )
    append_parser.add_argument("--details", default="{}", help="JSON object of entry details")
    append_parser.add_argument("--media", default="[]", help="JSON array of {url, kind} attachments")

    list_parser = sub.add_parser("list", help="List an incident's entries in chain order")
    list_parser.add_argument("--incident", required=True, help="Incident identifier")
    list_parser.add_argument(
        "--action",
        action="append",
        default=None,
        choices=[member.value for member in ActionType],
        help="Only list entries of this action type (repeatable)",
    )

    verify_parser = sub.add_parser("verify", help="Verify incident timeline integrity")
    verify_parser.add_argument("--incident", default=None, help="Incident to verify; all incidents when omitted")
    verify_parser.add_argument(
        "--output",
        choices=("json", "text", "both"),
        default="json",
        help="Output mode: json emits machine output to stdout; text emits human output to stderr; both emits both.",
    )

    audit_parser = sub.add_parser("audit-hash", help="Compute a compliance audit hash")
    audit_parser.add_argument("--actor", required=True)
    audit_parser.add_argument("--action", required=True)
    audit_parser.add_argument("--resource", required=True)
    audit_parser.add_argument("--timestamp", required=True)

    sub.add_parser("version", help="Show version information")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        from incident_timeline.config import load_config

        cfg = load_config()

        if args.command == "version":
            from incident_timeline.version import __version__ as pkg_version

            _emit(
                {
                    "ok": True,
                    "package_version": pkg_version,
                    "python": sys.version.split()[0],
                    "config_version": cfg.version,
                }
            )
            return 0

        if args.command == "audit-hash":
            from incident_timeline.kernel.hashing import audit_hash

            value = audit_hash(args.actor, args.action, args.resource, args.timestamp)
            _emit({"ok": True, "hash": value})
            return 0

        from incident_timeline.kernel.failures import ChainCorrupted, TimelineError
        from incident_timeline.kernel.hashing import hashlib_digest
        from incident_timeline.provenance import ChainedLog, JsonlEntryStore, verify

        store = JsonlEntryStore.from_config(cfg)

        if args.command == "verify":
            incident_ids = [args.incident] if args.incident else store.incident_ids()
            digest_fn = hashlib_digest(cfg.digest_algorithm)
            results = {}
            for incident_id in incident_ids:
                results[incident_id] = verify(
                    store.load_entries(incident_id),
                    sort_mode=cfg.sort_mode,
                    digest_fn=digest_fn,
                )
            ok = all(result.valid for result in results.values())
            payload = {
                "ok": ok,
                "incidents": {incident_id: result.to_dict() for incident_id, result in results.items()},
            }
            _safe_cli_log(cfg, action="verify", outcome="ok" if ok else "corrupted", details=payload)
            if args.output in {"json", "both"}:
                _emit(payload)
            if args.output in {"text", "both"}:
                for incident_id, result in results.items():
                    _emit_stderr(_verify_human_summary(incident_id, result))
            return 0 if ok else 1

        log = ChainedLog.from_config(cfg, store=store)
        try:
            log.hydrate(args.incident)
        except ChainCorrupted as exc:
            _safe_cli_log(cfg, action=args.command, outcome="corrupted", details=exc.result.to_dict())
            _emit({"ok": False, "error": str(exc), "verification": exc.result.to_dict()})
            return 1

        if args.command == "list":
            entries = log.entries_for(args.incident, action_types=args.action)
            _safe_cli_log(
                cfg,
                action="list",
                outcome="ok",
                details={"incident": args.incident, "count": len(entries), "actions": args.action},
            )
            _emit({"ok": True, "count": len(entries), "tip": log.tip(args.incident)})
            for entry in entries:
                sys.stdout.write(_dump(entry.to_dict()) + "\n")
            return 0

        if args.command == "append":
            try:
                details = _parse_json(args.details, "--details", dict)
                media = _parse_json(args.media, "--media", list)
            except ValueError as exc:
                _safe_cli_log(cfg, action="append", outcome="error", details={"error": str(exc)})
                _emit({"ok": False, "error": str(exc)})
                return 2
            try:
                entry = log.record(args.incident, args.actor, args.action, details=details, media=media)
            except TimelineError as exc:
                _safe_cli_log(cfg, action="append", outcome="error", details={"code": exc.code, "detail": exc.detail})
                _emit({"ok": False, "code": exc.code, "error": exc.detail})
                return 2
            _safe_cli_log(cfg, action="append", outcome="ok", details={"entry": entry.to_dict()})
            _emit({"ok": True, "entry": entry.to_dict()})
            return 0

        raise ValueError(f"Unknown command: {args.command}")
    except Exception as exc:  # pragma: no cover - CLI safety net
        _emit({"ok": False, "error": str(exc)})
        return 1


__all__ = ["main"]
