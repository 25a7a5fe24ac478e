from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from . import __version__
from .contracts.v1 import EngineRequest
from .util.conv import coerce_bool
from .util.obslog import setup_root_json_logging


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _env_flag(name: str, *, default: bool = False) -> bool:
    return coerce_bool(os.environ.get(name), default=default)


def _setup_logging(component: str) -> None:
    level = str(os.environ.get("JOBPILOT_LOG_LEVEL") or "").strip()
    if not level:
        from .kernel.settings import load_settings

        level = load_settings().engine.log_level
    setup_root_json_logging(component=component, level=level)


def call_engine(req: Dict[str, Any]) -> Dict[str, Any]:
    from .engine.server import handle_request

    resp = handle_request(EngineRequest.model_validate(req))
    return resp.model_dump(mode="json")


def _run(op: str, args: Dict[str, Any]) -> int:
    resp = call_engine({"op": op, "args": args})
    _print_json(resp)
    return 0 if resp.get("ok") else 1


def cmd_dispatch(args: argparse.Namespace) -> int:
    return _run("dispatch", {})


def cmd_reminders_pending(args: argparse.Namespace) -> int:
    return _run("get_pending", {"user_id": args.user})


def cmd_reminders_snooze(args: argparse.Namespace) -> int:
    op_args: Dict[str, Any] = {"user_id": args.user, "reminder_id": args.reminder_id}
    if args.until:
        op_args["until"] = args.until
    if args.hours is not None:
        op_args["hours"] = args.hours
    return _run("snooze", op_args)


def cmd_reminders_dismiss(args: argparse.Namespace) -> int:
    return _run("dismiss", {"user_id": args.user, "reminder_id": args.reminder_id})


def cmd_reminders_complete(args: argparse.Namespace) -> int:
    return _run("complete", {"user_id": args.user, "reminder_id": args.reminder_id})


def cmd_reminders_generate(args: argparse.Namespace) -> int:
    return _run("generate_reminders", {"user_id": args.user})


def cmd_rules_list(args: argparse.Namespace) -> int:
    return _run("rule_list", {"user_id": args.user})


def _read_rule_doc(path: str) -> Any:
    text = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    # YAML is a superset of JSON; either works.
    return yaml.safe_load(text)


def cmd_rules_upsert(args: argparse.Namespace) -> int:
    try:
        rule = _read_rule_doc(args.file)
    except (OSError, yaml.YAMLError) as e:
        _print_json({"ok": False, "error": {"code": "invalid_rule", "message": f"cannot read rule: {e}", "details": {}}})
        return 1
    return _run("rule_upsert", {"user_id": args.user, "rule": rule})


def cmd_runs(args: argparse.Namespace) -> int:
    op_args: Dict[str, Any] = {"user_id": args.user, "limit": args.limit}
    if args.outcome:
        op_args["outcome"] = args.outcome
    return _run("rule_runs", op_args)


def cmd_web(args: argparse.Namespace) -> int:
    import uvicorn

    host = args.host or os.environ.get("JOBPILOT_WEB_HOST") or "127.0.0.1"
    port = int(args.port or os.environ.get("JOBPILOT_WEB_PORT") or 8848)
    reload = bool(args.reload) or _env_flag("JOBPILOT_WEB_RELOAD")
    uvicorn.run(
        "jobpilot.ports.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="jobpilot", description="Job-search automation and follow-up reminders")
    p.add_argument("--version", action="version", version=f"jobpilot {__version__}")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_dispatch = sub.add_parser("dispatch", help="Run every active automation rule once")
    p_dispatch.set_defaults(func=cmd_dispatch)

    p_rem = sub.add_parser("reminders", help="Follow-up reminders")
    rem_sub = p_rem.add_subparsers(dest="action", required=True)

    p_pending = rem_sub.add_parser("pending", help="List pending reminders")
    p_pending.add_argument("--user", required=True, help="Owner user id")
    p_pending.set_defaults(func=cmd_reminders_pending)

    p_snooze = rem_sub.add_parser("snooze", help="Snooze a reminder")
    p_snooze.add_argument("reminder_id")
    p_snooze.add_argument("--user", required=True, help="Owner user id")
    p_snooze.add_argument("--hours", type=float, default=None, help="Snooze for N hours (default from settings)")
    p_snooze.add_argument("--until", default="", help="Snooze until this ISO-8601 timestamp")
    p_snooze.set_defaults(func=cmd_reminders_snooze)

    p_dismiss = rem_sub.add_parser("dismiss", help="Dismiss a reminder")
    p_dismiss.add_argument("reminder_id")
    p_dismiss.add_argument("--user", required=True, help="Owner user id")
    p_dismiss.set_defaults(func=cmd_reminders_dismiss)

    p_complete = rem_sub.add_parser("complete", help="Mark a reminder completed")
    p_complete.add_argument("reminder_id")
    p_complete.add_argument("--user", required=True, help="Owner user id")
    p_complete.set_defaults(func=cmd_reminders_complete)

    p_generate = rem_sub.add_parser("generate", help="Create stage follow-up reminders now")
    p_generate.add_argument("--user", required=True, help="Owner user id")
    p_generate.set_defaults(func=cmd_reminders_generate)

    p_rules = sub.add_parser("rules", help="Automation rules")
    rules_sub = p_rules.add_subparsers(dest="action", required=True)

    p_rlist = rules_sub.add_parser("list", help="List rules with status")
    p_rlist.add_argument("--user", required=True, help="Owner user id")
    p_rlist.set_defaults(func=cmd_rules_list)

    p_rupsert = rules_sub.add_parser("upsert", help="Create or replace a rule from a JSON/YAML file")
    p_rupsert.add_argument("file", help="Path to the rule document, or - for stdin")
    p_rupsert.add_argument("--user", required=True, help="Owner user id")
    p_rupsert.set_defaults(func=cmd_rules_upsert)

    p_runs = sub.add_parser("runs", help="Show rule execution log (newest first)")
    p_runs.add_argument("--user", required=True, help="Owner user id")
    p_runs.add_argument("--outcome", choices=["success", "skipped", "error"], default=None)
    p_runs.add_argument("--limit", type=int, default=100)
    p_runs.set_defaults(func=cmd_runs)

    p_web = sub.add_parser("web", help="Serve the HTTP API")
    p_web.add_argument("--host", default="", help="Bind host (default 127.0.0.1)")
    p_web.add_argument("--port", type=int, default=0, help="Bind port (default 8848)")
    p_web.add_argument("--reload", action="store_true", help="Auto-reload on code changes")
    p_web.set_defaults(func=cmd_web)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging("web" if args.cmd == "web" else "cli")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
