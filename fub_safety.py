"""Command line entry point for the FUB safety engine."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import uvicorn

from api.server import APIServerConfig, create_app
from core.logging_utils import configure_json_logging, redact_secret
from core.paths import resolve_working_dir
from journal.types import OperationType
from protection.types import Effect, ProtectionRule, Scope, Tier
from workflow.levels import SAFETY_LEVELS
from workflow.service import SafetyService
from workflow.types import BatchResult

LOGGER = logging.getLogger("fub.cli")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8757


def _resolve_bind_host(candidate: Optional[str]) -> str:
    host = (candidate or DEFAULT_HOST).strip() or DEFAULT_HOST
    norm = host.lower()
    if norm in {"localhost", "::1"}:
        return "127.0.0.1"
    if norm.startswith("127."):
        return host
    raise ValueError(f"Refusing to bind API server to non-loopback host '{candidate}'.")


def _parse_override(text: str) -> tuple:
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    return key.strip(), value.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fub-safety", description="Run, record and undo destructive maintenance operations.")
    parser.add_argument("--working-dir", type=Path, default=None, help="State directory (default: FUB_HOME or XDG state)")
    parser.add_argument("--json", action="store_true", help="Print machine readable JSON")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a batch through the safety workflow")
    run.add_argument("op_type", choices=[item.value for item in OperationType])
    run.add_argument("targets", nargs="+")
    run.add_argument("-d", "--description", default="")
    run.add_argument("-l", "--level", choices=sorted(SAFETY_LEVELS), default=None)
    run.add_argument("-y", "--yes", action="store_true", help="Skip the final confirmation")
    run.add_argument("--dry-run", action="store_true")
    content = run.add_mutually_exclusive_group()
    content.add_argument("--content", default=None, help="New content for file_modify")
    content.add_argument("--content-file", type=Path, default=None, help="Read new content for file_modify from a file")
    run.add_argument("--set", dest="overrides", action="append", type=_parse_override, default=[],
                     metavar="FIELD=VALUE", help="Override a safety level field for this run (repeatable)")

    listing = sub.add_parser("list", help="Show recent journal entries")
    listing.add_argument("-n", "--limit", type=int, default=20)
    listing.add_argument("--pending", action="store_true", help="Only unresolved operations")

    show = sub.add_parser("show", help="Show one journal entry")
    show.add_argument("operation_id")

    undo = sub.add_parser("undo", help="Reverse a journaled operation")
    undo.add_argument("operation_id")

    sub.add_parser("cleanup", help="Apply journal and backup retention")

    rules = sub.add_parser("rules", help="Manage protection rules")
    rules_sub = rules.add_subparsers(dest="rules_command", required=True)
    rules_list = rules_sub.add_parser("list")
    rules_list.add_argument("--tier", choices=[item.value for item in Tier], default=None)
    for name in ("add", "remove"):
        cmd = rules_sub.add_parser(name)
        cmd.add_argument("scope", choices=[item.value for item in Scope])
        cmd.add_argument("pattern")
        cmd.add_argument("--allow", action="store_true", help="Allow rule instead of Protect")
        cmd.add_argument("--tier", choices=[item.value for item in Tier], default=Tier.USER.value)
        if name == "add":
            cmd.add_argument("--description", default="")
    rules_sub.add_parser("init", help="Install the default user rules")
    rules_sub.add_parser("validate", help="Report malformed rule entries")
    rules_export = rules_sub.add_parser("export", help="Write one tier's rules as JSON")
    rules_export.add_argument("--tier", choices=[item.value for item in Tier], default=Tier.USER.value)
    rules_export.add_argument("--output", type=Path, default=None, help="File to write instead of stdout")
    rules_import = rules_sub.add_parser("import", help="Add rules from an exported JSON file")
    rules_import.add_argument("path", type=Path)
    rules_import.add_argument("--tier", choices=[item.value for item in Tier], default=Tier.USER.value)

    checks = sub.add_parser("checks", help="Run the pre-flight context checks")
    checks.add_argument("targets", nargs="*")
    checks.add_argument("--basic-only", action="store_true")

    serve = sub.add_parser("serve", help="Serve the HTTP API on loopback")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--api-key", dest="api_key", default=None, help="Override the API key for this session")
    return parser


def _build_service(working_dir: Path) -> SafetyService:
    return SafetyService.from_settings(working_dir)


def _emit(args: argparse.Namespace, payload: Any, text: str) -> None:
    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True, default=str))
    else:
        print(text)


def _format_batch(result: BatchResult) -> str:
    lines = [
        f"batch {result.batch_id} [{result.level}] {result.op_type}: {result.classification.value}"
        + (" (dry run)" if result.dry_run else "")
    ]
    if result.reason:
        lines.append(f"  reason: {result.reason}")
    for item in result.warnings:
        lines.append(f"  ! {item.message}")
    for item in result.results:
        ref = f" op={item.operation_id}" if item.operation_id else ""
        why = f" ({item.reason})" if item.reason else ""
        lines.append(f"  {item.outcome.value:<9} {item.target}{ref}{why}")
    lines.append(f"  {result.succeeded} succeeded, {result.failed} failed, {result.skipped} skipped")
    return "\n".join(lines)


def _format_operation(op: Dict[str, Any]) -> str:
    text = f"{op['id']}  {op['status']:<9} {op['type']:<16} {op['target']}"
    if op.get("error"):
        text += f"  [{op['error']}]"
    return text


def _cmd_run(args: argparse.Namespace, service: SafetyService) -> int:
    content: Optional[bytes] = None
    if args.content_file is not None:
        content = args.content_file.read_bytes()
    elif args.content is not None:
        content = args.content.encode("utf-8")
    result = service.run_workflow(
        args.op_type,
        args.targets,
        args.description,
        args.level,
        skip_confirmations=True if args.yes else None,
        dry_run=args.dry_run,
        content=content,
        level_overrides=dict(args.overrides) or None,
    )
    _emit(args, result.to_dict(), _format_batch(result))
    return result.exit_code


def _cmd_list(args: argparse.Namespace, service: SafetyService) -> int:
    operations = service.pending_operations() if args.pending else service.list_operations(args.limit)
    payload = [op.to_dict() for op in operations]
    text = "\n".join(_format_operation(op) for op in payload) or "no operations recorded"
    _emit(args, payload, text)
    return 0


def _cmd_show(args: argparse.Namespace, service: SafetyService) -> int:
    payload = service.get_operation(args.operation_id).to_dict()
    text = "\n".join(f"{key:>12}: {value}" for key, value in payload.items())
    _emit(args, payload, text)
    return 0


def _cmd_undo(args: argparse.Namespace, service: SafetyService) -> int:
    outcome = service.undo(args.operation_id)
    lines = [f"{outcome.operation_id}: {outcome.status.value}"]
    for step in outcome.steps:
        lines.append(f"  [{'ok' if step.ok else 'FAIL'}] {step.name}: {step.detail}")
        if step.error is not None and step.error.remediation:
            lines.append(f"         -> {step.error.remediation}")
    _emit(args, outcome.to_dict(), "\n".join(lines))
    return 0 if outcome.ok else 1


def _cmd_cleanup(args: argparse.Namespace, service: SafetyService) -> int:
    summary = service.cleanup()
    backups = summary["backups"]
    text = (
        f"removed {len(summary['journal_removed'])} journal record(s), "
        f"{len(backups['removed'])} snapshot(s) ({backups['freed_bytes']} bytes freed)"
    )
    _emit(args, summary, text)
    return 0


def _rule_from_args(args: argparse.Namespace) -> ProtectionRule:
    return ProtectionRule(
        scope=Scope(args.scope),
        pattern=args.pattern,
        tier=Tier(args.tier),
        effect=Effect.ALLOW if args.allow else Effect.PROTECT,
        description=getattr(args, "description", "") or "",
    )


def _cmd_rules(args: argparse.Namespace, service: SafetyService) -> int:
    action = args.rules_command
    if action == "list":
        rules = service.list_rules(Tier(args.tier) if args.tier else None)
        payload = [{**rule.to_dict(), "tier": rule.tier.value} for rule in rules]
        text = "\n".join(
            f"{rule.tier.value:<6} {rule.effect.value:<7} {rule.scope.value:<11} {rule.pattern}" for rule in rules
        ) or "no rules configured"
        _emit(args, payload, text)
        return 0
    if action in {"add", "remove"}:
        rule = _rule_from_args(args)
        changed = service.add_rule(rule) if action == "add" else service.remove_rule(rule)
        verb = "added" if action == "add" else "removed"
        _emit(args, {"changed": changed}, f"{verb} {rule.scope.value}:{rule.pattern}" if changed else "no change")
        return 0
    if action == "init":
        added = service.install_default_rules()
        _emit(args, {"added": added}, f"installed {added} default rule(s)")
        return 0
    if action == "export":
        exported = service.export_rules(Tier(args.tier))
        if args.output is None:
            print(json.dumps(exported, indent=2))
            return 0
        args.output.write_text(json.dumps(exported, indent=2) + "\n", encoding="utf-8")
        count = len(exported["rules"])
        _emit(args, {"exported": count, "path": str(args.output)}, f"wrote {count} rule(s) to {args.output}")
        return 0
    if action == "import":
        payload = json.loads(args.path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"{args.path}: expected a JSON object with a 'rules' list")
        added, problems = service.import_rules(payload, Tier(args.tier))
        text = "\n".join([f"imported {added} rule(s)", *problems])
        _emit(args, {"added": added, "problems": problems}, text)
        return 1 if problems else 0
    problems = service.rule_problems()
    _emit(args, {"problems": problems}, "\n".join(problems) or "all rule files are valid")
    return 1 if problems else 0


def _cmd_checks(args: argparse.Namespace, service: SafetyService) -> int:
    report = service.run_checks(args.targets, basic=True, advanced=not args.basic_only)
    lines = [f"{item.severity.value:<7} {item.code}: {item.message}" for item in report.items]
    _emit(args, report.to_dict(), "\n".join(lines) or "no findings")
    return 0


def _cmd_serve(args: argparse.Namespace, service: SafetyService) -> int:
    api_settings = service.settings.get("api") or {}
    host = _resolve_bind_host(args.host or api_settings.get("host"))
    port = int(args.port or api_settings.get("port") or DEFAULT_PORT)
    api_key = args.api_key or api_settings.get("api_key")
    if not api_key:
        LOGGER.warning("API key is not configured; all requests will be rejected with 401.")
    else:
        LOGGER.info("serving with API key %s", redact_secret(api_key))
    app = create_app(APIServerConfig(service=service, api_key=api_key))
    print(f"API listening on http://{host}:{port}", flush=True)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info", access_log=False))
    return 0 if server.run() is not False else 1


_COMMANDS = {
    "run": _cmd_run,
    "list": _cmd_list,
    "show": _cmd_show,
    "undo": _cmd_undo,
    "cleanup": _cmd_cleanup,
    "rules": _cmd_rules,
    "checks": _cmd_checks,
    "serve": _cmd_serve,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    working_dir = args.working_dir or resolve_working_dir()
    configure_json_logging(working_dir=working_dir)
    service: Optional[SafetyService] = None
    try:
        service = _build_service(working_dir)
        return _COMMANDS[args.command](args, service)
    except (LookupError, ValueError, RuntimeError, OSError) as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        if service is not None:
            service.close()


if __name__ == "__main__":
    sys.exit(main())
