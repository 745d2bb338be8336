"""Command-line interface router for coursegen-repair."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from coursegen_repair.config import (
    ConfigLoadError,
    ConfigValidationError,
    load_config,
    redact_config,
)
from coursegen_repair.domain.models import GenerationOutcome, GenerationType, parse_timestamp
from coursegen_repair.observability.logging import configure_logging
from coursegen_repair.persistence.repositories import (
    MAX_PAGE_SIZE,
    GenerationLogFilters,
    GenerationLogRecord,
    GenerationLogRepo,
)
from coursegen_repair.persistence.state_db import StateDBError
from coursegen_repair.repair.structured_call import StructuredCallFailure, StructuredCallSuccess
from coursegen_repair.schema.registry import SchemaDefinitionError, SchemaRegistry
from coursegen_repair.service import (
    build_repair_pipeline,
    load_schema_registry,
    open_generation_log_repo,
)
from coursegen_repair.telemetry.generation_logger import GenerationContext, GenerationLogger
from coursegen_repair.telemetry.retention import cleanup_expired_payloads, list_generation_logs

OFFLINE_MODEL_ID = "offline"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="coursegen-repair",
        description=(
            "coursegen-repair — repair malformed structured LLM output.\n\n"
            "Common workflows:\n"
            "  coursegen-repair repair out.json --schema quiz   Repair saved model output\n"
            "  coursegen-repair schemas                         List known schemas\n"
            "  coursegen-repair logs list                       Browse generation logs\n"
            "  coursegen-repair logs cleanup                    Redact expired payloads\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./coursegen.toml if present).",
    )
    common.add_argument(
        "--state-db",
        dest="state_db",
        default=None,
        help="Override paths.state_db for this invocation.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # repair ----------------------------------------------------------------
    repair_parser = subparsers.add_parser(
        "repair",
        parents=[common],
        help="Run the offline repair layers over saved model output",
        description=(
            "Validate saved model output against a schema, repairing it when possible.\n\n"
            "Examples:\n"
            "  coursegen-repair repair out.json --schema quiz\n"
            "  coursegen-repair repair - --schema trivia < out.json\n"
            "  coursegen-repair repair out.json --schema quiz --record --type quiz\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    repair_parser.add_argument("input_path", help="File holding model output ('-' for stdin)")
    repair_parser.add_argument("--schema", required=True, help="Registered schema name")
    repair_parser.add_argument(
        "--record",
        action="store_true",
        default=False,
        help="Write a generation log row for this repair",
    )
    repair_parser.add_argument(
        "--type",
        dest="generation_type",
        choices=[item.value for item in GenerationType],
        default=None,
        help="Generation type recorded with --record (default: inferred from schema name)",
    )
    repair_parser.add_argument(
        "--model-id",
        default=OFFLINE_MODEL_ID,
        help=f"Model id recorded with --record (default: {OFFLINE_MODEL_ID})",
    )
    repair_parser.add_argument("--course-id", default=None, help="Course id recorded with --record")
    repair_parser.set_defaults(handler=_cmd_repair)

    # schemas ---------------------------------------------------------------
    schemas_parser = subparsers.add_parser(
        "schemas",
        parents=[common],
        help="List registered schema descriptors",
    )
    schemas_parser.set_defaults(handler=_cmd_schemas)

    # logs ------------------------------------------------------------------
    logs_parser = subparsers.add_parser(
        "logs",
        help="Inspect and maintain generation logs",
        description=(
            "Browse generation logs and redact expired sensitive payloads.\n\n"
            "Examples:\n"
            "  coursegen-repair logs list --outcome failed\n"
            "  coursegen-repair logs show gen-01J...\n"
            "  coursegen-repair logs stats --type quiz\n"
            "  coursegen-repair logs cleanup --now 2026-02-12T00:00:00Z\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    logs_sub = logs_parser.add_subparsers(dest="logs_command", required=True)

    filters = argparse.ArgumentParser(add_help=False)
    filters.add_argument(
        "--type",
        dest="generation_type",
        choices=[item.value for item in GenerationType],
        default=None,
    )
    filters.add_argument(
        "--outcome",
        choices=[item.value for item in GenerationOutcome],
        default=None,
    )
    filters.add_argument("--model", dest="model_id", default=None)
    filters.add_argument("--course", dest="course_id", default=None)

    list_parser = logs_sub.add_parser(
        "list", parents=[common, filters], help="List logs, newest first"
    )
    list_parser.add_argument("--limit", type=int, default=50, help=f"1..{MAX_PAGE_SIZE}")
    list_parser.add_argument("--offset", type=int, default=0)
    list_parser.set_defaults(handler=_cmd_logs_list)

    show_parser = logs_sub.add_parser("show", parents=[common], help="Show one log in full")
    show_parser.add_argument("log_id")
    show_parser.set_defaults(handler=_cmd_logs_show)

    stats_parser = logs_sub.add_parser(
        "stats", parents=[common, filters], help="Count logs per outcome"
    )
    stats_parser.set_defaults(handler=_cmd_logs_stats)

    cleanup_parser = logs_sub.add_parser(
        "cleanup", parents=[common], help="Redact expired sensitive payloads"
    )
    cleanup_parser.add_argument(
        "--now",
        default=None,
        help="ISO-8601 timestamp with offset to treat as the current time",
    )
    cleanup_parser.set_defaults(handler=_cmd_logs_cleanup)

    # config ----------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the redacted effective config",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_repair(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    registry = _load_registry(config)
    schema_name = str(args.schema)
    try:
        schema = registry.get(schema_name)
    except KeyError as exc:
        raise CLIError(str(exc.args[0]), exit_code=2) from exc

    text = _read_input(str(args.input_path))
    pipeline = build_repair_pipeline(config)
    generation_logger = None
    if args.record:
        context = GenerationContext(
            generation_type=args.generation_type or _infer_generation_type(schema_name),
            schema_name=schema_name,
            model_id=str(args.model_id),
            course_id=args.course_id,
        )
        generation_logger = GenerationLogger(
            context,
            _open_repo(config),
            retention_hours=config["retention"]["sensitive_ttl_hours"],
        )

    run = pipeline.repair_text(text, schema, generation_logger=generation_logger)
    outcome = run.outcome
    payload: dict[str, object] = {
        "command": "repair",
        "schema": schema_name,
        "ok": run.ok,
        "repair": run.tracker.to_dict(),
    }
    if isinstance(outcome, StructuredCallSuccess):
        payload["repaired"] = outcome.repaired
        payload["value"] = outcome.value
    elif isinstance(outcome, StructuredCallFailure):
        payload["error"] = str(outcome.error).splitlines()[0]
        payload["issues"] = [issue.to_dict() for issue in outcome.error.issues]

    if _flag(args, "json"):
        _emit_json(payload)
    elif isinstance(outcome, StructuredCallSuccess):
        print(json.dumps(outcome.value, indent=2, ensure_ascii=False))
    else:
        print(str(outcome.error), file=sys.stderr)
    return 0 if run.ok else 1


def _cmd_schemas(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    registry = _load_registry(config)
    names = list(registry.names())
    if _flag(args, "json"):
        _emit_json({"command": "schemas", "schemas": names})
        return 0
    for name in names:
        print(f"{name}  ({registry.get(name).kind.value})")
    return 0


def _cmd_logs_list(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    repo = _open_repo(config)
    try:
        page = list_generation_logs(
            repo, _filters_from_args(args), limit=int(args.limit), offset=int(args.offset)
        )
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "logs list",
                "total": page.total,
                "limit": page.limit,
                "offset": page.offset,
                "redacted": page.redacted,
                "items": [item.to_dict() for item in page.items],
            }
        )
        return 0

    if not page.items:
        print("no generation logs")
        return 0
    rows = [_summary_row(item) for item in page.items]
    _print_table(("id", "created_at", "type", "schema", "outcome", "ms"), rows)
    print(f"\nshowing {len(page.items)} of {page.total} (offset {page.offset})")
    return 0


def _cmd_logs_show(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    repo = _open_repo(config)
    cleanup_expired_payloads(repo)
    try:
        record = repo.get(str(args.log_id))
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc
    if record is None:
        raise CLIError(f"generation log not found: {args.log_id}", exit_code=1)

    if _flag(args, "json"):
        _emit_json({"command": "logs show", "log": record.to_dict()})
        return 0
    print(json.dumps(record.to_dict(), indent=2, sort_keys=True, ensure_ascii=False))
    return 0


def _cmd_logs_stats(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    repo = _open_repo(config)
    filters = _filters_from_args(args)
    stats = repo.outcome_stats(filters)
    total = sum(stats.values())

    if _flag(args, "json"):
        _emit_json({"command": "logs stats", "total": total, "outcomes": stats})
        return 0
    for outcome, count in stats.items():
        print(f"{outcome}: {count}")
    print(f"total: {total}")
    return 0


def _cmd_logs_cleanup(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    repo = _open_repo(config)
    now = None
    if args.now is not None:
        try:
            now = parse_timestamp(str(args.now))
        except ValueError as exc:
            raise CLIError(f"--now: {exc}", exit_code=2) from exc

    redacted = cleanup_expired_payloads(repo, now=now)
    if _flag(args, "json"):
        _emit_json({"command": "logs cleanup", "redacted": redacted})
        return 0
    print(f"redacted {redacted} generation log(s)")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    redacted = redact_config(config)
    if _flag(args, "json"):
        _emit_json({"command": "config", "config": redacted})
        return 0
    print(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _print_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
    widths = [len(header) for header in headers]
    for row in rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))

    def _pad(cells: Sequence[str]) -> str:
        return "  ".join(cell.ljust(widths[index]) for index, cell in enumerate(cells)).rstrip()

    print(_pad(headers))
    print("  ".join("-" * width for width in widths))
    for row in rows:
        print(_pad(row))


def _summary_row(record: GenerationLogRecord) -> tuple[str, ...]:
    created = record.to_dict()["created_at"]
    return (
        record.id,
        str(created),
        record.generation_type.value,
        record.schema_name,
        record.outcome.value,
        str(record.duration_ms),
    )


# ---------------------------------------------------------------------------
# Config and path helpers
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    overrides: dict[str, object] = {}
    state_db = _optional_str(getattr(args, "state_db", None))
    if state_db is not None:
        overrides["paths.state_db"] = str(Path(state_db).expanduser().resolve())

    try:
        config = load_config(config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    observability = config["observability"]
    configure_logging(observability["log_level"], observability["log_format"])
    structlog.get_logger(__name__).debug("config_loaded", config_path=config_path)
    return config


def _load_registry(config: Mapping[str, Any]) -> SchemaRegistry:
    try:
        return load_schema_registry(config)
    except (SchemaDefinitionError, FileNotFoundError, NotADirectoryError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _open_repo(config: Mapping[str, Any]) -> GenerationLogRepo:
    try:
        return open_generation_log_repo(config)
    except StateDBError as exc:
        raise CLIError(f"state db unavailable: {exc}", exit_code=4) from exc


def _read_input(path_arg: str) -> str:
    if path_arg == "-":
        return sys.stdin.read()
    path = Path(path_arg).expanduser()
    if not path.is_file():
        raise CLIError(f"input file not found: {path}", exit_code=2)
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CLIError(f"unable to read {path}: {exc}", exit_code=2) from exc


def _filters_from_args(args: argparse.Namespace) -> GenerationLogFilters:
    return GenerationLogFilters(
        generation_type=getattr(args, "generation_type", None),
        outcome=getattr(args, "outcome", None),
        model_id=_optional_str(getattr(args, "model_id", None)),
        course_id=_optional_str(getattr(args, "course_id", None)),
    )


def _infer_generation_type(schema_name: str) -> GenerationType:
    for item in GenerationType:
        if schema_name.startswith(item.value):
            return item
    return GenerationType.COURSE


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
