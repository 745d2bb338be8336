"""Process entrypoint: maps whatever escapes the CLI onto a fixed set of exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

# Missing optional extras surface as provider failures, not crashes.
_PROVIDER_SDKS = frozenset({"anthropic", "openai"})


class ExitCode(IntEnum):
    SUCCESS = 0
    REPAIR_FAILED = 1
    CONFIG_ERROR = 2
    PROVIDER_ERROR = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return a process exit code; never raises except on interrupts."""

    try:
        from coursegen_repair.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except Exception as exc:  # noqa: BLE001 - last line before the interpreter.
        code = route_exception(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        else:
            _write_stderr(str(exc).strip() or type(exc).__name__)
        return int(code)


def route_exception(exc: BaseException) -> ExitCode:
    """First recognised failure along the cause/context chain decides the exit code."""

    from coursegen_repair.config.loader import ConfigLoadError
    from coursegen_repair.config.schema import ConfigValidationError
    from coursegen_repair.providers.base import ProviderError
    from coursegen_repair.schema.registry import SchemaDefinitionError

    config_errors = (ConfigLoadError, ConfigValidationError, SchemaDefinitionError)
    for link in _chain(exc):
        if isinstance(link, config_errors):
            return ExitCode.CONFIG_ERROR
        if isinstance(link, ProviderError) or (
            isinstance(link, ModuleNotFoundError) and link.name in _PROVIDER_SDKS
        ):
            return ExitCode.PROVIDER_ERROR
    return ExitCode.INTERNAL_ERROR


def _normalize_exit_code(raw_code: object) -> int:
    if raw_code is None:
        return ExitCode.SUCCESS.value
    if isinstance(raw_code, int) and raw_code in tuple(ExitCode):
        return raw_code
    # argparse and ``sys.exit("message")`` hand us text to show.
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return ExitCode.INTERNAL_ERROR.value


def _chain(exc: BaseException) -> Iterator[BaseException]:
    visited: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in visited:
        visited.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif link.__suppress_context__:
            link = None
        else:
            link = link.__context__


def _write_stderr(message: str) -> None:
    print(message.rstrip("\n"), file=sys.stderr)


__all__ = ["ExitCode", "cli_entrypoint", "route_exception"]
