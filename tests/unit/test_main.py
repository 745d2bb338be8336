"""Process entrypoint: exit-code normalization and exception routing."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from coursegen_repair import main
from coursegen_repair.config.loader import ConfigLoadError
from coursegen_repair.main import ExitCode, cli_entrypoint, route_exception
from coursegen_repair.providers.base import ProviderAuthenticationError
from coursegen_repair.schema.registry import SchemaDefinitionError


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


def _chained(outer: BaseException, inner: BaseException) -> BaseException:
    try:
        try:
            raise inner
        except BaseException as exc:
            raise outer from exc
    except BaseException as caught:
        return caught


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfigLoadError("config file not found: x.toml"), ExitCode.CONFIG_ERROR),
        (SchemaDefinitionError("quiz: cycle"), ExitCode.CONFIG_ERROR),
        (ProviderAuthenticationError("missing key", provider="openai"), ExitCode.PROVIDER_ERROR),
        (ModuleNotFoundError("no anthropic", name="anthropic"), ExitCode.PROVIDER_ERROR),
        (ModuleNotFoundError("no yaml", name="yaml"), ExitCode.INTERNAL_ERROR),
        (RuntimeError("boom"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_route_exception(exc: BaseException, expected: ExitCode) -> None:
    assert route_exception(exc) is expected


def test_route_exception_follows_the_cause_chain() -> None:
    wrapped = _chained(RuntimeError("repack failed"), ProviderAuthenticationError("bad key"))

    assert route_exception(wrapped) is ExitCode.PROVIDER_ERROR


def test_argparse_exits_are_normalized(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint([]) == ExitCode.CONFIG_ERROR
    assert cli_entrypoint(["--help"]) == ExitCode.SUCCESS
    assert "coursegen-repair" in capsys.readouterr().out


def test_cli_errors_return_their_exit_code(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = str(tmp_path / "absent.toml")

    assert cli_entrypoint(["config", "--config", missing]) == ExitCode.CONFIG_ERROR
    assert "config file not found" in capsys.readouterr().err


def test_escaped_exceptions_are_routed_and_reported(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    from coursegen_repair.ui import cli

    def _raise_provider(argv: object) -> int:
        raise ProviderAuthenticationError("missing key", provider="anthropic")

    monkeypatch.setattr(cli, "run_cli", _raise_provider)

    assert cli_entrypoint(["config"]) == ExitCode.PROVIDER_ERROR
    assert "code=auth" in capsys.readouterr().err


def test_internal_errors_print_a_traceback(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    from coursegen_repair.ui import cli

    def _raise(argv: object) -> int:
        raise RuntimeError("unexpected state")

    monkeypatch.setattr(cli, "run_cli", _raise)

    assert cli_entrypoint(["config"]) == ExitCode.INTERNAL_ERROR
    err = capsys.readouterr().err
    assert "Traceback" in err
    assert "RuntimeError: unexpected state" in err


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 0), (1, 1), (3, 3), (42, 4), ("fatal", 4), ("", 4)],
)
def test_normalize_exit_code(raw: object, expected: int) -> None:
    assert main._normalize_exit_code(raw) == expected
