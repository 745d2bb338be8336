"""Atomic artifact writes and hashing helpers."""

from __future__ import annotations

import stat
import sys
from pathlib import Path

import pytest

from coursegen_repair.utils.fs import atomic_write_text
from coursegen_repair.utils.hashing import sha256_bytes, sha256_text


def test_write_creates_parents_and_replaces(tmp_path: Path) -> None:
    target = tmp_path / "dumps" / "nested" / "repair.json"

    first = atomic_write_text(target, '{"a": 1}')
    second = atomic_write_text(target, "“curly” text\r\n")

    assert first == second == target.resolve()
    assert target.read_bytes() == "“curly” text\r\n".encode()
    assert [path.name for path in target.parent.iterdir()] == ["repair.json"]


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_written_files_are_owner_only(tmp_path: Path) -> None:
    path = atomic_write_text(tmp_path / "raw.json", "{}")

    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_missing_parent_is_an_error_without_create(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        atomic_write_text(tmp_path / "absent" / "x.json", "{}", create_parents=False)
    assert not (tmp_path / "absent").exists()


def test_parent_that_is_a_file_is_rejected(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(OSError):
        atomic_write_text(blocker / "x.json", "{}")


def test_sha256_helpers_agree() -> None:
    assert sha256_text("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    assert sha256_text("é") == sha256_bytes("é".encode())
