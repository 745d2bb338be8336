"""
coursegen-repair — filesystem utilities

File: src/coursegen_repair/utils/fs.py
Last updated: 2026-02-12

Purpose
- Write debug artifacts (raw model output) without ever leaving a half-written file.

Functional requirements
- The temp file lives next to the target and replaces it in one ``os.replace``.
- Artifacts are created owner-only; they can hold unredacted model output.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = ["atomic_write_text"]


def atomic_write_text(
    path: PathLike,
    text: str,
    *,
    encoding: str = "utf-8",
    create_parents: bool = True,
) -> Path:
    """Atomically replace ``path`` with ``text`` and return the resolved target."""

    target = Path(path).expanduser()
    if create_parents:
        target.parent.mkdir(parents=True, exist_ok=True)
    directory = target.parent.resolve(strict=True)
    if not directory.is_dir():
        raise NotADirectoryError(f"{directory!s} is not a directory")

    # mkstemp opens with mode 0o600, and os.replace keeps it.
    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".part", dir=directory)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, directory / target.name)
    except BaseException:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise
    return directory / target.name
