"""Module entrypoint for ``python -m coursegen_repair``."""

from __future__ import annotations

from coursegen_repair.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
