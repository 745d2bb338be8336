"""
coursegen-repair — package root

File: src/coursegen_repair/__init__.py
Last updated: 2026-02-11

Purpose
- Package root for the structured-output repair pipeline used by course generation.

What should be included in this file
- Package docstring describing the pipeline at a high level.
- Version export and a small public API surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).

Non-functional requirements
- Must keep import time fast; heavy submodules are imported by callers directly.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
