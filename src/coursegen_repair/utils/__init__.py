"""Utility exports for filesystem and hashing helpers."""

from coursegen_repair.utils.fs import atomic_write_text
from coursegen_repair.utils.hashing import sha256_bytes, sha256_text

__all__ = [
    "atomic_write_text",
    "sha256_bytes",
    "sha256_text",
]
