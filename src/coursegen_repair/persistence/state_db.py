"""
coursegen-repair — SQLite state database

File: src/coursegen_repair/persistence/state_db.py
Last updated: 2026-02-18

Purpose
- Own the ``generation_logs`` schema and hand out configured SQLite connections.

What should be included in this file
- The migration list; each applied migration is recorded with a content checksum.
- Transactions that nest as savepoints.
- Bounded retry when another process holds the write lock.

Functional requirements
- ``migrate`` is idempotent and safe to run from several processes at once.
- Writes run inside ``BEGIN IMMEDIATE`` so concurrent cleanups serialize.

Non-functional requirements
- Connections are opened per operation; no lock outlives the statement batch.
"""

from __future__ import annotations

import hashlib
import json
import sqlite3
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from itertools import count
from pathlib import Path
from typing import Final

from coursegen_repair.constants import STATE_DB_SCHEMA_VERSION
from coursegen_repair.domain.models import GenerationOutcome, GenerationType

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]
RowValue = str | int | float | bytes | None

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000
DEFAULT_BUSY_RETRIES: Final[int] = 4
DEFAULT_RETRY_BACKOFF_SECONDS: Final[float] = 0.025

_LOCK_ERROR_CODES: Final[frozenset[int]] = frozenset({sqlite3.SQLITE_BUSY, sqlite3.SQLITE_LOCKED})


def _sql_enum(values: Sequence[str]) -> str:
    return ",".join(f"'{value}'" for value in values)


def _enum_values(values: type[StrEnum]) -> tuple[str, ...]:
    return tuple(sorted(item.value for item in values))


_GENERATION_TYPE_VALUES: Final[tuple[str, ...]] = _enum_values(GenerationType)
_OUTCOME_VALUES: Final[tuple[str, ...]] = _enum_values(GenerationOutcome)
_BOOL_CHECK: Final[str] = "IN (0, 1)"

_SCHEMA_VERSIONS_TABLE_SQL: Final[str] = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY CHECK (version > 0),
    name TEXT NOT NULL,
    checksum TEXT NOT NULL CHECK (length(checksum) = 64),
    applied_at TEXT NOT NULL
)
"""

_MIGRATION_0001_STATEMENTS: Final[tuple[str, ...]] = (
    _SCHEMA_VERSIONS_TABLE_SQL,
    f"""
    CREATE TABLE IF NOT EXISTS generation_logs (
        id TEXT PRIMARY KEY,
        generation_type TEXT NOT NULL
            CHECK (generation_type IN ({_sql_enum(_GENERATION_TYPE_VALUES)})),
        schema_name TEXT NOT NULL,
        model_id TEXT NOT NULL,
        provider TEXT NOT NULL,
        user_id TEXT,
        course_id TEXT,
        lesson_id TEXT,
        outcome TEXT NOT NULL CHECK (outcome IN ({_sql_enum(_OUTCOME_VALUES)})),
        duration_ms INTEGER NOT NULL CHECK (duration_ms >= 0),
        layer0_called INTEGER NOT NULL DEFAULT 0 CHECK (layer0_called {_BOOL_CHECK}),
        layer0_result TEXT,
        layer0_error TEXT,
        layer1_called INTEGER NOT NULL DEFAULT 0 CHECK (layer1_called {_BOOL_CHECK}),
        layer1_success INTEGER NOT NULL DEFAULT 0 CHECK (layer1_success {_BOOL_CHECK}),
        layer1_had_wrapper INTEGER NOT NULL DEFAULT 0 CHECK (layer1_had_wrapper {_BOOL_CHECK}),
        wrapper_type TEXT,
        layer2_called INTEGER NOT NULL DEFAULT 0 CHECK (layer2_called {_BOOL_CHECK}),
        layer2_success INTEGER NOT NULL DEFAULT 0 CHECK (layer2_success {_BOOL_CHECK}),
        layer2_model_id TEXT,
        raw_output_text TEXT,
        raw_output_len INTEGER CHECK (raw_output_len IS NULL OR raw_output_len >= 0),
        raw_output_redacted INTEGER NOT NULL DEFAULT 0
            CHECK (raw_output_redacted {_BOOL_CHECK}),
        validation_errors TEXT,
        error_message TEXT,
        prompt_hash TEXT CHECK (prompt_hash IS NULL OR length(prompt_hash) = 64),
        prompt_text TEXT,
        prompt_redacted INTEGER NOT NULL DEFAULT 0 CHECK (prompt_redacted {_BOOL_CHECK}),
        sensitive_text_expires_at TEXT,
        sensitive_text_redacted_at TEXT,
        language TEXT,
        difficulty TEXT,
        created_at TEXT NOT NULL,
        CHECK (
            sensitive_text_redacted_at IS NULL
            OR (raw_output_text IS NULL AND prompt_text IS NULL)
        )
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_generation_logs_generation_type
    ON generation_logs(generation_type)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_generation_logs_outcome
    ON generation_logs(outcome)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_generation_logs_model_id
    ON generation_logs(model_id)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_generation_logs_created_at
    ON generation_logs(created_at DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_generation_logs_course_id
    ON generation_logs(course_id)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_generation_logs_sensitive_expiry
    ON generation_logs(sensitive_text_expires_at)
    """,
)



_RECORD_MIGRATION_SQL: Final[str] = (
    "INSERT INTO schema_versions (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)"
)


@dataclass(frozen=True, slots=True)
class Migration:
    version: int
    name: str
    statements: tuple[str, ...]

    @property
    def checksum(self) -> str:
        """sha256 over the statements with trailing whitespace and indentation edges removed."""

        digest = hashlib.sha256(f"{self.version}:{self.name}\n".encode())
        for statement in self.statements:
            lines = (line.rstrip() for line in statement.strip().splitlines())
            digest.update("\n".join(lines).encode("utf-8"))
            digest.update(b"\n--\n")
        return digest.hexdigest()


MIGRATIONS: Final[tuple[Migration, ...]] = (
    Migration(1, "generation_log_schema", _MIGRATION_0001_STATEMENTS),
)


class StateDBError(RuntimeError):
    """A SQLite operation failed for a reason other than a constraint violation."""


class StateDBBusyError(StateDBError):
    """The write lock stayed held through every retry."""


class StateDBMigrationError(StateDBError):
    """The database schema does not match the migrations this build knows."""


class StateDB:
    """Generation log database; every call opens and closes its own connection."""

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        busy_retries: int = DEFAULT_BUSY_RETRIES,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    ) -> None:
        if busy_timeout_ms < 0 or busy_retries < 0 or retry_backoff_seconds < 0:
            raise ValueError("busy timeout, retries and backoff must be >= 0")
        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._busy_retries = busy_retries
        self._retry_backoff_seconds = retry_backoff_seconds
        self._savepoint_ids = count(1)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self._path,
            timeout=self._busy_timeout_ms / 1000,
            isolation_level=None,
            check_same_thread=False,
        )
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
            (mode,) = conn.execute("PRAGMA journal_mode=WAL").fetchone()
            if str(mode).lower() != "wal":
                raise StateDBError(f"{self._path}: journal_mode is {mode!r}, expected 'wal'")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(
        self,
        *,
        conn: sqlite3.Connection | None = None,
        immediate: bool = True,
    ) -> Iterator[sqlite3.Connection]:
        """Atomic block; inside an open transaction it becomes a savepoint."""

        if conn is None:
            with self.connection() as owned:
                with self.transaction(conn=owned, immediate=immediate) as tx:
                    yield tx
            return

        if conn.in_transaction:
            name = f"sp_{next(self._savepoint_ids)}"
            begin, commit = f"SAVEPOINT {name}", f"RELEASE SAVEPOINT {name}"
            rollback: tuple[str, ...] = (f"ROLLBACK TO SAVEPOINT {name}", commit)
        else:
            begin = "BEGIN IMMEDIATE" if immediate else "BEGIN"
            commit, rollback = "COMMIT", ("ROLLBACK",)

        self._run(conn, begin)
        try:
            yield conn
        except Exception:
            for statement in rollback:
                self._run(conn, statement)
            raise
        self._run(conn, commit)

    def migrate(self) -> int:
        """Apply pending migrations and return the resulting schema version."""

        with self.connection() as conn:
            self._run(conn, _SCHEMA_VERSIONS_TABLE_SQL)
            found = self.schema_version(conn=conn)
            if found > STATE_DB_SCHEMA_VERSION:
                raise StateDBMigrationError(
                    f"{self._path}: database schema is newer than supported "
                    f"(db={found}, code={STATE_DB_SCHEMA_VERSION})"
                )
            for migration in MIGRATIONS:
                if migration.version <= STATE_DB_SCHEMA_VERSION:
                    self._apply(conn, migration)
            return self.schema_version(conn=conn)

    def schema_version(self, *, conn: sqlite3.Connection | None = None) -> int:
        row = self.query_one(
            "SELECT COALESCE(MAX(version), 0) AS version FROM schema_versions", conn=conn
        )
        version = None if row is None else row["version"]
        if not isinstance(version, int):
            raise StateDBMigrationError(f"{self._path}: unreadable schema_versions table")
        return version

    def execute(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        """Run one write statement and return the affected row count."""

        if conn is not None:
            return self._run(conn, sql, params).rowcount
        with self.transaction() as tx:
            return self._run(tx, sql, params).rowcount

    def query_all(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> list[dict[str, RowValue]]:
        if conn is not None:
            return [_row_to_dict(row) for row in self._run(conn, sql, params).fetchall()]
        with self.connection() as owned:
            return [_row_to_dict(row) for row in self._run(owned, sql, params).fetchall()]

    def query_one(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, RowValue] | None:
        rows = self.query_all(sql, params, conn=conn)
        return rows[0] if rows else None

    def _apply(self, conn: sqlite3.Connection, migration: Migration) -> None:
        # Re-read under the write lock so two first-time openers apply it once.
        with self.transaction(conn=conn) as tx:
            row = self.query_one(
                "SELECT checksum FROM schema_versions WHERE version = ?",
                (migration.version,),
                conn=tx,
            )
            if row is not None:
                if row["checksum"] != migration.checksum:
                    raise StateDBMigrationError(
                        f"{self._path}: migration checksum mismatch for version "
                        f"{migration.version}: db={row['checksum']} code={migration.checksum}"
                    )
                return
            for statement in migration.statements:
                self._run(tx, statement)
            self._run(
                tx,
                _RECORD_MIGRATION_SQL,
                (migration.version, migration.name, migration.checksum, _utc_now_iso()),
            )

    def _run(self, conn: sqlite3.Connection, sql: str, params: SQLParams = ()) -> sqlite3.Cursor:
        attempt = 0
        while True:
            try:
                return conn.execute(sql, tuple(params))
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                if not _is_lock_error(exc):
                    raise StateDBError(f"{self._path}: {exc}") from exc
                if attempt >= self._busy_retries:
                    raise StateDBBusyError(
                        f"{self._path}: still locked after {attempt + 1} attempt(s): {exc}"
                    ) from exc
                time.sleep(self._retry_backoff_seconds * 2**attempt)
                attempt += 1


def _is_lock_error(exc: sqlite3.Error) -> bool:
    code = getattr(exc, "sqlite_errorcode", None)
    # Extended codes (e.g. SQLITE_BUSY_SNAPSHOT) carry the primary code in the low byte.
    if isinstance(code, int) and code & 0xFF in _LOCK_ERROR_CODES:
        return True
    return "locked" in str(exc).lower()


def _row_to_dict(row: sqlite3.Row) -> dict[str, RowValue]:
    return dict(row)


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def canonical_json(value: object) -> str:
    """Deterministic JSON for persisted payloads."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "DEFAULT_BUSY_RETRIES",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "DEFAULT_RETRY_BACKOFF_SECONDS",
    "MIGRATIONS",
    "Migration",
    "RowValue",
    "SQLParams",
    "SQLValue",
    "StateDB",
    "StateDBBusyError",
    "StateDBError",
    "StateDBMigrationError",
    "canonical_json",
]
