"""
coursegen-repair — persistence layer

File: src/coursegen_repair/persistence/__init__.py
Last updated: 2026-02-11

Purpose
- Persistence layer: state DB access, migrations, and the generation log repository.

Non-functional requirements
- SQLite-first; avoid heavy DB dependencies.
"""

from coursegen_repair.persistence.repositories import (
    MAX_PAGE_SIZE,
    GenerationLogFilters,
    GenerationLogRecord,
    GenerationLogRepo,
)
from coursegen_repair.persistence.state_db import (
    StateDB,
    StateDBBusyError,
    StateDBError,
    StateDBMigrationError,
)

__all__ = [
    "MAX_PAGE_SIZE",
    "GenerationLogFilters",
    "GenerationLogRecord",
    "GenerationLogRepo",
    "StateDB",
    "StateDBBusyError",
    "StateDBError",
    "StateDBMigrationError",
]
