"""
Strata Migration Contract - the shape every migration implements.

Provides:
- Migration: base class with the default metadata and behaviours
- SQLMigration: statement-list migration (what the generator emits)
- SQLFileMigration: hand-written ``.sql`` files (``";\\n"``-separated)
- ValidationResult: outcome of ``Migration.validate()``

Migrations only run SQL. Locking, logging, backups and ledger writes
belong to the executor.

Usage:
    class AddEmail(SQLMigration):
        version = "20260301_101500"
        up_statements = ['ALTER TABLE "users" ADD COLUMN "email" VARCHAR(255)']
        down_statements = ['ALTER TABLE "users" DROP COLUMN "email"']
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..db.engine import StrataDatabase
from ..faults.domains import MigrationExecutionFault
from .schema import Schema

STATEMENT_SEPARATOR = ";\n"

_TIMESTAMP_VERSION = re.compile(r"^(\d{8}_\d{6})")
_LEGACY_VERSION = re.compile(r"^migration_(\d+)$")
_DESTRUCTIVE_SQL = re.compile(r"\bDROP\s+(TABLE|COLUMN)\b", re.IGNORECASE)


@dataclass
class ValidationResult:
    """Outcome of a validation pass. Warnings never make it invalid."""

    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def merge(self, other: ValidationResult) -> ValidationResult:
        for error in other.errors:
            self.add_error(error)
        self.warnings.extend(other.warnings)
        return self


class Migration:
    """
    Base migration. Subclasses set ``version`` and implement ``up``/``down``.

    Class attributes:
        version: Sortable identifier (``YYYYMMDD_HHMMSS``), never changed once applied
        description: Human-readable summary
        is_destructive: Drops tables or columns
        requires_backup: Back the database up before ``up`` runs
        auto_rollback_on_error: Run ``down`` when ``up`` fails
        depends_on: Versions that must be applied first
        conflicts_with: Versions that must not be applied in the same run
        can_run_in_parallel: Scheduling hint, not used for execution
        transactional: Wrap ``up`` in a transaction where DDL is transactional
        replaces: Versions a squash baseline stands for
        schema_snapshot: Schema (as a dict) after this migration, if known
    """

    version: str = ""
    description: str = ""
    is_destructive: bool = False
    requires_backup: bool = False
    auto_rollback_on_error: bool = True
    depends_on: Sequence[str] = ()
    conflicts_with: Sequence[str] = ()
    can_run_in_parallel: bool = True
    transactional: bool = False
    replaces: Sequence[str] = ()
    schema_snapshot: Optional[Dict[str, Any]] = None

    #: File the migration was loaded from, set by the loader
    source: Optional[Path] = None

    async def up(self, db: StrataDatabase) -> None:
        raise NotImplementedError(f"{type(self).__name__}.up() is not implemented")

    async def down(self, db: StrataDatabase) -> None:
        raise NotImplementedError(f"{type(self).__name__}.down() is not implemented")

    async def dry_run(self, db: StrataDatabase) -> List[str]:
        """SQL that ``up`` would run, when it can be known in advance."""
        return []

    def validate(self, schema: Schema) -> ValidationResult:
        return ValidationResult()

    def snapshot(self) -> Optional[Schema]:
        """The schema this migration leaves behind, when recorded."""
        if self.schema_snapshot is None:
            return None
        return Schema.from_dict(self.schema_snapshot)

    @property
    def name(self) -> str:
        return self.description or type(self).__name__

    def __repr__(self) -> str:
        return f"<{type(self).__name__} version={self.version!r}>"


def is_comment(statement: str) -> bool:
    """True when every non-blank line is a ``--`` comment."""
    lines = [line.strip() for line in statement.splitlines() if line.strip()]
    return all(line.startswith("--") for line in lines)


def split_sql_statements(text: str) -> List[str]:
    """
    Split a SQL script on ``";\\n"``.

    The segment after the trailing separator is discarded when blank.
    """
    segments = text.replace("\r\n", "\n").split(STATEMENT_SEPARATOR)
    if segments and not segments[-1].strip():
        segments.pop()
    return [s.strip() for s in segments if s.strip()]


async def execute_statements(db: StrataDatabase, statements: Sequence[str]) -> int:
    """
    Run statements one at a time, skipping comments.

    There is no cross-statement atomicity: a failure leaves the earlier
    statements applied.
    """
    executed = 0
    for statement in statements:
        statement = statement.strip()
        if not statement or is_comment(statement):
            continue
        await db.execute(statement)
        executed += 1
    return executed


def has_destructive_sql(statements: Sequence[str]) -> bool:
    return any(
        _DESTRUCTIVE_SQL.search(s) for s in statements if not is_comment(s)
    )


def version_from_filename(stem: str) -> str:
    """``20260301_101500_add_email`` → ``20260301_101500``; ``migration_1700000000`` → ``1700000000``."""
    match = _TIMESTAMP_VERSION.match(stem)
    if match:
        return match.group(1)
    match = _LEGACY_VERSION.match(stem)
    if match:
        return match.group(1)
    return stem


class SQLMigration(Migration):
    """Migration defined by lists of SQL statements."""

    up_statements: Sequence[str] = ()
    down_statements: Sequence[str] = ()

    async def up(self, db: StrataDatabase) -> None:
        await execute_statements(db, self.up_statements)

    async def down(self, db: StrataDatabase) -> None:
        await execute_statements(db, self.down_statements)

    async def dry_run(self, db: StrataDatabase) -> List[str]:
        return list(self.up_statements)


class SQLFileMigration(SQLMigration):
    """
    Migration read from a ``.sql`` file.

    ``<stem>.down.sql`` beside the file supplies the down script; without
    it the migration is irreversible.
    """

    def __init__(self, path: str | Path):
        self.source = Path(path)
        stem = self.source.name[: -len(".sql")]
        self.version = version_from_filename(stem)
        slug = stem[len(self.version):].strip("_")
        self.description = slug.replace("_", " ") if slug else stem

        self.up_statements = split_sql_statements(self.source.read_text(encoding="utf-8"))
        self.down_path = self.source.with_name(f"{stem}.down.sql")
        if self.down_path.exists():
            self.down_statements = split_sql_statements(self.down_path.read_text(encoding="utf-8"))
        else:
            self.down_statements = None

        self.is_destructive = has_destructive_sql(self.up_statements)
        self.requires_backup = self.is_destructive

    @property
    def reversible(self) -> bool:
        return self.down_statements is not None

    async def down(self, db: StrataDatabase) -> None:
        if self.down_statements is None:
            raise MigrationExecutionFault(
                self.version,
                "down",
                f"no down script ({self.down_path.name}) for {self.source.name}",
            )
        await execute_statements(db, self.down_statements)
