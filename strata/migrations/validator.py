"""
Strata Migration Validator - run planning and safety analysis.

Provides:
- plan_migrations(): dependency/conflict checks and execution order
  for a pending set
- MigrationValidator: per-migration safety report (the migration's own
  ``validate`` plus warnings about data loss and expensive ALTERs)

Planning errors are fatal and raised before any SQL runs; safety
warnings are informational.
"""

from __future__ import annotations

import heapq
import logging
import re
from typing import Dict, Iterable, List, Optional, Set

from ..db.engine import StrataDatabase
from ..faults.domains import MigrationValidationFault
from .migration import Migration, ValidationResult, is_comment
from .schema import Schema
from .sqlgen import SQLBuilder

logger = logging.getLogger("strata.migrations.validator")

LARGE_TABLE_ROWS = 100_000

_IDENT = r"[`\"]?([\w$]+)[`\"]?"
_DROP_TABLE = re.compile(rf"^\s*DROP\s+TABLE\s+(?:IF\s+EXISTS\s+)?{_IDENT}", re.IGNORECASE)
_DROP_COLUMN = re.compile(
    rf"^\s*ALTER\s+TABLE\s+{_IDENT}\s+DROP\s+(?:COLUMN\s+)?{_IDENT}", re.IGNORECASE,
)
_ADD_COLUMN = re.compile(
    rf"^\s*ALTER\s+TABLE\s+{_IDENT}\s+ADD\s+(?:COLUMN\s+)?{_IDENT}\s+(.*)$",
    re.IGNORECASE | re.DOTALL,
)
_ALTER_TABLE = re.compile(rf"^\s*ALTER\s+TABLE\s+{_IDENT}", re.IGNORECASE)


def plan_migrations(
    pending: Iterable[Migration],
    applied_versions: Iterable[str],
    covered: Optional[Dict[str, str]] = None,
) -> List[Migration]:
    """
    Order a pending set for execution.

    Every ``depends_on`` version must be applied already or be part of
    the pending set; no two pending migrations may conflict (in either
    direction). The result is a topological order over dependency
    edges, ties broken by version.

    ``covered`` maps versions replaced by a pending squash baseline to
    that baseline. A dependency on a covered version is satisfied by the
    baseline, which then runs first.

    Raises:
        MigrationValidationFault: Unmet dependency, conflict or cycle
    """
    pending = sorted(pending, key=lambda m: m.version)
    applied = set(applied_versions)
    by_version: Dict[str, Migration] = {m.version: m for m in pending}
    covered = {v: b for v, b in (covered or {}).items() if b in by_version}
    errors: List[str] = []

    for migration in pending:
        for dep in migration.depends_on:
            if dep not in applied and dep not in by_version and dep not in covered:
                errors.append(
                    f"{migration.version} depends on {dep}, which is neither applied nor pending"
                )

    reported: Set[frozenset] = set()
    for migration in pending:
        for other in migration.conflicts_with:
            pair = frozenset((migration.version, other))
            if other in by_version and other != migration.version and pair not in reported:
                reported.add(pair)
                errors.append(f"{migration.version} conflicts with {other}; both are pending")

    if errors:
        raise MigrationValidationFault(errors)

    # Kahn's algorithm over pending-to-pending dependency edges
    dependents: Dict[str, List[str]] = {v: [] for v in by_version}
    in_degree: Dict[str, int] = {v: 0 for v in by_version}
    for migration in pending:
        parents = set()
        for dep in migration.depends_on:
            if dep in by_version:
                parents.add(dep)
            elif dep in covered and dep not in applied and covered[dep] != migration.version:
                parents.add(covered[dep])
        for parent in parents:
            dependents[parent].append(migration.version)
            in_degree[migration.version] += 1

    ready = [v for v, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)
    ordered: List[Migration] = []
    while ready:
        version = heapq.heappop(ready)
        ordered.append(by_version[version])
        for child in dependents[version]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                heapq.heappush(ready, child)

    if len(ordered) != len(pending):
        cycle = sorted(v for v, degree in in_degree.items() if degree > 0)
        raise MigrationValidationFault([f"dependency cycle between {', '.join(cycle)}"])

    return ordered


class MigrationValidator:
    """
    Safety analysis of a single migration against the live database.

    Usage:
        report = await MigrationValidator(db).analyze(migration, schema)
        for warning in report.warnings:
            ...
    """

    def __init__(self, db: StrataDatabase, *, large_table_rows: int = LARGE_TABLE_ROWS):
        self.db = db
        self.large_table_rows = large_table_rows
        self._row_counts: Dict[str, int] = {}

    async def analyze(self, migration: Migration, schema: Schema) -> ValidationResult:
        result = ValidationResult()
        result.merge(migration.validate(schema))

        statements = await migration.dry_run(self.db)
        for statement in statements:
            if is_comment(statement):
                if "Requires table rebuild" in statement:
                    result.add_warning(statement.strip().lstrip("-").strip())
                continue
            await self._check_statement(statement, schema, result)

        if migration.is_destructive and not migration.requires_backup:
            result.add_warning(f"{migration.version} is destructive but does not require a backup")
        return result

    async def _check_statement(self, statement: str, schema: Schema, result: ValidationResult) -> None:
        match = _DROP_TABLE.match(statement)
        if match:
            result.add_warning(f"DROP TABLE {match.group(1)} permanently deletes its data")
            return

        match = _ADD_COLUMN.match(statement)
        if match:
            table, column, definition = match.groups()
            upper = definition.upper()
            if (
                "NOT NULL" in upper
                and "DEFAULT" not in upper
                and "PRIMARY KEY" not in upper
                and await self._row_count(table, schema)
            ):
                result.add_warning(
                    f"Adding NOT NULL column {table}.{column} without a DEFAULT "
                    f"to a table that holds rows will fail"
                )
        else:
            match = _DROP_COLUMN.match(statement)
            if match and not re.search(r"\bDROP\s+(INDEX|FOREIGN|PRIMARY|CONSTRAINT)\b", statement, re.IGNORECASE):
                result.add_warning(f"DROP COLUMN {match.group(1)}.{match.group(2)} permanently deletes its data")

        match = _ALTER_TABLE.match(statement)
        if match:
            table = match.group(1)
            rows = await self._row_count(table, schema)
            if rows > self.large_table_rows:
                result.add_warning(f"ALTER TABLE on {table} ({rows} rows) may lock the table for a long time")

    async def _row_count(self, table: str, schema: Schema) -> int:
        if not schema.has_table(table):
            return 0
        if table not in self._row_counts:
            quoted = SQLBuilder(self.db.dialect).quote(table)
            count: Optional[int] = await self.db.fetch_val(f"SELECT COUNT(*) FROM {quoted}")
            self._row_counts[table] = int(count or 0)
        return self._row_counts[table]
