"""
Strata Migration Ledger - persistent record of applied migrations.

Provides:
- MIGRATIONS_TABLE / LOCK_TABLE: bookkeeping table names
- MigrationRecord: one ledger row
- MigrationLedger: DDL bootstrap and the queries the executor and
  squasher need (applied rows, batches, squash flags, backup paths)

Both bookkeeping tables are declared as ``TableDefinition`` values and
rendered through ``SQLBuilder``, so they follow the dialect in use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from ..db.engine import StrataDatabase
from .schema import ColumnDefinition, IndexDefinition, TableDefinition
from .sqlgen import SQLBuilder

logger = logging.getLogger("strata.migrations.ledger")

MIGRATIONS_TABLE = "migrations"
LOCK_TABLE = "migration_lock"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

MIGRATIONS_TABLE_DEF = TableDefinition(
    name=MIGRATIONS_TABLE,
    columns=[
        ColumnDefinition("version", "varchar", 255, nullable=False, primary=True),
        ColumnDefinition("executed_at", "datetime", nullable=False),
        ColumnDefinition("execution_time", "int", nullable=False, default="0"),
        ColumnDefinition("batch", "int", nullable=False),
        ColumnDefinition("squashed", "boolean", nullable=False, default="0"),
        ColumnDefinition("backup_path", "varchar", 1024),
    ],
    indexes=[
        IndexDefinition("idx_migrations_batch", ["batch"]),
        IndexDefinition("idx_migrations_squashed", ["squashed"]),
    ],
)

LOCK_TABLE_DEF = TableDefinition(
    name=LOCK_TABLE,
    columns=[
        ColumnDefinition("id", "int", nullable=False, primary=True, auto_increment=True),
        ColumnDefinition("locked_at", "datetime", nullable=False),
        ColumnDefinition("hostname", "varchar", 255, nullable=False),
        ColumnDefinition("process_id", "int", nullable=False),
    ],
)


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """UTC timestamp string as stored in ``executed_at`` / ``locked_at``."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.strptime(str(value)[:19], TIMESTAMP_FORMAT)
        except ValueError:
            return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class MigrationRecord:
    """A ledger row."""

    version: str
    executed_at: Optional[datetime]
    execution_time: int
    batch: int
    squashed: bool = False
    backup_path: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> MigrationRecord:
        return cls(
            version=str(row["version"]),
            executed_at=parse_timestamp(row.get("executed_at")),
            execution_time=int(row.get("execution_time") or 0),
            batch=int(row["batch"]),
            squashed=bool(row.get("squashed")),
            backup_path=row.get("backup_path"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "executed_at": utc_timestamp(self.executed_at) if self.executed_at else None,
            "execution_time": self.execution_time,
            "batch": self.batch,
            "squashed": self.squashed,
            "backup_path": self.backup_path,
        }


class MigrationLedger:
    """
    Queries over the ``migrations`` table.

    Usage:
        ledger = MigrationLedger(db)
        await ledger.ensure_tables()
        batch = await ledger.next_batch()
        await ledger.record("20260101_120000_create_users", 12, batch)
    """

    _COLUMNS = "version, executed_at, execution_time, batch, squashed, backup_path"

    def __init__(self, db: StrataDatabase):
        self.db = db

    @property
    def builder(self) -> SQLBuilder:
        return SQLBuilder(self.db.dialect)

    async def ensure_tables(self) -> None:
        """Create the ledger and lock tables if they do not exist."""
        builder = self.builder
        for table in (MIGRATIONS_TABLE_DEF, LOCK_TABLE_DEF):
            for statement in builder.table_statements(table, if_not_exists=True):
                await self.db.execute(statement)

    # ── Reads ────────────────────────────────────────────────────────

    async def applied(self, *, include_squashed: bool = True) -> List[MigrationRecord]:
        """Applied rows ordered by batch, then version."""
        where = "" if include_squashed else " WHERE squashed = 0"
        rows = await self.db.fetch_all(
            f"SELECT {self._COLUMNS} FROM {MIGRATIONS_TABLE}{where} ORDER BY batch, version"
        )
        return [MigrationRecord.from_row(row) for row in rows]

    async def applied_versions(self) -> Set[str]:
        rows = await self.db.fetch_all(f"SELECT version FROM {MIGRATIONS_TABLE}")
        return {str(row["version"]) for row in rows}

    async def get(self, version: str) -> Optional[MigrationRecord]:
        row = await self.db.fetch_one(
            f"SELECT {self._COLUMNS} FROM {MIGRATIONS_TABLE} WHERE version = ?",
            [version],
        )
        return MigrationRecord.from_row(row) if row else None

    async def next_batch(self) -> int:
        current = await self.db.fetch_val(f"SELECT MAX(batch) FROM {MIGRATIONS_TABLE}")
        return int(current or 0) + 1

    async def backup_path_for(self, version: str) -> Optional[str]:
        record = await self.get(version)
        return record.backup_path if record else None

    # ── Writes ───────────────────────────────────────────────────────

    async def record(
        self,
        version: str,
        execution_time: int,
        batch: int,
        *,
        backup_path: Optional[str] = None,
        squashed: bool = False,
    ) -> None:
        await self.db.execute(
            f"INSERT INTO {MIGRATIONS_TABLE} "
            f"(version, executed_at, execution_time, batch, squashed, backup_path) "
            f"VALUES (?, ?, ?, ?, ?, ?)",
            [version, utc_timestamp(), int(execution_time), batch, 1 if squashed else 0, backup_path],
        )
        logger.debug(f"Ledger: recorded {version} (batch {batch}, {execution_time}ms)")

    async def delete(self, version: str) -> None:
        await self.db.execute(f"DELETE FROM {MIGRATIONS_TABLE} WHERE version = ?", [version])
        logger.debug(f"Ledger: removed {version}")

    async def delete_many(self, versions: Iterable[str]) -> None:
        for version in versions:
            await self.delete(version)

    async def mark_squashed(self, versions: Iterable[str]) -> None:
        for version in versions:
            await self.db.execute(
                f"UPDATE {MIGRATIONS_TABLE} SET squashed = 1 WHERE version = ?",
                [version],
            )
