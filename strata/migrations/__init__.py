"""
Strata Migrations - schema diffing, generation and safe execution.

Pipeline:
    EntitySchemaBuilder ─┐
                         ├─► SchemaDiffer (+ RenameDetector) ─► MigrationGenerator ─► migration file
    SchemaIntrospector ──┘

    MigrationLoader ─► MigrationExecutor (+ MigrationLock, BackupManager, ledger)
                   └─► MigrationSquasher

Public API:
    - Schema model: Schema, TableDefinition, ColumnDefinition, IndexDefinition,
      ForeignKeyDefinition, SchemaDiffResult
    - Schema sources: EntitySchemaBuilder, EntityDescription, EntityColumn, SchemaIntrospector
    - Diffing: SchemaDiffer, RenameDetector
    - Migrations: Migration, SQLMigration, SQLFileMigration, MigrationLoader, MigrationGenerator
    - Running: MigrationExecutor, MigrationLock, MigrationLedger, BackupManager, MigrationSquasher
"""

from .schema import (
    ChangeType,
    ColumnChange,
    ColumnDefinition,
    ColumnRef,
    ColumnRename,
    ForeignKeyDefinition,
    ForeignKeyRef,
    IndexDefinition,
    IndexRef,
    Schema,
    SchemaDiffResult,
    TableDefinition,
    TableRename,
    normalize_type,
    parse_type,
)
from .entities import (
    EntityColumn,
    EntityDescription,
    EntitySchemaBuilder,
    load_entities,
)
from .introspector import SchemaIntrospector
from .renames import RENAME_THRESHOLD, RenameCandidate, RenameDetector
from .differ import SchemaDiffer
from .sqlgen import SQLBuilder
from .generator import MigrationGenerator, MigrationPlan
from .migration import (
    Migration,
    SQLFileMigration,
    SQLMigration,
    ValidationResult,
    split_sql_statements,
)
from .loader import MigrationLoader
from .ledger import LOCK_TABLE, MIGRATIONS_TABLE, MigrationLedger, MigrationRecord
from .lock import MigrationLock
from .validator import MigrationValidator, plan_migrations
from .backup import (
    BackupInfo,
    BackupManager,
    DumpDriver,
    MySQLDumpDriver,
    SQLiteDumpDriver,
    dump_driver_for,
)
from .executor import MigrationExecutor, RunResult, RunState
from .squasher import MigrationSquasher, SquashResult

__all__ = [
    # Schema model
    "Schema",
    "TableDefinition",
    "ColumnDefinition",
    "IndexDefinition",
    "ForeignKeyDefinition",
    "SchemaDiffResult",
    "ChangeType",
    "TableRename",
    "ColumnRef",
    "ColumnChange",
    "ColumnRename",
    "IndexRef",
    "ForeignKeyRef",
    "normalize_type",
    "parse_type",
    # Schema sources
    "EntityColumn",
    "EntityDescription",
    "EntitySchemaBuilder",
    "load_entities",
    "SchemaIntrospector",
    # Diffing
    "RENAME_THRESHOLD",
    "RenameCandidate",
    "RenameDetector",
    "SchemaDiffer",
    # Generation
    "SQLBuilder",
    "MigrationGenerator",
    "MigrationPlan",
    # Migrations
    "Migration",
    "SQLMigration",
    "SQLFileMigration",
    "ValidationResult",
    "split_sql_statements",
    "MigrationLoader",
    # Running
    "MIGRATIONS_TABLE",
    "LOCK_TABLE",
    "MigrationLedger",
    "MigrationRecord",
    "MigrationLock",
    "MigrationValidator",
    "plan_migrations",
    "BackupInfo",
    "BackupManager",
    "DumpDriver",
    "SQLiteDumpDriver",
    "MySQLDumpDriver",
    "dump_driver_for",
    "MigrationExecutor",
    "RunResult",
    "RunState",
    "MigrationSquasher",
    "SquashResult",
]
