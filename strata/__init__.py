"""
Strata - schema migrations for code-first applications.

Derives the desired schema from declared entities, diffs it against the
live database (telling renames apart from add/drop pairs), writes
ordered and reversible migrations, and runs them under a database lock
with backups guarding destructive changes.

Usage:
    from strata import StrataDatabase, MigrationExecutor, MigrationLoader

    db = StrataDatabase("sqlite:///app.db")
    await db.connect()
    executor = MigrationExecutor(db, MigrationLoader("migrations").load())
    await executor.migrate()
"""

__version__ = "0.3.0"

from .config import ConfigLoader, StrataConfig
from .db import StrataDatabase
from .faults import (
    Fault,
    FaultDomain,
    Severity,
    LockAcquisitionFault,
    MigrationValidationFault,
    MigrationExecutionFault,
    BackupFault,
    RestoreFault,
)
from .migrations import (
    Schema,
    TableDefinition,
    ColumnDefinition,
    IndexDefinition,
    ForeignKeyDefinition,
    SchemaDiffResult,
    EntitySchemaBuilder,
    SchemaIntrospector,
    SchemaDiffer,
    RenameDetector,
    MigrationGenerator,
    Migration,
    SQLMigration,
    MigrationLoader,
    MigrationExecutor,
    MigrationLock,
    BackupManager,
    MigrationSquasher,
)

__all__ = [
    "__version__",
    "ConfigLoader",
    "StrataConfig",
    "StrataDatabase",
    "Fault",
    "FaultDomain",
    "Severity",
    "LockAcquisitionFault",
    "MigrationValidationFault",
    "MigrationExecutionFault",
    "BackupFault",
    "RestoreFault",
    "Schema",
    "TableDefinition",
    "ColumnDefinition",
    "IndexDefinition",
    "ForeignKeyDefinition",
    "SchemaDiffResult",
    "EntitySchemaBuilder",
    "SchemaIntrospector",
    "SchemaDiffer",
    "RenameDetector",
    "MigrationGenerator",
    "Migration",
    "SQLMigration",
    "MigrationLoader",
    "MigrationExecutor",
    "MigrationLock",
    "BackupManager",
    "MigrationSquasher",
]
