"""
StrataFaults - structured fault handling for the migration engine.

Errors in Strata are typed fault signals carrying a stable code, a
domain, a severity and the context needed to report them (migration
version, phase, table, backup path).

Core exports:
- Fault: Base fault class
- FaultDomain: Domain taxonomy
- Severity: Severity levels
- Domain faults for config, schema/database, migrations and backups
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    ConfigFault,
    ConfigInvalidFault,
    ModelFault,
    QueryFault,
    DatabaseConnectionFault,
    SchemaFault,
    MigrationFault,
    LockAcquisitionFault,
    MigrationValidationFault,
    MigrationExecutionFault,
    MigrationLoadFault,
    BackupFault,
    RestoreFault,
    LockAcquisitionError,
    ValidationError,
    ExecutionError,
    BackupError,
    RestoreError,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",

    # Domain faults
    "ConfigFault",
    "ConfigInvalidFault",
    "ModelFault",
    "QueryFault",
    "DatabaseConnectionFault",
    "SchemaFault",
    "MigrationFault",
    "LockAcquisitionFault",
    "MigrationValidationFault",
    "MigrationExecutionFault",
    "MigrationLoadFault",
    "BackupFault",
    "RestoreFault",

    # Aliases
    "LockAcquisitionError",
    "ValidationError",
    "ExecutionError",
    "BackupError",
    "RestoreError",
]
