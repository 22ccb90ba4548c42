"""
StrataFaults - Domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- MODEL faults (schema, queries, connections)
- MIGRATION faults (lock, validation, execution, loading)
- IO faults (backup, restore)
"""

from typing import Any, Optional, Sequence
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            public=False,
            metadata=metadata,
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# MODEL Faults (schema / database)
# ============================================================================

class ModelFault(Fault):
    """Base class for schema and database faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        public: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MODEL,
            severity=severity,
            retryable=retryable,
            public=public,
            metadata=metadata,
        )


class QueryFault(ModelFault):
    """Query execution failed."""

    def __init__(self, model: str, operation: str, reason: str, **kwargs):
        super().__init__(
            code="QUERY_FAILED",
            message=f"Query on '{model}' ({operation}) failed: {reason}",
            retryable=True,
            metadata={"model": model, "operation": operation, "reason": reason, **kwargs.get("metadata", {})},
        )


class DatabaseConnectionFault(ModelFault):
    """Database connection failed."""

    def __init__(self, url: str, reason: str, **kwargs):
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=f"Database connection failed ({url}): {reason}",
            severity=Severity.FATAL,
            retryable=True,
            metadata={"url": url, "reason": reason, **kwargs.get("metadata", {})},
        )


class SchemaFault(ModelFault):
    """Schema definition or introspection is inconsistent."""

    def __init__(self, table: str, reason: str, **kwargs):
        super().__init__(
            code="SCHEMA_FAULT",
            message=f"Schema error for table '{table}': {reason}",
            severity=Severity.FATAL,
            metadata={"table": table, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# MIGRATION Faults
# ============================================================================

class MigrationFault(Fault):
    """Base class for migration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        retryable: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MIGRATION,
            severity=severity,
            retryable=retryable,
            public=False,
            metadata=metadata,
        )


class LockAcquisitionFault(MigrationFault):
    """Another migration run holds the migration lock."""

    def __init__(self, holder: Optional[dict[str, Any]], reason: Optional[str] = None, **kwargs):
        if reason is None:
            if holder:
                reason = (
                    f"locked by {holder.get('hostname')} (PID {holder.get('process_id')}) "
                    f"since {holder.get('locked_at')}"
                )
            else:
                reason = "lock row could not be created"
        super().__init__(
            code="MIGRATION_LOCKED",
            message=f"Migrations are locked: {reason}",
            metadata={"holder": holder, "reason": reason, **kwargs.get("metadata", {})},
        )


class MigrationValidationFault(MigrationFault):
    """Pending migrations cannot be planned (dependency, conflict, squash range)."""

    def __init__(self, errors: Sequence[str], **kwargs):
        errors = list(errors)
        super().__init__(
            code="MIGRATION_INVALID",
            message="Migration validation failed: " + "; ".join(errors),
            metadata={"errors": errors, **kwargs.get("metadata", {})},
        )
        self.errors = errors


class MigrationExecutionFault(MigrationFault):
    """A migration's up() or down() raised."""

    def __init__(
        self,
        version: str,
        phase: str,
        reason: str,
        *,
        rolled_back: bool = False,
        **kwargs,
    ):
        suffix = " (rolled back)" if rolled_back else ""
        super().__init__(
            code="MIGRATION_FAILED",
            message=f"Migration '{version}' failed during {phase}: {reason}{suffix}",
            severity=Severity.ERROR,
            metadata={
                "version": version,
                "phase": phase,
                "reason": reason,
                "rolled_back": rolled_back,
                **kwargs.get("metadata", {}),
            },
        )
        self.version = version
        self.phase = phase
        self.rolled_back = rolled_back


class MigrationLoadFault(MigrationFault):
    """A migration file could not be loaded."""

    def __init__(self, path: str, reason: str, **kwargs):
        super().__init__(
            code="MIGRATION_LOAD_FAILED",
            message=f"Cannot load migration '{path}': {reason}",
            severity=Severity.ERROR,
            metadata={"path": path, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# IO Faults (backups)
# ============================================================================

class BackupFault(Fault):
    """Backup creation failed; the guarded migration must not run."""

    def __init__(self, version: str, reason: str, **kwargs):
        super().__init__(
            code="BACKUP_FAILED",
            message=f"Backup for migration '{version}' failed: {reason}",
            domain=FaultDomain.IO,
            severity=Severity.FATAL,
            retryable=False,
            metadata={"version": version, "reason": reason, **kwargs.get("metadata", {})},
        )
        self.version = version


class RestoreFault(Fault):
    """Backup decompression or replay failed."""

    def __init__(self, path: str, reason: str, **kwargs):
        super().__init__(
            code="RESTORE_FAILED",
            message=f"Restore from '{path}' failed: {reason}",
            domain=FaultDomain.IO,
            severity=Severity.FATAL,
            retryable=False,
            metadata={"path": path, "reason": reason, **kwargs.get("metadata", {})},
        )


# ── Error-name aliases ───────────────────────────────────────────────────────

LockAcquisitionError = LockAcquisitionFault
ValidationError = MigrationValidationFault
ExecutionError = MigrationExecutionFault
BackupError = BackupFault
RestoreError = RestoreFault
