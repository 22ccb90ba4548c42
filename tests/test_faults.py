"""
Tests for the fault taxonomy.
"""

import pytest

from strata.faults import (
    BackupError,
    BackupFault,
    ConfigInvalidFault,
    DatabaseConnectionFault,
    ExecutionError,
    Fault,
    FaultDomain,
    LockAcquisitionError,
    LockAcquisitionFault,
    MigrationExecutionFault,
    MigrationValidationFault,
    RestoreError,
    RestoreFault,
    Severity,
    ValidationError,
)


class TestFaultBase:

    def test_requires_code_message_and_domain(self):
        with pytest.raises(TypeError):
            Fault(code="X")

    def test_str_and_dict(self):
        fault = Fault("CUSTOM", "went wrong", domain=FaultDomain.IO, metadata={"a": 1})
        assert str(fault) == "[CUSTOM] went wrong"
        assert fault.to_dict() == {
            "code": "CUSTOM",
            "message": "went wrong",
            "domain": "io",
            "severity": "error",
            "retryable": False,
            "public": False,
            "metadata": {"a": 1},
        }

    def test_domain_defaults(self):
        assert Fault("X", "m", domain=FaultDomain.MIGRATION).severity == Severity.FATAL
        assert Fault("X", "m", domain=FaultDomain("custom")).severity == Severity.ERROR

    def test_domain_equality(self):
        assert FaultDomain.CONFIG == "config"
        assert FaultDomain("io") == FaultDomain.IO


class TestDomainFaults:

    def test_config_invalid(self):
        fault = ConfigInvalidFault("backups.retention_days", "must be positive")
        assert fault.code == "CONFIG_INVALID"
        assert fault.domain == FaultDomain.CONFIG
        assert fault.metadata["key"] == "backups.retention_days"

    def test_connection_is_retryable(self):
        fault = DatabaseConnectionFault("sqlite:///x.db", "disk I/O error")
        assert fault.retryable
        assert fault.severity == Severity.FATAL

    def test_lock_holder_message(self):
        holder = {"hostname": "build-01", "process_id": 4242, "locked_at": "2026-03-01 10:00:00"}
        fault = LockAcquisitionFault(holder)
        assert fault.code == "MIGRATION_LOCKED"
        assert "build-01 (PID 4242)" in fault.message
        assert fault.metadata["holder"] == holder

    def test_lock_without_holder(self):
        assert "could not be created" in LockAcquisitionFault(None).message

    def test_validation_errors(self):
        fault = MigrationValidationFault(["a depends on b", "c conflicts with d"])
        assert fault.errors == ["a depends on b", "c conflicts with d"]
        assert fault.message.endswith("a depends on b; c conflicts with d")

    def test_execution_rolled_back(self):
        fault = MigrationExecutionFault("20260301_000000", "up", "boom", rolled_back=True)
        assert (fault.version, fault.phase, fault.rolled_back) == ("20260301_000000", "up", True)
        assert str(fault) == "[MIGRATION_FAILED] Migration '20260301_000000' failed during up: boom (rolled back)"
        assert fault.severity == Severity.ERROR

    def test_backup_and_restore_are_io(self):
        assert BackupFault("v1", "disk full").domain == FaultDomain.IO
        assert RestoreFault("/tmp/b.sql", "bad gzip").code == "RESTORE_FAILED"

    def test_aliases(self):
        assert LockAcquisitionError is LockAcquisitionFault
        assert ValidationError is MigrationValidationFault
        assert ExecutionError is MigrationExecutionFault
        assert BackupError is BackupFault
        assert RestoreError is RestoreFault
