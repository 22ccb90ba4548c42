"""
Strata Migration Executor - applies and rolls back migrations.

Each run walks a small state machine::

    IDLE → LOCK_ACQUIRED → VALIDATING → EXECUTING → COMMITTED | ROLLED_BACK | ABORTED → LOCK_RELEASED

Features:
- Mutual exclusion through the ``migration_lock`` row (fail fast)
- Dependency/conflict validation before any SQL runs
- Backups before migrations that require them; a failed backup aborts
  the run before ``up`` is invoked
- Per-migration auto-rollback (``down``) when ``up`` fails
- Batches: one ``migrate`` call shares one batch id, the unit of rollback
- Rollback by batch count or down to a version
- ``fresh``: drop everything and re-run all migrations

The executor never swallows errors; faults propagate with the
migration version and phase attached.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Set, Tuple

from ..db.engine import StrataDatabase
from ..faults.domains import (
    BackupFault,
    MigrationExecutionFault,
    MigrationValidationFault,
)
from .backup import BackupManager
from .introspector import SchemaIntrospector
from .ledger import LOCK_TABLE, MIGRATIONS_TABLE, MigrationLedger, MigrationRecord
from .lock import MigrationLock
from .migration import Migration
from .validator import MigrationValidator, plan_migrations

logger = logging.getLogger("strata.migrations.executor")


class RunState(str, Enum):
    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    VALIDATING = "validating"
    EXECUTING = "executing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"
    LOCK_RELEASED = "lock_released"


_OUTCOMES = (RunState.COMMITTED, RunState.ROLLED_BACK, RunState.ABORTED)


@dataclass
class RunResult:
    """What a run did. ``plan`` is filled by dry runs only."""

    state: RunState
    batch: Optional[int] = None
    applied: List[str] = field(default_factory=list)
    rolled_back: List[str] = field(default_factory=list)
    plan: List[Dict[str, Any]] = field(default_factory=list)


class MigrationExecutor:
    """
    Runs migrations against one database connection.

    Usage:
        executor = MigrationExecutor(db, MigrationLoader("migrations").load(),
                                     backup_manager=BackupManager(dump_driver_for(db)))
        result = await executor.migrate()
        await executor.rollback(steps=1)
    """

    def __init__(
        self,
        db: StrataDatabase,
        migrations: Sequence[Migration],
        *,
        backup_manager: Optional[BackupManager] = None,
        lock_stale_after: Optional[float] = None,
    ):
        self.db = db
        self.migrations = sorted(migrations, key=lambda m: m.version)
        self.backup_manager = backup_manager
        self.lock_stale_after = lock_stale_after
        self.ledger = MigrationLedger(db)

        self._by_version: Dict[str, Migration] = {m.version: m for m in self.migrations}
        self.state = RunState.IDLE
        self.transitions: List[RunState] = [RunState.IDLE]
        self.current: Optional[str] = None

    # ── State machine ────────────────────────────────────────────────

    def _reset(self) -> None:
        self.state = RunState.IDLE
        self.transitions = [RunState.IDLE]
        self.current = None

    def _transition(self, state: RunState) -> None:
        logger.debug(f"Run state: {self.state.value} → {state.value}")
        self.state = state
        self.transitions.append(state)

    @asynccontextmanager
    async def _locked(self) -> AsyncIterator[MigrationLock]:
        lock = MigrationLock(self.db, stale_after=self.lock_stale_after)
        await lock.acquire()
        self._transition(RunState.LOCK_ACQUIRED)
        try:
            yield lock
        except Exception:
            if self.state not in _OUTCOMES:
                self._transition(RunState.ABORTED)
            raise
        finally:
            self.current = None
            await lock.release()
            self._transition(RunState.LOCK_RELEASED)

    # ── Pending set ──────────────────────────────────────────────────

    def _pending(self, applied: Set[str]) -> List[Migration]:
        return self._pending_and_covered(applied)[0]

    def _pending_and_covered(self, applied: Set[str]) -> Tuple[List[Migration], Dict[str, str]]:
        """Pending migrations, and the versions pending baselines stand in for."""
        candidates = [m for m in self.migrations if m.version not in applied]
        covered: Dict[str, str] = {}
        skipped: Set[str] = set()
        for migration in candidates:
            if not migration.replaces:
                continue
            if any(v in applied for v in migration.replaces):
                # Part of the squashed range already ran here; keep the originals
                logger.warning(
                    f"Baseline {migration.version} skipped: some of the migrations it "
                    f"replaces are already applied"
                )
                skipped.add(migration.version)
            else:
                covered.update((v, migration.version) for v in migration.replaces)
        pending = [m for m in candidates if m.version not in covered and m.version not in skipped]
        return pending, covered

    async def pending(self) -> List[Migration]:
        if not await self.db.table_exists(MIGRATIONS_TABLE):
            return self._pending(set())
        return self._pending(await self.ledger.applied_versions())

    # ── Migrate ──────────────────────────────────────────────────────

    async def migrate(self, *, dry_run: bool = False) -> RunResult:
        """
        Apply every pending migration as one batch.

        Raises:
            LockAcquisitionFault: Another run holds the lock
            MigrationValidationFault: Unmet dependency, conflict or invalid migration
            BackupFault: A required backup could not be written
            MigrationExecutionFault: A migration's ``up`` failed
        """
        self._reset()
        if dry_run:
            return await self._dry_run()

        await self.ledger.ensure_tables()
        async with self._locked():
            result = await self._migrate_locked()
        return result

    async def _migrate_locked(self) -> RunResult:
        self._transition(RunState.VALIDATING)
        applied = await self.ledger.applied_versions()
        pending, covered = self._pending_and_covered(applied)
        ordered = plan_migrations(pending, applied, covered)

        if ordered:
            schema = await SchemaIntrospector(self.db).introspect()
            errors: List[str] = []
            for migration in ordered:
                report = migration.validate(schema)
                errors.extend(f"{migration.version}: {e}" for e in report.errors)
                for warning in report.warnings:
                    logger.warning(f"{migration.version}: {warning}")
            if errors:
                raise MigrationValidationFault(errors)

        if not ordered:
            logger.info("No pending migrations")
            self._transition(RunState.COMMITTED)
            return RunResult(state=RunState.COMMITTED)

        batch = await self.ledger.next_batch()
        self._transition(RunState.EXECUTING)
        logger.info(f"Applying {len(ordered)} migration(s) as batch {batch}")

        result = RunResult(state=RunState.EXECUTING, batch=batch)
        for migration in ordered:
            self.current = migration.version
            await self._apply(migration, batch)
            result.applied.append(migration.version)

        self._transition(RunState.COMMITTED)
        result.state = RunState.COMMITTED
        return result

    async def _apply(self, migration: Migration, batch: int) -> None:
        version = migration.version
        backup_path: Optional[str] = None
        if migration.requires_backup:
            if self.backup_manager is None:
                raise BackupFault(version, "migration requires a backup but no backup manager is configured")
            backup_path = await self.backup_manager.create_backup(version)

        start = time.perf_counter()
        in_transaction = migration.transactional and self.db.capabilities.supports_transactional_ddl
        try:
            if in_transaction:
                async with self.db.transaction():
                    await migration.up(self.db)
                    await self.ledger.record(
                        version, _elapsed_ms(start), batch, backup_path=backup_path,
                    )
            else:
                await migration.up(self.db)
        except Exception as exc:
            rolled_back = in_transaction
            metadata: Dict[str, Any] = {"batch": batch, "backup_path": backup_path}
            if not in_transaction and migration.auto_rollback_on_error:
                try:
                    await migration.down(self.db)
                    rolled_back = True
                except Exception as down_exc:
                    logger.error(f"Auto-rollback of {version} failed: {down_exc}")
                    metadata["down_error"] = str(down_exc)
            logger.error(f"Migration {version} failed: {exc}")
            raise MigrationExecutionFault(
                version, "up", str(exc), rolled_back=rolled_back, metadata=metadata,
            ) from exc

        elapsed = _elapsed_ms(start)
        if not in_transaction:
            await self.ledger.record(version, elapsed, batch, backup_path=backup_path)
        logger.info(f"Applied migration: {version} ({elapsed}ms)")

    async def _dry_run(self) -> RunResult:
        """SQL and safety report per pending migration; takes no lock, runs nothing."""
        applied: Set[str] = set()
        if await self.db.table_exists(MIGRATIONS_TABLE):
            applied = await self.ledger.applied_versions()
        pending, covered = self._pending_and_covered(applied)
        ordered = plan_migrations(pending, applied, covered)

        schema = await SchemaIntrospector(self.db).introspect()
        validator = MigrationValidator(self.db)
        plan: List[Dict[str, Any]] = []
        for migration in ordered:
            report = await validator.analyze(migration, schema)
            for warning in report.warnings:
                logger.warning(f"{migration.version}: {warning}")
            plan.append({
                "version": migration.version,
                "description": migration.name,
                "sql": await migration.dry_run(self.db),
                "is_destructive": migration.is_destructive,
                "requires_backup": migration.requires_backup,
                "errors": list(report.errors),
                "warnings": list(report.warnings),
            })
        return RunResult(state=self.state, plan=plan)

    # ── Rollback ─────────────────────────────────────────────────────

    async def rollback(self, steps: int = 1, version: Optional[str] = None) -> RunResult:
        """
        Undo the last ``steps`` batches, or every migration newer than ``version``.

        Squashed rows are never rolled back individually; rolling back a
        squash baseline removes the rows it replaces as well.
        """
        self._reset()
        if version is None and steps < 1:
            raise MigrationValidationFault([f"steps must be at least 1 (got {steps})"])

        await self.ledger.ensure_tables()
        async with self._locked():
            self._transition(RunState.VALIDATING)
            records = await self.ledger.applied(include_squashed=False)
            targets = await self._rollback_targets(records, steps, version)

            missing = [r.version for r in targets if r.version not in self._by_version]
            if missing:
                raise MigrationValidationFault(
                    [f"no migration loaded for applied version {v}" for v in missing]
                )

            result = RunResult(state=RunState.EXECUTING)
            self._transition(RunState.EXECUTING)
            for record in targets:
                self.current = record.version
                await self._revert(self._by_version[record.version])
                result.rolled_back.append(record.version)

            self._transition(RunState.ROLLED_BACK)
            result.state = RunState.ROLLED_BACK
        if not result.rolled_back:
            logger.info("Nothing to roll back")
        return result

    async def _rollback_targets(
        self,
        records: List[MigrationRecord],
        steps: int,
        version: Optional[str],
    ) -> List[MigrationRecord]:
        if version is not None:
            target = await self.ledger.get(version)
            if target is None:
                raise MigrationValidationFault([f"version {version} is not applied"])
            if target.squashed:
                raise MigrationValidationFault([
                    f"version {version} is squashed into a baseline and cannot be kept "
                    f"while the baseline is rolled back"
                ])
            targets = [r for r in records if r.version > version]
            for record in targets:
                migration = self._by_version.get(record.version)
                kept = [v for v in (migration.replaces if migration else ()) if v <= version]
                if kept:
                    raise MigrationValidationFault([
                        f"rolling back baseline {record.version} would also undo "
                        f"{', '.join(kept)}, which are not newer than {version}"
                    ])
            return sorted(targets, key=lambda r: r.version, reverse=True)

        batches = sorted({r.batch for r in records}, reverse=True)[:steps]
        targets = [r for r in records if r.batch in batches]
        return sorted(targets, key=lambda r: (r.batch, r.version), reverse=True)

    async def _revert(self, migration: Migration) -> None:
        version = migration.version
        in_transaction = migration.transactional and self.db.capabilities.supports_transactional_ddl
        try:
            if in_transaction:
                async with self.db.transaction():
                    await migration.down(self.db)
                    await self._forget(migration)
            else:
                await migration.down(self.db)
        except MigrationExecutionFault:
            raise
        except Exception as exc:
            logger.error(f"Rollback of {version} failed: {exc}")
            raise MigrationExecutionFault(version, "down", str(exc)) from exc

        if not in_transaction:
            await self._forget(migration)
        logger.info(f"Rolled back migration: {version}")

    async def _forget(self, migration: Migration) -> None:
        await self.ledger.delete(migration.version)
        if migration.replaces:
            await self.ledger.delete_many(migration.replaces)

    # ── Fresh ────────────────────────────────────────────────────────

    async def fresh(self) -> RunResult:
        """Drop every table (except the lock table) and run all migrations."""
        self._reset()
        await self.ledger.ensure_tables()
        async with self._locked():
            await self._drop_all_tables()
            await self.ledger.ensure_tables()
            result = await self._migrate_locked()
        return result

    async def _drop_all_tables(self) -> None:
        tables = [t for t in await self.db.get_tables() if t != LOCK_TABLE]
        logger.warning(f"Dropping {len(tables)} table(s)")
        sqlite = self.db.dialect == "sqlite"
        await self.db.execute("PRAGMA foreign_keys=OFF" if sqlite else "SET FOREIGN_KEY_CHECKS=0")
        try:
            quote = (lambda n: f'"{n}"') if sqlite else (lambda n: f"`{n}`")
            for table in tables:
                await self.db.execute(f"DROP TABLE IF EXISTS {quote(table)}")
        finally:
            await self.db.execute("PRAGMA foreign_keys=ON" if sqlite else "SET FOREIGN_KEY_CHECKS=1")

    # ── Status ───────────────────────────────────────────────────────

    async def status(self) -> List[Dict[str, Any]]:
        """Applied and pending migrations, ordered by version."""
        records: List[MigrationRecord] = []
        if await self.db.table_exists(MIGRATIONS_TABLE):
            records = await self.ledger.applied()

        rows: List[Dict[str, Any]] = []
        for record in records:
            migration = self._by_version.get(record.version)
            rows.append({
                **record.to_dict(),
                "description": migration.name if migration else None,
                "applied": True,
                "pending": False,
                "missing": migration is None,
            })
        for migration in self._pending({r.version for r in records}):
            rows.append({
                "version": migration.version,
                "executed_at": None,
                "execution_time": None,
                "batch": None,
                "squashed": False,
                "backup_path": None,
                "description": migration.name,
                "applied": False,
                "pending": True,
                "missing": False,
            })
        rows.sort(key=lambda r: r["version"])
        return rows


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
