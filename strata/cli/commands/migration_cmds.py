"""
Migration CLI Commands - strata migrate, migration:*, restore:backup, backup:*.

Every command opens one ``StrataDatabase`` for its whole run and closes
it on the way out; the migration engine itself never prints, so all
human-facing output lives here.
"""

from __future__ import annotations

import asyncio
import os
import sys
from typing import Any, Dict, List, Optional

import click

from ...config import StrataConfig
from ..utils.colors import (
    success, error, warning, info, dim,
    badge, bullet, kv, section, table,
    _CHECK, _CROSS,
)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _backup_manager(config: StrataConfig, db):
    from strata.migrations import BackupManager, dump_driver_for

    return BackupManager(
        dump_driver_for(db),
        config.backups_dir,
        compress=config.compress_backups,
    )


def _executor(config: StrataConfig, db):
    from strata.migrations import MigrationExecutor, MigrationLoader

    return MigrationExecutor(
        db,
        MigrationLoader(config.migrations_dir).load(),
        backup_manager=_backup_manager(config, db),
        lock_stale_after=config.lock_stale_after,
    )


def _format_time(value: Any) -> str:
    if value is None:
        return "-"
    if hasattr(value, "strftime"):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(value)


# ── Commands ──────────────────────────────────────────────────────────────────


def cmd_migrate(config: StrataConfig, dry_run: bool = False, verbose: bool = False):
    """
    Apply pending migrations.

    With ``dry_run`` nothing is executed: the SQL of every pending
    migration is printed together with the safety analysis.

    Returns:
        RunResult of the run
    """
    from strata.db import StrataDatabase

    async def _run():
        db = StrataDatabase(config.database_url)
        await db.connect()
        try:
            executor = _executor(config, db)
            result = await executor.migrate(dry_run=dry_run)

            if dry_run:
                if not result.plan:
                    warning("No pending migrations.")
                for entry in result.plan:
                    section(entry["version"])
                    if entry["is_destructive"]:
                        warning("  -- destructive")
                    for sql in entry["sql"]:
                        click.echo(f"  {sql};")
                    for message in entry["warnings"]:
                        warning(f"  ! {message}")
                    for message in entry["errors"]:
                        error(f"  {_CROSS} {message}")
                return result

            if result.applied:
                success(f"{_CHECK} Applied {len(result.applied)} migration(s) in batch {result.batch}")
                if verbose:
                    for version in result.applied:
                        bullet(version)
            else:
                warning("No pending migrations.")
            return result
        finally:
            await db.disconnect()

    return asyncio.run(_run())


def cmd_generate(
    config: StrataConfig,
    slug: Optional[str] = None,
    entities: Optional[str] = None,
    verbose: bool = False,
):
    """
    Diff the declared entities against the live database and write a
    migration file.

    Returns:
        Path of the generated file, or None when the schemas match
    """
    from strata.db import StrataDatabase
    from strata.faults import ConfigInvalidFault
    from strata.migrations import (
        EntitySchemaBuilder,
        MigrationGenerator,
        RenameDetector,
        SchemaDiffer,
        SchemaIntrospector,
        load_entities,
    )

    target = entities or config.entities
    if not target:
        raise ConfigInvalidFault(
            "migrations.entities",
            "no entity source configured (pass --entities module:attribute)",
        )

    # Entity modules live in the project being migrated
    if os.getcwd() not in sys.path:
        sys.path.insert(0, os.getcwd())
    desired = EntitySchemaBuilder(load_entities(target)).build()

    async def _run():
        db = StrataDatabase(config.database_url)
        await db.connect()
        try:
            current = await SchemaIntrospector(db).introspect()
            generator = MigrationGenerator(
                db.dialect,
                config.migrations_dir,
                differ=SchemaDiffer(rename_detector=RenameDetector(config.rename_threshold)),
            )
            path = generator.generate(current, desired, slug)
            if path is None:
                warning("No schema changes detected.")
            else:
                success(f"{_CHECK} Generated {path.name}")
                if verbose:
                    kv("Location", str(path))
            return path
        finally:
            await db.disconnect()

    return asyncio.run(_run())


def cmd_status(config: StrataConfig, verbose: bool = False) -> List[Dict[str, Any]]:
    """Print the applied/pending table and return its rows."""
    from strata.db import StrataDatabase

    async def _run():
        db = StrataDatabase(config.database_url)
        await db.connect()
        try:
            return await _executor(config, db).status()
        finally:
            await db.disconnect()

    rows = asyncio.run(_run())
    if not rows:
        warning("No migrations found.")
        return rows

    display = []
    for row in rows:
        if row["pending"]:
            state = badge("pending", style="skip")
        elif row["missing"]:
            state = badge("missing", style="warn")
        elif row["squashed"]:
            state = badge("squashed", style="info")
        else:
            state = badge("applied", style="ok")
        display.append([
            row["version"],
            str(row["batch"]) if row["batch"] is not None else "-",
            _format_time(row["executed_at"]),
            state,
        ])
    table(["Version", "Batch", "Executed at", "Status"], display)

    pending = sum(1 for r in rows if r["pending"])
    click.echo()
    dim(f"  {len(rows) - pending} applied, {pending} pending")
    return rows


def cmd_rollback(
    config: StrataConfig,
    steps: int = 1,
    version: Optional[str] = None,
    verbose: bool = False,
):
    from strata.db import StrataDatabase

    async def _run():
        db = StrataDatabase(config.database_url)
        await db.connect()
        try:
            result = await _executor(config, db).rollback(steps=steps, version=version)
            if result.rolled_back:
                success(f"{_CHECK} Rolled back {len(result.rolled_back)} migration(s)")
                for rolled in result.rolled_back:
                    bullet(rolled)
            else:
                warning("Nothing to roll back.")
            return result
        finally:
            await db.disconnect()

    return asyncio.run(_run())


def cmd_fresh(config: StrataConfig, verbose: bool = False):
    """Drop every table and re-run all migrations."""
    from strata.db import StrataDatabase

    async def _run():
        db = StrataDatabase(config.database_url)
        await db.connect()
        try:
            result = await _executor(config, db).fresh()
            success(f"{_CHECK} Dropped all tables and applied {len(result.applied)} migration(s)")
            return result
        finally:
            await db.disconnect()

    return asyncio.run(_run())


def cmd_squash(config: StrataConfig, target: Optional[str] = None, verbose: bool = False):
    from strata.db import StrataDatabase
    from strata.migrations import MigrationLoader, MigrationSquasher

    async def _run():
        db = StrataDatabase(config.database_url)
        await db.connect()
        try:
            squasher = MigrationSquasher(
                db,
                MigrationLoader(config.migrations_dir).load(),
                migrations_dir=config.migrations_dir,
                lock_stale_after=config.lock_stale_after,
            )
            result = await squasher.squash(target)
            if result is None:
                warning("Nothing to squash (need at least two applied migrations).")
            else:
                success(f"{_CHECK} Squashed {len(result.squashed)} migration(s) into {result.version}")
                kv("File", str(result.path))
            return result
        finally:
            await db.disconnect()

    return asyncio.run(_run())


def cmd_unlock(config: StrataConfig, verbose: bool = False) -> bool:
    from strata.db import StrataDatabase
    from strata.migrations import MigrationLedger, MigrationLock

    async def _run() -> bool:
        db = StrataDatabase(config.database_url)
        await db.connect()
        try:
            await MigrationLedger(db).ensure_tables()
            released = await MigrationLock(db).force_release()
            if released:
                success(f"{_CHECK} Migration lock released")
            else:
                info("Migration lock was not held.")
            return released
        finally:
            await db.disconnect()

    return asyncio.run(_run())


def cmd_restore_backup(config: StrataConfig, version: str, verbose: bool = False) -> str:
    """
    Restore the backup taken before ``version`` ran.

    The ledger's ``backup_path`` wins; otherwise the newest backup file
    tagged with the version is used.
    """
    from strata.db import StrataDatabase
    from strata.faults import RestoreFault
    from strata.migrations import MIGRATIONS_TABLE, MigrationLedger

    async def _run() -> str:
        db = StrataDatabase(config.database_url)
        await db.connect()
        try:
            manager = _backup_manager(config, db)
            path = None
            if await db.table_exists(MIGRATIONS_TABLE):
                path = await MigrationLedger(db).backup_path_for(version)
            if path is None:
                found = manager.find_backups(version)
                if not found:
                    raise RestoreFault(version, "no backup recorded for this version")
                path = str(found[0].path)

            info(f"Restoring {os.path.basename(path)} ...")
            await manager.restore(path)
            success(f"{_CHECK} Database restored from backup of {version}")
            return path
        finally:
            await db.disconnect()

    return asyncio.run(_run())


def cmd_backup_list(config: StrataConfig, verbose: bool = False):
    from strata.db import StrataDatabase
    from strata.migrations import BackupManager

    # Listing reads the backup directory only; no connection is opened
    manager = _backup_manager(config, StrataDatabase(config.database_url))
    backups = manager.list_backups()
    if not backups:
        warning(f"No backups in {config.backups_dir}/")
        return backups

    table(
        ["Name", "Size", "Created"],
        [[b.name, BackupManager.format_size(b.size), _format_time(b.created_at)] for b in backups],
    )
    click.echo()
    dim(f"  {len(backups)} backup(s), {BackupManager.format_size(manager.get_total_backup_size())} total")
    return backups


def cmd_backup_cleanup(config: StrataConfig, days: Optional[int] = None, verbose: bool = False) -> int:
    from strata.db import StrataDatabase

    retention = days if days is not None else config.retention_days
    manager = _backup_manager(config, StrataDatabase(config.database_url))
    deleted = manager.cleanup_old_backups(retention)
    if deleted:
        success(f"{_CHECK} Deleted {deleted} backup(s) older than {retention} day(s)")
    else:
        info(f"No backups older than {retention} day(s).")
    return deleted
