"""
Strata Backup Manager - SQL backups guarding destructive migrations.

Provides:
- DumpDriver: injectable dump/replay interface
- SQLiteDumpDriver: self-contained SQL script built over the connection
- MySQLDumpDriver: ``mysqldump`` / ``mysql`` subprocesses
- BackupManager: version-tagged backups, gzip compression, restore,
  listing and retention cleanup

Backup files are named ``backup_<version>_<epoch-ms>.sql`` (or
``..._selective.sql``) and compressed to ``<name>.sql.gz``. A failed
backup never leaves a file behind.
"""

from __future__ import annotations

import asyncio
import gzip
import logging
import os
import shutil
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from ..db.backends.mysql import parse_mysql_url
from ..db.engine import StrataDatabase
from ..faults.domains import BackupFault, RestoreFault
from .ledger import LOCK_TABLE

logger = logging.getLogger("strata.migrations.backup")

BACKUP_PREFIX = "backup_"


# ── Dump drivers ────────────────────────────────────────────────────────────


class DumpDriver(ABC):
    """Writes a database dump to a file and replays one."""

    @abstractmethod
    async def dump(self, path: Path, tables: Optional[Sequence[str]] = None) -> None:
        ...

    @abstractmethod
    async def load(self, path: Path) -> None:
        ...


class SQLiteDumpDriver(DumpDriver):
    """
    Dumps through the open connection.

    Per table the script holds ``DROP TABLE IF EXISTS``, the original
    ``CREATE TABLE``, one ``INSERT`` per row (values rendered by SQLite's
    ``quote()``) and the table's indexes and triggers. Foreign keys are
    disabled while the script replays.
    """

    def __init__(self, db: StrataDatabase):
        self.db = db

    @staticmethod
    def _quote(name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    async def dump(self, path: Path, tables: Optional[Sequence[str]] = None) -> None:
        objects = await self.db.fetch_all(
            "SELECT type, name, tbl_name, sql FROM sqlite_master "
            "WHERE sql IS NOT NULL AND name NOT LIKE 'sqlite_%' ORDER BY rowid"
        )
        all_tables = [o["name"] for o in objects if o["type"] == "table" and o["name"] != LOCK_TABLE]
        if tables is None:
            selected = all_tables
        else:
            missing = [t for t in tables if t not in all_tables]
            if missing:
                raise ValueError(f"unknown table(s): {', '.join(missing)}")
            selected = [t for t in all_tables if t in tables]

        lines = ["PRAGMA foreign_keys=OFF;", "BEGIN TRANSACTION;"]
        for obj in objects:
            if obj["type"] != "table" or obj["name"] not in selected:
                continue
            name = obj["name"]
            quoted = self._quote(name)
            lines.append(f"DROP TABLE IF EXISTS {quoted};")
            lines.append(f"{obj['sql']};")

            columns = [c.name for c in await self.db.get_columns(name)]
            if columns:
                values = " || ',' || ".join(f"quote({self._quote(c)})" for c in columns)
                rows = await self.db.fetch_all(
                    f"SELECT 'INSERT INTO ' || ? || ' VALUES(' || {values} || ');' AS stmt FROM {quoted}",
                    [quoted],
                )
                lines.extend(row["stmt"] for row in rows)

        for obj in objects:
            if obj["type"] in ("index", "trigger") and obj["tbl_name"] in selected:
                lines.append(f"{obj['sql']};")
            elif obj["type"] == "view" and tables is None:
                lines.append(f"DROP VIEW IF EXISTS {self._quote(obj['name'])};")
                lines.append(f"{obj['sql']};")

        lines.extend(["COMMIT;", "PRAGMA foreign_keys=ON;"])
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    async def load(self, path: Path) -> None:
        await self.db.execute_script(path.read_text(encoding="utf-8"))


class MySQLDumpDriver(DumpDriver):
    """Shells out to ``mysqldump`` and ``mysql``; the password travels in ``MYSQL_PWD``."""

    def __init__(self, url: str, *, mysqldump: str = "mysqldump", mysql: str = "mysql"):
        self.params = parse_mysql_url(url)
        self.mysqldump = mysqldump
        self.mysql = mysql
        if not self.params.get("db"):
            raise BackupFault("<none>", "database name is required in the MySQL URL")

    def _connection_args(self) -> List[str]:
        args = ["-h", str(self.params["host"]), "-P", str(self.params["port"])]
        if self.params.get("user"):
            args += ["-u", self.params["user"]]
        return args

    def _env(self) -> dict:
        env = dict(os.environ)
        if self.params.get("password"):
            env["MYSQL_PWD"] = self.params["password"]
        return env

    async def _run(self, args: List[str], *, stdin=None, stdout=None) -> None:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=stdin,
            stdout=stdout,
            stderr=asyncio.subprocess.PIPE,
            env=self._env(),
        )
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            message = stderr.decode(errors="replace").strip() if stderr else ""
            raise RuntimeError(f"{args[0]} exited with status {proc.returncode}: {message}")

    async def dump(self, path: Path, tables: Optional[Sequence[str]] = None) -> None:
        database = self.params["db"]
        args = [
            self.mysqldump,
            *self._connection_args(),
            "--single-transaction",
            f"--ignore-table={database}.{LOCK_TABLE}",
            database,
            *(tables or []),
        ]
        with open(path, "wb") as fh:
            await self._run(args, stdout=fh)

    async def load(self, path: Path) -> None:
        args = [self.mysql, *self._connection_args(), self.params["db"]]
        with open(path, "rb") as fh:
            await self._run(args, stdin=fh)


def dump_driver_for(db: StrataDatabase) -> DumpDriver:
    """The dump driver matching the database dialect."""
    if db.dialect == "sqlite":
        return SQLiteDumpDriver(db)
    if db.dialect == "mysql":
        return MySQLDumpDriver(db.url)
    raise BackupFault("<none>", f"no dump driver for dialect '{db.dialect}'")


# ── Manager ─────────────────────────────────────────────────────────────────


@dataclass
class BackupInfo:
    name: str
    path: Path
    size: int
    created_at: datetime


class BackupManager:
    """
    Creates, restores and retires backups.

    Usage:
        manager = BackupManager(dump_driver_for(db), backup_dir="backups")
        path = await manager.create_backup("20260301_101500")
        await manager.restore(path)
    """

    def __init__(
        self,
        driver: DumpDriver,
        backup_dir: str | Path = "backups",
        *,
        compress: bool = True,
    ):
        self.driver = driver
        self.backup_dir = Path(backup_dir)
        self.compress = compress

    async def create_backup(self, version: str) -> str:
        """Full backup; returns the path of the (compressed) file."""
        filename = f"{BACKUP_PREFIX}{version}_{int(time.time() * 1000)}.sql"
        return await self._write(version, filename, None)

    async def create_selective_backup(self, version: str, tables: Sequence[str]) -> str:
        if not tables:
            raise BackupFault(version, "No tables specified for selective backup")
        filename = f"{BACKUP_PREFIX}{version}_{int(time.time() * 1000)}_selective.sql"
        return await self._write(version, filename, list(tables))

    async def _write(self, version: str, filename: str, tables: Optional[List[str]]) -> str:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        path = self.backup_dir / filename
        compressed = path.with_name(path.name + ".gz")
        try:
            await self.driver.dump(path, tables)
            final = self._compress(path) if self.compress else path
        except Exception as exc:
            for leftover in (path, compressed):
                leftover.unlink(missing_ok=True)
            logger.error(f"Backup for {version} failed: {exc}")
            raise BackupFault(version, str(exc)) from exc

        logger.info(f"Backup written: {final}")
        return str(final)

    @staticmethod
    def _compress(path: Path) -> Path:
        target = path.with_name(path.name + ".gz")
        with open(path, "rb") as src, gzip.open(target, "wb") as dst:
            shutil.copyfileobj(src, dst)
        path.unlink()
        return target

    async def restore(self, backup_path: str | Path) -> None:
        """
        Replay a backup. A decompressed scratch copy is removed afterwards;
        the backup file itself is left untouched.

        Raises:
            RestoreFault: Missing file, decompression or replay failure
        """
        source = Path(backup_path)
        if not source.is_file():
            raise RestoreFault(str(source), "Backup file not found")

        scratch: Optional[Path] = None
        try:
            sql_file = source
            if source.suffix == ".gz":
                fd, name = tempfile.mkstemp(suffix=".sql", dir=source.parent)
                os.close(fd)
                scratch = Path(name)
                with gzip.open(source, "rb") as src, open(scratch, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                sql_file = scratch
            await self.driver.load(sql_file)
        except Exception as exc:
            logger.error(f"Restore from {source.name} failed: {exc}")
            raise RestoreFault(str(source), str(exc)) from exc
        finally:
            if scratch is not None:
                scratch.unlink(missing_ok=True)

        logger.info(f"Database restored from {source.name}")

    # ── Inventory ────────────────────────────────────────────────────

    def _backup_files(self) -> List[Path]:
        if not self.backup_dir.is_dir():
            return []
        return [
            p for p in self.backup_dir.iterdir()
            if p.is_file()
            and p.name.startswith(BACKUP_PREFIX)
            and (p.name.endswith(".sql") or p.name.endswith(".sql.gz"))
        ]

    def list_backups(self) -> List[BackupInfo]:
        """Backups sorted newest first."""
        backups = []
        for path in self._backup_files():
            stat = path.stat()
            backups.append(BackupInfo(
                name=path.name,
                path=path,
                size=stat.st_size,
                created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            ))
        backups.sort(key=lambda b: b.created_at, reverse=True)
        return backups

    def find_backups(self, version: str) -> List[BackupInfo]:
        prefix = f"{BACKUP_PREFIX}{version}_"
        return [b for b in self.list_backups() if b.name.startswith(prefix)]

    def cleanup_old_backups(self, retention_days: int = 30) -> int:
        """Delete backups older than ``retention_days``; returns the count deleted."""
        cutoff = time.time() - retention_days * 24 * 60 * 60
        deleted = 0
        for path in self._backup_files():
            if path.stat().st_mtime < cutoff:
                path.unlink()
                logger.info(f"Deleted old backup: {path.name}")
                deleted += 1
        return deleted

    def get_total_backup_size(self) -> int:
        return sum(p.stat().st_size for p in self._backup_files())

    @staticmethod
    def format_size(size: float) -> str:
        units = ["B", "KB", "MB", "GB"]
        index = 0
        while size >= 1024 and index < len(units) - 1:
            size /= 1024
            index += 1
        return f"{size:.2f} {units[index]}"
