"""
Strata Migration Lock - cross-process mutual exclusion for migration runs.

The lock is the single row ``id = 1`` of the ``migration_lock`` table.
Acquisition inserts it; when the row already exists another process
holds the lock and acquisition fails immediately (no queueing, no
polling). Release deletes the row on every exit path.

Usage:
    async with MigrationLock(db):
        ...  # migrate, roll back, squash
"""

from __future__ import annotations

import logging
import os
import socket
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..db.engine import StrataDatabase
from ..faults.domains import LockAcquisitionFault
from .ledger import LOCK_TABLE, parse_timestamp, utc_timestamp

logger = logging.getLogger("strata.migrations.lock")

LOCK_ROW_ID = 1


class MigrationLock:
    """
    Scoped acquisition of the migration lock.

    Args:
        db: Connected database
        stale_after: Seconds after which a held lock is considered
            abandoned and broken. ``None`` never breaks a lock.
    """

    def __init__(self, db: StrataDatabase, *, stale_after: Optional[float] = None):
        self.db = db
        self.stale_after = stale_after
        self.hostname = socket.gethostname()
        self.process_id = os.getpid()
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    async def holder(self) -> Optional[Dict[str, Any]]:
        """The current lock row, or None when unlocked."""
        return await self.db.fetch_one(
            f"SELECT id, locked_at, hostname, process_id FROM {LOCK_TABLE} WHERE id = ?",
            [LOCK_ROW_ID],
        )

    async def _try_insert(self) -> bool:
        verb = "INSERT OR IGNORE" if self.db.dialect == "sqlite" else "INSERT IGNORE"
        cursor = await self.db.execute(
            f"{verb} INTO {LOCK_TABLE} (id, locked_at, hostname, process_id) VALUES (?, ?, ?, ?)",
            [LOCK_ROW_ID, utc_timestamp(), self.hostname, self.process_id],
        )
        return getattr(cursor, "rowcount", 0) == 1

    def _is_stale(self, holder: Dict[str, Any]) -> bool:
        if self.stale_after is None:
            return False
        locked_at = parse_timestamp(holder.get("locked_at"))
        if locked_at is None:
            return False
        age = (datetime.now(timezone.utc) - locked_at).total_seconds()
        return age > self.stale_after

    async def acquire(self) -> None:
        """
        Take the lock or fail fast.

        Raises:
            LockAcquisitionFault: Another run holds the lock
        """
        if self._held:
            return
        if await self._try_insert():
            self._held = True
            logger.info(f"Migration lock acquired ({self.hostname}, PID {self.process_id})")
            return

        holder = await self.holder()
        if holder is not None and self._is_stale(holder):
            logger.warning(
                f"Breaking stale migration lock held by {holder.get('hostname')} "
                f"(PID {holder.get('process_id')}) since {holder.get('locked_at')}"
            )
            await self.db.execute(f"DELETE FROM {LOCK_TABLE} WHERE id = ?", [LOCK_ROW_ID])
            if await self._try_insert():
                self._held = True
                logger.info(f"Migration lock acquired ({self.hostname}, PID {self.process_id})")
                return
            holder = await self.holder()

        logger.error(f"Migration lock is held: {holder}")
        raise LockAcquisitionFault(holder)

    async def release(self) -> None:
        """Delete our own lock row. Safe to call when not held."""
        if not self._held:
            return
        await self.db.execute(
            f"DELETE FROM {LOCK_TABLE} WHERE id = ? AND hostname = ? AND process_id = ?",
            [LOCK_ROW_ID, self.hostname, self.process_id],
        )
        self._held = False
        logger.info("Migration lock released")

    async def force_release(self) -> bool:
        """Delete the lock row whoever holds it. Returns True if a row existed."""
        holder = await self.holder()
        if holder is None:
            return False
        await self.db.execute(f"DELETE FROM {LOCK_TABLE} WHERE id = ?", [LOCK_ROW_ID])
        logger.warning(
            f"Migration lock force-released (was held by {holder.get('hostname')}, "
            f"PID {holder.get('process_id')})"
        )
        self._held = False
        return True

    async def __aenter__(self) -> MigrationLock:
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()
