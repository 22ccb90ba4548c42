"""
Strata Migration Squasher - collapses applied migrations into a baseline.

The baseline is an ordinary generated migration whose ``up`` creates
the net schema of the squashed range from nothing and whose ``down``
drops it again. Its ``replaces`` attribute lists the squashed versions,
so a fresh database runs the baseline instead of the originals.

In the ledger the squashed rows are flagged ``squashed`` and the
baseline gets its own row in the newest batch of the range.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from ..db.engine import StrataDatabase
from ..faults.domains import MigrationValidationFault
from .differ import SchemaDiffer
from .generator import MigrationGenerator
from .introspector import SchemaIntrospector
from .ledger import MigrationLedger, MigrationRecord
from .lock import MigrationLock
from .migration import Migration
from .schema import Schema

logger = logging.getLogger("strata.migrations.squasher")

BASELINE_SUFFIX = "_squashed"


@dataclass
class SquashResult:
    version: str
    path: Path
    squashed: List[str] = field(default_factory=list)


class MigrationSquasher:
    """
    Usage:
        squasher = MigrationSquasher(db, MigrationLoader("migrations").load(),
                                     migrations_dir="migrations")
        result = await squasher.squash("20260301_101500")
    """

    def __init__(
        self,
        db: StrataDatabase,
        migrations: Sequence[Migration],
        *,
        migrations_dir: str | Path = "migrations",
        lock_stale_after: Optional[float] = None,
    ):
        self.db = db
        self.migrations = sorted(migrations, key=lambda m: m.version)
        self.migrations_dir = Path(migrations_dir)
        self.lock_stale_after = lock_stale_after
        self.ledger = MigrationLedger(db)
        self._by_version: Dict[str, Migration] = {m.version: m for m in self.migrations}

    async def squash(self, target_version: Optional[str] = None) -> Optional[SquashResult]:
        """
        Squash every unsquashed applied migration up to ``target_version``
        (all of them when omitted).

        Returns:
            SquashResult, or None when fewer than two migrations qualify

        Raises:
            MigrationValidationFault: The range cannot be squashed safely
        """
        await self.ledger.ensure_tables()
        async with MigrationLock(self.db, stale_after=self.lock_stale_after):
            records = await self.ledger.applied(include_squashed=False)
            records.sort(key=lambda r: r.version)
            if target_version is not None and target_version not in {r.version for r in records}:
                raise MigrationValidationFault([f"version {target_version} is not applied"])

            squashed = [r for r in records if target_version is None or r.version <= target_version]
            if len(squashed) < 2:
                logger.info("Nothing to squash")
                return None

            applied = await self.ledger.applied_versions()
            self._check_range(squashed, applied)
            net = await self._net_schema(squashed, records)
            return await self._write_baseline(squashed, net)

    def _check_range(self, squashed: List[MigrationRecord], applied: Set[str]) -> None:
        versions = {r.version for r in squashed}
        last = squashed[-1].version
        errors: List[str] = []

        for migration in self.migrations:
            if migration.version not in applied and migration.version <= last and not migration.replaces:
                errors.append(f"pending migration {migration.version} falls inside the squash range")

        reported: Set[frozenset] = set()
        for record in squashed:
            migration = self._by_version.get(record.version)
            if migration is None:
                errors.append(f"no migration loaded for applied version {record.version}")
                continue
            for other in migration.conflicts_with:
                pair = frozenset((record.version, other))
                if other in versions and pair not in reported:
                    reported.add(pair)
                    errors.append(f"{record.version} conflicts with {other} inside the squash range")
            for dep in migration.depends_on:
                if dep not in versions and dep not in applied:
                    errors.append(
                        f"{record.version} depends on {dep}, which is outside the range and not applied"
                    )

        if errors:
            raise MigrationValidationFault(errors)

    async def _net_schema(
        self,
        squashed: List[MigrationRecord],
        records: List[MigrationRecord],
    ) -> Schema:
        last = squashed[-1].version
        snapshot = self._by_version[last].snapshot()
        if snapshot is not None:
            return snapshot
        if last == records[-1].version:
            logger.debug(f"{last} has no schema snapshot; using the live schema")
            return await SchemaIntrospector(self.db).introspect()
        raise MigrationValidationFault([
            f"cannot determine the schema after {last}: it has no schema snapshot "
            f"and later migrations are applied"
        ])

    async def _write_baseline(self, squashed: List[MigrationRecord], net: Schema) -> SquashResult:
        versions = [r.version for r in squashed]
        replaces: List[str] = []
        for version in versions:
            replaces.extend(v for v in self._by_version[version].replaces if v not in replaces)
            replaces.append(version)

        baseline_version = f"{versions[-1]}{BASELINE_SUFFIX}"
        generator = MigrationGenerator(
            self.db.dialect,
            self.migrations_dir,
            differ=SchemaDiffer(detect_renames=False),
        )
        empty = Schema()
        plan = generator.build(generator.differ.diff(empty, net), empty, net)
        source = generator.render(
            plan,
            baseline_version,
            "squashed",
            net,
            description=f"squash of {len(versions)} migrations ({versions[0]} .. {versions[-1]})",
            replaces=replaces,
            class_name="SquashedBaseline",
        )
        path = generator.write(source, f"{baseline_version}.py")

        batch = max(r.batch for r in squashed)
        try:
            async with self.db.transaction():
                await self.ledger.mark_squashed(versions)
                await self.ledger.record(baseline_version, 0, batch)
        except Exception:
            path.unlink(missing_ok=True)
            raise

        logger.info(f"Squashed {len(versions)} migration(s) into {baseline_version}")
        return SquashResult(version=baseline_version, path=path, squashed=versions)
