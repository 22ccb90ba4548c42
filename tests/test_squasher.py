"""
Tests for MigrationSquasher - baselines, ledger flags and range checks.
"""

import pytest

from strata.db import StrataDatabase
from strata.faults import MigrationValidationFault
from strata.migrations import (
    MigrationExecutor,
    MigrationGenerator,
    MigrationLedger,
    MigrationLoader,
    MigrationSquasher,
    Schema,
    SchemaIntrospector,
)

from conftest import create_table_migration, orders_table, schema_of, users_table


def generate_history(migrations_dir):
    """Two generated migrations: users, then orders."""
    generator = MigrationGenerator("sqlite", migrations_dir)
    first = schema_of(users_table())
    second = schema_of(users_table(), orders_table())
    generator.generate(Schema(), first, "users", version="20260301_000000")
    generator.generate(first, second, "orders", version="20260302_000000")
    return second


class TestSquash:

    @pytest.mark.asyncio
    async def test_squash_generated_history(self, db, tmp_path):
        migrations_dir = tmp_path / "migrations"
        final = generate_history(migrations_dir)
        await MigrationExecutor(db, MigrationLoader(migrations_dir).load()).migrate()

        squasher = MigrationSquasher(db, MigrationLoader(migrations_dir).load(), migrations_dir=migrations_dir)
        result = await squasher.squash()

        assert result.version == "20260302_000000_squashed"
        assert result.squashed == ["20260301_000000", "20260302_000000"]
        assert result.path.exists()

        records = {r.version: r for r in await MigrationLedger(db).applied()}
        assert records["20260301_000000"].squashed
        assert records["20260302_000000"].squashed
        assert not records[result.version].squashed
        assert records[result.version].batch == 1

        loaded = MigrationLoader(migrations_dir).load()
        baseline = next(m for m in loaded if m.version == result.version)
        assert list(baseline.replaces) == result.squashed
        assert baseline.snapshot().to_dict() == final.to_dict()

        # Nothing left to run on the squashed database
        assert await MigrationExecutor(db, loaded).pending() == []

    @pytest.mark.asyncio
    async def test_fresh_database_runs_only_the_baseline(self, db, tmp_path):
        migrations_dir = tmp_path / "migrations"
        generate_history(migrations_dir)
        await MigrationExecutor(db, MigrationLoader(migrations_dir).load()).migrate()
        await MigrationSquasher(
            db, MigrationLoader(migrations_dir).load(), migrations_dir=migrations_dir,
        ).squash()

        fresh = StrataDatabase(f"sqlite:///{tmp_path / 'fresh.db'}")
        await fresh.connect()
        try:
            result = await MigrationExecutor(fresh, MigrationLoader(migrations_dir).load()).migrate()
            assert result.applied == ["20260302_000000_squashed"]
            assert (await SchemaIntrospector(fresh).introspect()).get_table_names() == ["orders", "users"]
        finally:
            await fresh.disconnect()

    @pytest.mark.asyncio
    async def test_rolling_back_baseline_forgets_replaced_rows(self, db, tmp_path):
        migrations_dir = tmp_path / "migrations"
        generate_history(migrations_dir)
        await MigrationExecutor(db, MigrationLoader(migrations_dir).load()).migrate()
        await MigrationSquasher(
            db, MigrationLoader(migrations_dir).load(), migrations_dir=migrations_dir,
        ).squash()

        result = await MigrationExecutor(db, MigrationLoader(migrations_dir).load()).rollback()
        assert result.rolled_back == ["20260302_000000_squashed"]
        assert await MigrationLedger(db).applied_versions() == set()
        assert not await db.table_exists("users")

    @pytest.mark.asyncio
    async def test_target_version(self, db, tmp_path):
        migrations = [
            create_table_migration("20260301_000000", "a"),
            create_table_migration("20260302_000000", "b"),
            create_table_migration("20260303_000000", "c"),
        ]
        for migration in migrations:
            await MigrationExecutor(db, migrations[: migrations.index(migration) + 1]).migrate()

        squasher = MigrationSquasher(db, migrations, migrations_dir=tmp_path)
        # No snapshot on 20260302_000000 and a later migration is applied
        with pytest.raises(MigrationValidationFault) as exc_info:
            await squasher.squash("20260302_000000")
        assert "cannot determine the schema" in exc_info.value.errors[0]

        # Up to the newest applied migration the live schema is used
        result = await squasher.squash()
        assert result.squashed == [m.version for m in migrations]
        assert not list(tmp_path.glob("20260302_000000_squashed*"))


class TestSquashGuards:

    @pytest.mark.asyncio
    async def test_needs_two_migrations(self, db, tmp_path):
        migrations = [create_table_migration("20260301_000000", "a")]
        await MigrationExecutor(db, migrations).migrate()
        result = await MigrationSquasher(db, migrations, migrations_dir=tmp_path).squash()
        assert result is None

    @pytest.mark.asyncio
    async def test_unapplied_target(self, db, tmp_path):
        squasher = MigrationSquasher(db, [], migrations_dir=tmp_path)
        with pytest.raises(MigrationValidationFault):
            await squasher.squash("20260301_000000")

    @pytest.mark.asyncio
    async def test_pending_migration_inside_range(self, db, tmp_path):
        a = create_table_migration("20260301_000000", "a")
        b = create_table_migration("20260302_000000", "b")
        c = create_table_migration("20260303_000000", "c")
        await MigrationExecutor(db, [a, c]).migrate()

        with pytest.raises(MigrationValidationFault) as exc_info:
            await MigrationSquasher(db, [a, b, c], migrations_dir=tmp_path).squash()
        assert "pending migration 20260302_000000" in exc_info.value.errors[0]

    @pytest.mark.asyncio
    async def test_conflicting_pair_inside_range(self, db, tmp_path):
        a = create_table_migration("20260301_000000", "a")
        b = create_table_migration("20260302_000000", "b")
        await MigrationExecutor(db, [a]).migrate()
        await MigrationExecutor(db, [a, b]).migrate()
        a.conflicts_with = ["20260302_000000"]

        with pytest.raises(MigrationValidationFault) as exc_info:
            await MigrationSquasher(db, [a, b], migrations_dir=tmp_path).squash()
        assert "conflicts with" in exc_info.value.errors[0]
