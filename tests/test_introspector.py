"""
Tests for SchemaIntrospector against a live SQLite database, and the
generate → migrate → diff round trip.
"""

import pytest

from strata.migrations import (
    EntitySchemaBuilder,
    MigrationExecutor,
    MigrationGenerator,
    MigrationLedger,
    MigrationLoader,
    SchemaDiffer,
    SchemaIntrospector,
)


ENTITIES = [
    {
        "table": "users",
        "columns": [
            {"name": "id", "type": "bigint", "primary": True},
            {"name": "email", "type": "varchar", "length": 255, "nullable": False, "unique": True},
            {"name": "status", "type": "varchar", "length": 20, "default": "'active'"},
            {"name": "bio", "type": "text"},
        ],
    },
    {
        "table": "orders",
        "columns": [
            {"name": "id", "type": "bigint", "primary": True},
            {"name": "user_id", "type": "bigint", "nullable": False,
             "references": "users.id", "on_delete": "CASCADE"},
            {"name": "total", "type": "decimal(10,2)", "default": "0"},
        ],
    },
]


class TestIntrospection:

    @pytest.mark.asyncio
    async def test_reads_columns_indexes_and_foreign_keys(self, db):
        await db.execute(
            'CREATE TABLE "users" ('
            '"id" INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT, '
            '"email" VARCHAR(255) NOT NULL, '
            "\"status\" VARCHAR(20) DEFAULT 'active')"
        )
        await db.execute('CREATE UNIQUE INDEX "idx_users_email" ON "users" ("email")')
        await db.execute(
            'CREATE TABLE "orders" ("id" INTEGER PRIMARY KEY, "user_id" INT NOT NULL, '
            'FOREIGN KEY ("user_id") REFERENCES "users" ("id") ON DELETE CASCADE)'
        )

        schema = await SchemaIntrospector(db).introspect()
        users = schema.get_table("users")

        key = users.primary_key
        assert (key.name, key.type, key.auto_increment, key.nullable) == ("id", "int", True, False)
        email = users.get_column("email")
        assert (email.type, email.length, email.nullable) == ("varchar", 255, False)
        assert users.get_column("status").default == "'active'"
        assert [(i.name, i.columns, i.unique) for i in users.indexes] == [
            ("idx_users_email", ["email"], True),
        ]

        fk = schema.get_table("orders").foreign_keys[0]
        assert fk.name == ""
        assert (fk.column, fk.referenced_table, fk.referenced_column) == ("user_id", "users", "id")
        assert fk.on_delete == "CASCADE"
        assert fk.on_update is None

    @pytest.mark.asyncio
    async def test_bookkeeping_tables_are_excluded(self, db):
        await MigrationLedger(db).ensure_tables()
        schema = await SchemaIntrospector(db).introspect()
        assert len(schema) == 0


class TestRoundTrip:

    @pytest.mark.asyncio
    async def test_generated_migration_converges(self, db, tmp_path):
        migrations_dir = tmp_path / "migrations"
        desired = EntitySchemaBuilder(ENTITIES).build()
        generator = MigrationGenerator("sqlite", migrations_dir)

        current = await SchemaIntrospector(db).introspect()
        path = generator.generate(current, desired, "initial")
        assert path is not None

        result = await MigrationExecutor(db, MigrationLoader(migrations_dir).load()).migrate()
        assert len(result.applied) == 1

        after = await SchemaIntrospector(db).introspect()
        assert SchemaDiffer().diff(after, desired).is_empty()
        assert generator.generate(after, desired) is None

    @pytest.mark.asyncio
    async def test_column_rename_migration(self, db, tmp_path):
        migrations_dir = tmp_path / "migrations"
        generator = MigrationGenerator("sqlite", migrations_dir)
        await db.execute('CREATE TABLE "people" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, "firstName" VARCHAR(100))')
        await db.execute("INSERT INTO people (firstName) VALUES ('Grace')")

        desired = EntitySchemaBuilder([{
            "table": "people",
            "columns": [
                {"name": "id", "type": "int", "primary": True},
                {"name": "first_name", "type": "varchar", "length": 100},
            ],
        }]).build()
        generator.generate(await SchemaIntrospector(db).introspect(), desired, "rename_first_name")

        [migration] = MigrationLoader(migrations_dir).load()
        assert migration.is_destructive is False
        await MigrationExecutor(db, [migration]).migrate()

        rows = await db.fetch_all("SELECT first_name FROM people")
        assert [r["first_name"] for r in rows] == ["Grace"]
