"""
Tests for the migration contract, SQL file migrations and the loader.
"""

import pytest

from strata.faults import MigrationExecutionFault, MigrationLoadFault
from strata.migrations import (
    Migration,
    MigrationLoader,
    SQLFileMigration,
    SQLMigration,
    ValidationResult,
    split_sql_statements,
)
from strata.migrations.migration import has_destructive_sql, is_comment, version_from_filename


class TestMigrationDefaults:

    def test_metadata_defaults(self):
        migration = Migration()
        assert migration.is_destructive is False
        assert migration.requires_backup is False
        assert migration.auto_rollback_on_error is True
        assert list(migration.depends_on) == []
        assert list(migration.conflicts_with) == []
        assert migration.can_run_in_parallel is True
        assert migration.transactional is False
        assert migration.snapshot() is None

    @pytest.mark.asyncio
    async def test_up_and_down_must_be_implemented(self):
        with pytest.raises(NotImplementedError):
            await Migration().up(None)
        with pytest.raises(NotImplementedError):
            await Migration().down(None)

    @pytest.mark.asyncio
    async def test_dry_run_defaults_to_nothing(self):
        assert await Migration().dry_run(None) == []

    def test_validate_is_valid_by_default(self):
        result = Migration().validate(None)
        assert result.valid
        assert result.errors == []

    def test_name(self):
        class AddEmail(Migration):
            version = "20260301_101500"

        assert AddEmail().name == "AddEmail"
        AddEmail.description = "add email"
        assert AddEmail().name == "add email"


class TestValidationResult:

    def test_warnings_keep_it_valid(self):
        result = ValidationResult()
        result.add_warning("slow")
        assert result.valid

    def test_merge(self):
        result = ValidationResult()
        other = ValidationResult()
        other.add_error("broken")
        other.add_warning("slow")
        result.merge(other)
        assert not result.valid
        assert result.errors == ["broken"]
        assert result.warnings == ["slow"]


class TestSQLHelpers:

    def test_split_drops_blank_tail(self):
        text = "CREATE TABLE a (id INT);\nCREATE TABLE b (id INT);\n"
        assert split_sql_statements(text) == ["CREATE TABLE a (id INT)", "CREATE TABLE b (id INT)"]

    def test_split_keeps_unterminated_tail(self):
        text = "CREATE TABLE a (id INT);\nINSERT INTO a VALUES (1)"
        assert split_sql_statements(text) == ["CREATE TABLE a (id INT)", "INSERT INTO a VALUES (1)"]

    def test_semicolon_inside_a_line_does_not_split(self):
        text = "INSERT INTO t VALUES ('a;b');\n"
        assert split_sql_statements(text) == ["INSERT INTO t VALUES ('a;b')"]

    def test_is_comment(self):
        assert is_comment("-- only a note")
        assert is_comment("-- one\n  -- two")
        assert not is_comment("-- note\nDROP TABLE x")

    def test_destructive_sql(self):
        assert has_destructive_sql(["DROP TABLE users"])
        assert has_destructive_sql(['ALTER TABLE "u" DROP COLUMN "age"'])
        assert not has_destructive_sql(["-- DROP TABLE users", "DROP INDEX idx"])

    def test_version_from_filename(self):
        assert version_from_filename("20260301_101500_add_email") == "20260301_101500"
        assert version_from_filename("migration_1700000000") == "1700000000"
        assert version_from_filename("custom") == "custom"


class TestSQLMigration:

    @pytest.mark.asyncio
    async def test_comments_are_skipped(self, db):
        migration = SQLMigration()
        migration.up_statements = [
            'CREATE TABLE "t" ("id" INTEGER PRIMARY KEY)',
            "-- SQLite: ALTER COLUMN not supported. Requires table rebuild.",
        ]
        migration.down_statements = ['DROP TABLE "t"']

        await migration.up(db)
        assert await db.table_exists("t")
        assert await migration.dry_run(db) == list(migration.up_statements)
        await migration.down(db)
        assert not await db.table_exists("t")


class TestSQLFileMigration:

    def test_reads_up_and_down(self, tmp_path):
        up = tmp_path / "20260301_101500_create_tags.sql"
        up.write_text("CREATE TABLE tags (id INTEGER PRIMARY KEY);\nCREATE INDEX idx_tags ON tags (id);\n")
        (tmp_path / "20260301_101500_create_tags.down.sql").write_text("DROP TABLE tags;\n")

        migration = SQLFileMigration(up)
        assert migration.version == "20260301_101500"
        assert migration.description == "create tags"
        assert len(migration.up_statements) == 2
        assert migration.down_statements == ["DROP TABLE tags"]
        assert migration.reversible
        assert not migration.is_destructive

    def test_destructive_file_requires_backup(self, tmp_path):
        path = tmp_path / "20260301_101500_drop_legacy.sql"
        path.write_text("DROP TABLE legacy;\n")
        migration = SQLFileMigration(path)
        assert migration.is_destructive
        assert migration.requires_backup

    @pytest.mark.asyncio
    async def test_missing_down_script(self, tmp_path):
        path = tmp_path / "migration_1700000000.sql"
        path.write_text("CREATE TABLE t (id INT);\n")
        migration = SQLFileMigration(path)

        assert migration.version == "1700000000"
        assert not migration.reversible
        with pytest.raises(MigrationExecutionFault) as exc_info:
            await migration.down(None)
        assert exc_info.value.phase == "down"


class TestMigrationLoader:

    def test_missing_directory(self, tmp_path):
        assert MigrationLoader(tmp_path / "nope").load() == []

    def test_loads_python_and_sql_sorted(self, tmp_path):
        (tmp_path / "20260302_000000_add_tags.sql").write_text("CREATE TABLE tags (id INT);\n")
        (tmp_path / "20260302_000000_add_tags.down.sql").write_text("DROP TABLE tags;\n")
        (tmp_path / "20260301_000000_users.py").write_text(
            "from strata.migrations import SQLMigration\n"
            "\n"
            "class Users(SQLMigration):\n"
            "    up_statements = ['CREATE TABLE users (id INT)']\n"
            "    down_statements = ['DROP TABLE users']\n"
        )
        (tmp_path / "__init__.py").write_text("")
        (tmp_path / "notes.txt").write_text("ignored")

        migrations = MigrationLoader(tmp_path).load()
        assert [m.version for m in migrations] == ["20260301_000000", "20260302_000000"]
        assert migrations[0].source.name == "20260301_000000_users.py"
        assert isinstance(migrations[1], SQLFileMigration)

    def test_explicit_version_wins(self, tmp_path):
        (tmp_path / "whatever.py").write_text(
            "from strata.migrations import Migration\n"
            "\n"
            "class Custom(Migration):\n"
            "    version = '20260101_000000'\n"
        )
        [migration] = MigrationLoader(tmp_path).load()
        assert migration.version == "20260101_000000"

    def test_duplicate_versions(self, tmp_path):
        (tmp_path / "20260301_000000_a.sql").write_text("SELECT 1;\n")
        (tmp_path / "20260301_000000_b.sql").write_text("SELECT 2;\n")
        with pytest.raises(MigrationLoadFault) as exc_info:
            MigrationLoader(tmp_path).load()
        assert "duplicate version" in str(exc_info.value)

    def test_module_without_migration(self, tmp_path):
        (tmp_path / "20260301_000000_empty.py").write_text("X = 1\n")
        with pytest.raises(MigrationLoadFault):
            MigrationLoader(tmp_path).load()

    def test_import_error(self, tmp_path):
        (tmp_path / "20260301_000000_broken.py").write_text("import definitely_not_a_module_xyz\n")
        with pytest.raises(MigrationLoadFault) as exc_info:
            MigrationLoader(tmp_path).load()
        assert "import failed" in str(exc_info.value)
