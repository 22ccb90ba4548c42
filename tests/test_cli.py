"""
Tests for the strata command line (click commands end to end on SQLite).
"""

import pytest
from click.testing import CliRunner

from strata.cli.__main__ import cli


USERS_UP = 'CREATE TABLE "users" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, "email" TEXT);\n'
USERS_DOWN = 'DROP TABLE "users";\n'


@pytest.fixture
def project(tmp_path, monkeypatch):
    """An empty project directory used as cwd, with a migrations folder."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "migrations").mkdir()
    return tmp_path


@pytest.fixture
def invoke(project):
    runner = CliRunner()
    url = f"sqlite:///{project / 'app.db'}"

    def _invoke(*args):
        return runner.invoke(
            cli,
            [*args, "--database-url", url, "--migrations-dir", str(project / "migrations")],
            obj={},
        )

    return _invoke


def write_users_migration(project):
    (project / "migrations" / "20260301_000000_create_users.sql").write_text(USERS_UP)
    (project / "migrations" / "20260301_000000_create_users.down.sql").write_text(USERS_DOWN)


class TestCLI:

    def test_help_banner(self):
        result = CliRunner().invoke(cli, ["--help"], obj={})
        assert result.exit_code == 0
        assert "Strata" in result.output
        assert "migration:generate" in result.output

    def test_migrate_and_status(self, project, invoke):
        write_users_migration(project)

        result = invoke("migrate")
        assert result.exit_code == 0, result.output
        assert "Applied 1 migration(s) in batch 1" in result.output

        result = invoke("migrate")
        assert "No pending migrations." in result.output

        result = invoke("migration:status")
        assert result.exit_code == 0
        assert "20260301_000000" in result.output
        assert "1 applied, 0 pending" in result.output

    def test_dry_run(self, project, invoke):
        write_users_migration(project)
        (project / "migrations" / "20260302_000000_drop_users.sql").write_text(USERS_DOWN)

        result = invoke("migrate", "--dry-run")
        assert result.exit_code == 0, result.output
        assert 'CREATE TABLE "users"' in result.output
        assert "destructive" in result.output

        result = invoke("migration:status")
        assert "0 applied, 2 pending" in result.output

    def test_rollback(self, project, invoke):
        write_users_migration(project)
        invoke("migrate")

        result = invoke("migration:rollback")
        assert result.exit_code == 0, result.output
        assert "Rolled back 1 migration(s)" in result.output

        result = invoke("migration:rollback")
        assert "Nothing to roll back." in result.output

    def test_fresh_requires_force(self, invoke):
        result = invoke("migration:fresh")
        assert result.exit_code == 1
        assert "--force" in result.output

    def test_fresh(self, project, invoke):
        write_users_migration(project)
        invoke("migrate")
        result = invoke("migration:fresh", "--force")
        assert result.exit_code == 0, result.output
        assert "applied 1 migration(s)" in result.output

    def test_unlock_when_free(self, invoke):
        result = invoke("migration:unlock")
        assert result.exit_code == 0, result.output
        assert "Migration lock was not held." in result.output

    def test_backups_empty(self, invoke):
        result = invoke("backup:list")
        assert "No backups in backups/" in result.output

        result = invoke("backup:cleanup", "--days", "7")
        assert "No backups older than 7 day(s)." in result.output

    def test_restore_without_backup(self, invoke):
        result = invoke("restore:backup", "20260301_000000")
        assert result.exit_code == 1
        assert "restore:backup failed" in result.output

    def test_generate(self, project, invoke):
        (project / "cli_shop_entities.py").write_text(
            "ENTITIES = [\n"
            "    {'table': 'products', 'columns': [\n"
            "        {'name': 'id', 'type': 'int', 'primary': True},\n"
            "        {'name': 'title', 'type': 'varchar', 'length': 120, 'nullable': False},\n"
            "    ]},\n"
            "]\n"
        )

        result = invoke("migration:generate", "--entities", "cli_shop_entities:ENTITIES", "--slug", "products")
        assert result.exit_code == 0, result.output
        assert "Generated" in result.output
        [generated] = list((project / "migrations").glob("*_products.py"))

        invoke("migrate")
        result = invoke("migration:generate", "--entities", "cli_shop_entities:ENTITIES")
        assert "No schema changes detected." in result.output
        assert list((project / "migrations").glob("*.py")) == [generated]

    def test_generate_needs_entities(self, invoke):
        result = invoke("migration:generate")
        assert result.exit_code == 1
        assert "CONFIG_INVALID" in result.output

    def test_unsupported_database(self, project):
        result = CliRunner().invoke(
            cli, ["migration:status", "--database-url", "postgres://localhost/app"], obj={},
        )
        assert result.exit_code == 1
        assert "migration:status failed" in result.output
