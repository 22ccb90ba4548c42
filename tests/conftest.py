"""
Shared test fixtures and helpers for the Strata test suite.
"""

import pytest
import pytest_asyncio

from strata.db import StrataDatabase
from strata.migrations import (
    ColumnDefinition,
    ForeignKeyDefinition,
    IndexDefinition,
    Schema,
    SQLMigration,
    TableDefinition,
)


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest_asyncio.fixture
async def db(db_url):
    database = StrataDatabase(db_url)
    await database.connect()
    yield database
    await database.disconnect()


# ============================================================================
# Schema helpers
# ============================================================================


def pk(name: str = "id") -> ColumnDefinition:
    return ColumnDefinition(name, "int", nullable=False, primary=True, auto_increment=True)


def varchar(name: str, length: int = 255, **kwargs) -> ColumnDefinition:
    return ColumnDefinition(name, "varchar", length, **kwargs)


def users_table(*extra: ColumnDefinition) -> TableDefinition:
    return TableDefinition(
        "users",
        columns=[pk(), varchar("email", nullable=False), *extra],
        indexes=[IndexDefinition("idx_users_email", ["email"], unique=True)],
    )


def orders_table() -> TableDefinition:
    return TableDefinition(
        "orders",
        columns=[pk(), ColumnDefinition("user_id", "int", nullable=False)],
        indexes=[IndexDefinition("fk_orders_user_id", ["user_id"])],
        foreign_keys=[
            ForeignKeyDefinition("fk_orders_user_id", "user_id", "users", "id", on_delete="CASCADE"),
        ],
    )


def schema_of(*tables: TableDefinition) -> Schema:
    return Schema(list(tables))


# ============================================================================
# Migration helpers
# ============================================================================


def sql_migration(version: str, up, down, **attrs) -> SQLMigration:
    """An SQLMigration instance built on the fly."""
    migration = SQLMigration()
    migration.version = version
    migration.up_statements = list(up)
    migration.down_statements = list(down)
    for key, value in attrs.items():
        setattr(migration, key, value)
    return migration


def create_table_migration(version: str, table: str, **attrs) -> SQLMigration:
    return sql_migration(
        version,
        [f'CREATE TABLE "{table}" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, "name" TEXT)'],
        [f'DROP TABLE "{table}"'],
        **attrs,
    )
