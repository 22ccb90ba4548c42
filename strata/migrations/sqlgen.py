"""
Strata SQL Builder - dialect-aware DDL rendering for schema objects.

Compiles ``TableDefinition`` / ``ColumnDefinition`` / ``IndexDefinition``
/ ``ForeignKeyDefinition`` into DDL statements for SQLite or MySQL.

Statements are returned without a trailing semicolon. Operations a
dialect cannot express in place (SQLite column alteration, SQLite
foreign key changes on existing tables) are returned as ``--`` comments
so generated migrations stay readable and the gap is visible.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..faults.domains import SchemaFault
from .schema import (
    ColumnDefinition,
    ForeignKeyDefinition,
    IndexDefinition,
    TableDefinition,
)

SUPPORTED_DIALECTS = ("sqlite", "mysql")


def index_name(table: str, index: IndexDefinition) -> str:
    """Stored name of an index, derived from its columns when unnamed."""
    if index.name:
        return index.name
    prefix = "uniq" if index.unique else "idx"
    return f"{prefix}_{table}_{'_'.join(index.columns)}"


def foreign_key_name(table: str, fk: ForeignKeyDefinition) -> str:
    return fk.name or f"fk_{table}_{fk.column}"


class SQLBuilder:
    """
    Renders DDL for one dialect.

    Usage:
        builder = SQLBuilder("sqlite")
        builder.create_table(table)
        builder.add_column("users", ColumnDefinition("email", "varchar", 255))
    """

    def __init__(self, dialect: str = "sqlite"):
        if dialect not in SUPPORTED_DIALECTS:
            raise SchemaFault(
                table="<dialect>",
                reason=f"Unsupported SQL dialect '{dialect}'. Supported: {', '.join(SUPPORTED_DIALECTS)}",
            )
        self.dialect = dialect

    @property
    def is_sqlite(self) -> bool:
        return self.dialect == "sqlite"

    def quote(self, identifier: str) -> str:
        if self.is_sqlite:
            return '"' + identifier.replace('"', '""') + '"'
        return "`" + identifier.replace("`", "``") + "`"

    def _column_list(self, columns: Sequence[str]) -> str:
        return ", ".join(self.quote(c) for c in columns)

    # ── Columns ──────────────────────────────────────────────────────

    def column_type(self, column: ColumnDefinition) -> str:
        if self.is_sqlite and column.primary and column.auto_increment:
            # AUTOINCREMENT only works on an INTEGER PRIMARY KEY
            return "INTEGER"
        return column.rendered_type().upper()

    def column_sql(self, column: ColumnDefinition) -> str:
        """Column definition as used in CREATE TABLE and ADD COLUMN."""
        parts = [self.quote(column.name), self.column_type(column)]
        if not column.nullable or column.primary:
            parts.append("NOT NULL")
        if column.primary:
            if self.is_sqlite:
                parts.append("PRIMARY KEY")
                if column.auto_increment:
                    parts.append("AUTOINCREMENT")
            else:
                if column.auto_increment:
                    parts.append("AUTO_INCREMENT")
                parts.append("PRIMARY KEY")
        if column.default is not None:
            parts.append(f"DEFAULT {column.default}")
        if column.comment and not self.is_sqlite:
            escaped = column.comment.replace("'", "''")
            parts.append(f"COMMENT '{escaped}'")
        return " ".join(parts)

    # ── Tables ───────────────────────────────────────────────────────

    def foreign_key_clause(self, table: str, fk: ForeignKeyDefinition) -> str:
        clause = (
            f"FOREIGN KEY ({self.quote(fk.column)}) "
            f"REFERENCES {self.quote(fk.referenced_table)} ({self.quote(fk.referenced_column)})"
        )
        if fk.on_delete:
            clause += f" ON DELETE {fk.on_delete}"
        if fk.on_update:
            clause += f" ON UPDATE {fk.on_update}"
        if not self.is_sqlite:
            clause = f"CONSTRAINT {self.quote(foreign_key_name(table, fk))} " + clause
        return clause

    def create_table(
        self,
        table: TableDefinition,
        *,
        if_not_exists: bool = False,
        inline_foreign_keys: bool = True,
        inline_indexes: bool = False,
    ) -> str:
        lines = [self.column_sql(c) for c in table.columns]
        if inline_indexes:
            for index in table.indexes:
                kind = "UNIQUE KEY" if index.unique else "KEY"
                lines.append(
                    f"{kind} {self.quote(index_name(table.name, index))} ({self._column_list(index.columns)})"
                )
        if inline_foreign_keys:
            lines.extend(self.foreign_key_clause(table.name, fk) for fk in table.foreign_keys)

        exists = "IF NOT EXISTS " if if_not_exists else ""
        body = ",\n  ".join(lines)
        return f"CREATE TABLE {exists}{self.quote(table.name)} (\n  {body}\n)"

    def table_statements(self, table: TableDefinition, *, if_not_exists: bool = False) -> List[str]:
        """CREATE TABLE plus its indexes, idempotent when ``if_not_exists``."""
        if not self.is_sqlite:
            # MySQL has no CREATE INDEX IF NOT EXISTS; keep indexes inline
            return [self.create_table(table, if_not_exists=if_not_exists, inline_indexes=True)]
        statements = [self.create_table(table, if_not_exists=if_not_exists)]
        statements.extend(
            self.create_index(table.name, index, if_not_exists=if_not_exists)
            for index in table.indexes
        )
        return statements

    def drop_table(self, name: str, *, if_exists: bool = False) -> str:
        exists = "IF EXISTS " if if_exists else ""
        return f"DROP TABLE {exists}{self.quote(name)}"

    def rename_table(self, old: str, new: str) -> str:
        if self.is_sqlite:
            return f"ALTER TABLE {self.quote(old)} RENAME TO {self.quote(new)}"
        return f"RENAME TABLE {self.quote(old)} TO {self.quote(new)}"

    # ── Column alteration ────────────────────────────────────────────

    def add_column(self, table: str, column: ColumnDefinition) -> str:
        return f"ALTER TABLE {self.quote(table)} ADD COLUMN {self.column_sql(column)}"

    def drop_column(self, table: str, column: str) -> str:
        return f"ALTER TABLE {self.quote(table)} DROP COLUMN {self.quote(column)}"

    def rename_column(self, table: str, old: str, new: str) -> str:
        return f"ALTER TABLE {self.quote(table)} RENAME COLUMN {self.quote(old)} TO {self.quote(new)}"

    def modify_column(
        self,
        table: str,
        column: ColumnDefinition,
        previous: Optional[ColumnDefinition] = None,
    ) -> str:
        if self.is_sqlite:
            change = ""
            if previous is not None:
                change = f" ({_describe(previous)} -> {_describe(column)})"
            return (
                f"-- SQLite: ALTER COLUMN not supported for "
                f"{self.quote(table)}.{self.quote(column.name)}{change}. Requires table rebuild."
            )
        return f"ALTER TABLE {self.quote(table)} MODIFY COLUMN {self.column_sql(column)}"

    # ── Indexes ──────────────────────────────────────────────────────

    def create_index(self, table: str, index: IndexDefinition, *, if_not_exists: bool = False) -> str:
        unique = "UNIQUE " if index.unique else ""
        exists = "IF NOT EXISTS " if if_not_exists and self.is_sqlite else ""
        return (
            f"CREATE {unique}INDEX {exists}{self.quote(index_name(table, index))} "
            f"ON {self.quote(table)} ({self._column_list(index.columns)})"
        )

    def drop_index(self, table: str, index: IndexDefinition) -> str:
        name = self.quote(index_name(table, index))
        if self.is_sqlite:
            return f"DROP INDEX {name}"
        return f"DROP INDEX {name} ON {self.quote(table)}"

    # ── Foreign keys ─────────────────────────────────────────────────

    def add_foreign_key(self, table: str, fk: ForeignKeyDefinition) -> str:
        if self.is_sqlite:
            return (
                f"-- SQLite: cannot add foreign key {self.quote(table)}.{self.quote(fk.column)} -> "
                f"{self.quote(fk.referenced_table)}.{self.quote(fk.referenced_column)} "
                f"to an existing table. Requires table rebuild."
            )
        return f"ALTER TABLE {self.quote(table)} ADD {self.foreign_key_clause(table, fk)}"

    def drop_foreign_key(self, table: str, fk: ForeignKeyDefinition) -> str:
        if self.is_sqlite:
            return (
                f"-- SQLite: cannot drop foreign key {self.quote(table)}.{self.quote(fk.column)} -> "
                f"{self.quote(fk.referenced_table)}.{self.quote(fk.referenced_column)}. "
                f"Requires table rebuild."
            )
        return f"ALTER TABLE {self.quote(table)} DROP FOREIGN KEY {self.quote(foreign_key_name(table, fk))}"


def _describe(column: ColumnDefinition) -> str:
    text = column.rendered_type()
    text += " NULL" if column.nullable else " NOT NULL"
    if column.default is not None:
        text += f" DEFAULT {column.default}"
    return text
