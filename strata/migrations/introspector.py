"""
Strata Schema Introspector - current schema from the live database catalog.

Reads tables, columns, indexes and foreign keys through the
``StrataDatabase`` catalog API and materializes a ``Schema``. The
migration bookkeeping tables are excluded.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..db.engine import StrataDatabase
from .ledger import LOCK_TABLE, MIGRATIONS_TABLE
from .schema import (
    ColumnDefinition,
    ForeignKeyDefinition,
    IndexDefinition,
    Schema,
    TableDefinition,
    parse_type,
)

logger = logging.getLogger("strata.migrations.introspector")


class SchemaIntrospector:
    """
    Builds a ``Schema`` describing what the database currently holds.

    Usage:
        schema = await SchemaIntrospector(db).introspect()
    """

    def __init__(
        self,
        db: StrataDatabase,
        *,
        exclude: Iterable[str] = (MIGRATIONS_TABLE, LOCK_TABLE),
    ):
        self.db = db
        self.exclude = set(exclude)

    async def introspect(self) -> Schema:
        schema = Schema()
        for name in await self.db.get_tables():
            if name in self.exclude:
                continue
            schema.add_table(await self.introspect_table(name))
        logger.debug(f"Introspected {len(schema)} table(s) from {self.db.dialect}")
        return schema

    async def introspect_table(self, name: str) -> TableDefinition:
        columns = []
        for info in await self.db.get_columns(name):
            col_type, length = parse_type(info.data_type)
            columns.append(ColumnDefinition(
                name=info.name,
                type=col_type,
                length=length,
                nullable=info.nullable and not info.primary_key,
                default=_clean_default(info.default),
                primary=info.primary_key,
                unique=info.unique,
                auto_increment=info.auto_increment,
            ))

        # Composite primary keys are reported as a single primary column
        primaries = [c for c in columns if c.primary]
        for extra in primaries[1:]:
            extra.primary = False

        indexes = [
            IndexDefinition(
                name=idx["name"],
                columns=list(idx["columns"]),
                unique=bool(idx["unique"]),
            )
            for idx in await self.db.get_indexes(name)
        ]

        foreign_keys = [
            ForeignKeyDefinition(
                name=fk.get("name") or "",
                column=fk["from_column"],
                referenced_table=fk["to_table"],
                referenced_column=fk["to_column"] or "id",
                on_delete=_clean_action(fk.get("on_delete")),
                on_update=_clean_action(fk.get("on_update")),
            )
            for fk in await self.db.get_foreign_keys(name)
        ]

        return TableDefinition(
            name=name,
            columns=columns,
            indexes=indexes,
            foreign_keys=foreign_keys,
        )


def _clean_default(value: Optional[object]) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    if text.upper() == "NULL":
        return None
    return text


def _clean_action(value: Optional[str]) -> Optional[str]:
    if not value or value.upper() == "NO ACTION":
        return None
    return value.upper()
