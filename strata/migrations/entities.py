"""
Strata Entity Schema Builder - desired schema from host entity descriptions.

The host application describes its entities explicitly, either as
``EntityDescription`` objects or as plain dicts (e.g. loaded from YAML).
No reflection or decorator scanning is involved.

Usage:
    entities = [
        EntityDescription("users", [
            EntityColumn("id", "bigint", primary=True, nullable=False),
            EntityColumn("email", "varchar", length=255, unique=True, nullable=False),
            EntityColumn("role_id", "bigint", references="roles.id", on_delete="CASCADE"),
        ]),
    ]
    schema = EntitySchemaBuilder(entities).build()
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..faults.domains import ConfigInvalidFault
from .schema import (
    ColumnDefinition,
    ForeignKeyDefinition,
    IndexDefinition,
    Schema,
    TableDefinition,
)

logger = logging.getLogger("strata.migrations.entities")

DEFAULT_REFERENTIAL_ACTION = "RESTRICT"


@dataclass
class EntityColumn:
    """Column metadata supplied by the host for one entity attribute."""

    name: str
    type: str
    length: Optional[int] = None
    nullable: bool = True
    default: Optional[str] = None
    primary: bool = False
    unique: bool = False
    auto_increment: Optional[bool] = None
    references: Optional[str] = None  # "table.column"
    on_delete: Optional[str] = None
    on_update: Optional[str] = None
    comment: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EntityColumn:
        return cls(
            name=data.get("name", ""),
            type=data.get("type", ""),
            length=data.get("length"),
            nullable=data.get("nullable", True),
            default=data.get("default"),
            primary=data.get("primary", False),
            unique=data.get("unique", False),
            auto_increment=data.get("auto_increment"),
            references=data.get("references"),
            on_delete=data.get("on_delete"),
            on_update=data.get("on_update"),
            comment=data.get("comment"),
        )


@dataclass
class EntityDescription:
    """One entity: its table name, ordered columns and extra (composite) indexes."""

    table: str
    columns: List[EntityColumn] = field(default_factory=list)
    indexes: List[IndexDefinition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EntityDescription:
        return cls(
            table=data["table"],
            columns=[
                c if isinstance(c, EntityColumn) else EntityColumn.from_dict(c)
                for c in data.get("columns", [])
            ],
            indexes=[
                i if isinstance(i, IndexDefinition) else IndexDefinition.from_dict(i)
                for i in data.get("indexes", [])
            ],
        )


EntityLike = Union[EntityDescription, Dict[str, Any]]


class EntitySchemaBuilder:
    """Materializes the desired ``Schema`` from entity descriptions."""

    def __init__(self, entities: Iterable[EntityLike]):
        self.entities = [
            e if isinstance(e, EntityDescription) else EntityDescription.from_dict(e)
            for e in entities
        ]

    def build(self) -> Schema:
        schema = Schema()
        for entity in self.entities:
            schema.add_table(self.build_table(entity))
        logger.debug(f"Built desired schema with {len(schema)} table(s)")
        return schema

    def build_table(self, entity: EntityDescription) -> TableDefinition:
        table = entity.table
        columns: List[ColumnDefinition] = []
        indexes: List[IndexDefinition] = []
        foreign_keys: List[ForeignKeyDefinition] = []

        for col in entity.columns:
            if not col.name:
                logger.warning(f"Skipping column without name in entity '{table}'")
                continue
            if not col.type:
                logger.warning(f"Skipping column '{col.name}' without type in entity '{table}'")
                continue

            auto_increment = col.auto_increment if col.auto_increment is not None else col.primary
            columns.append(ColumnDefinition(
                name=col.name,
                type=col.type.lower(),
                length=col.length,
                nullable=col.nullable and not col.primary,
                default=col.default,
                primary=col.primary,
                unique=col.unique,
                auto_increment=auto_increment,
                comment=col.comment,
            ))

            if col.unique and not col.primary:
                indexes.append(IndexDefinition(
                    name=f"idx_{table}_{col.name}",
                    columns=[col.name],
                    unique=True,
                ))

            if col.references:
                reference = _parse_reference(col.references)
                if reference is None:
                    logger.warning(
                        f"Ignoring malformed reference '{col.references}' on "
                        f"'{table}.{col.name}' (expected 'table.column')"
                    )
                    continue
                ref_table, ref_column = reference
                fk_name = f"fk_{table}_{col.name}"
                indexes.append(IndexDefinition(name=fk_name, columns=[col.name], unique=False))
                foreign_keys.append(ForeignKeyDefinition(
                    name=fk_name,
                    column=col.name,
                    referenced_table=ref_table,
                    referenced_column=ref_column,
                    on_delete=(col.on_delete or DEFAULT_REFERENTIAL_ACTION).upper(),
                    on_update=(col.on_update or DEFAULT_REFERENTIAL_ACTION).upper(),
                ))

        indexes.extend(entity.indexes)
        return TableDefinition(
            name=table,
            columns=columns,
            indexes=indexes,
            foreign_keys=foreign_keys,
        )


def _parse_reference(reference: str) -> Optional[tuple[str, str]]:
    parts = reference.split(".")
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


def load_entities(target: str) -> List[EntityDescription]:
    """
    Resolve ``"package.module:ATTRIBUTE"`` to a list of entity descriptions.

    The attribute may be a sequence of ``EntityDescription``/dicts or a
    callable returning one.
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ConfigInvalidFault(
            key="migrations.entities",
            reason=f"expected 'module:attribute', got {target!r}",
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigInvalidFault(
            key="migrations.entities",
            reason=f"cannot import {module_name!r}: {exc}",
        ) from exc

    value = getattr(module, attr, None)
    if value is None:
        raise ConfigInvalidFault(
            key="migrations.entities",
            reason=f"{module_name!r} has no attribute {attr!r}",
        )
    if callable(value):
        value = value()
    if not isinstance(value, Sequence):
        raise ConfigInvalidFault(
            key="migrations.entities",
            reason=f"{target!r} did not resolve to a list of entities",
        )
    return [
        e if isinstance(e, EntityDescription) else EntityDescription.from_dict(e)
        for e in value
    ]
