"""
Strata Schema Model - value objects for database schemas and diffs.

Provides:
- ColumnDefinition / IndexDefinition / ForeignKeyDefinition / TableDefinition
- Schema: name → TableDefinition mapping with JSON round-tripping
- SchemaDiffResult: the change lists produced by the differ
- normalize_type(): canonical type tokens used for type-equality

These are plain data containers. Builders and the introspector create
them, the differ only reads them.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from ..faults.domains import SchemaFault

__all__ = [
    "ColumnDefinition",
    "IndexDefinition",
    "ForeignKeyDefinition",
    "TableDefinition",
    "Schema",
    "ChangeType",
    "TableRename",
    "ColumnRef",
    "ColumnChange",
    "ColumnRename",
    "IndexRef",
    "ForeignKeyRef",
    "SchemaDiffResult",
    "normalize_type",
    "parse_type",
]


# ── Type normalization ──────────────────────────────────────────────────────

_TYPE_ALIASES = {
    "integer": "int",
    "int4": "int",
    "int8": "bigint",
    "bool": "boolean",
    "character varying": "varchar",
    "character": "char",
    "double precision": "double",
}

INTEGER_TYPES = frozenset({"tinyint", "smallint", "mediumint", "int", "bigint"})

_TYPE_RE = re.compile(r"^\s*([a-zA-Z][a-zA-Z0-9 _]*?)\s*(?:\(\s*([^)]*)\s*\))?\s*(unsigned)?\s*$")


def normalize_type(type_name: str) -> str:
    """Canonical lowercase type token (``INTEGER`` → ``int``)."""
    t = " ".join(type_name.strip().lower().split())
    return _TYPE_ALIASES.get(t, t)


def parse_type(raw: str) -> tuple[str, Optional[int]]:
    """
    Split a catalog type such as ``VARCHAR(255)`` into ``("varchar", 255)``.

    Display widths of integer types (``int(11)``) are dropped. Types with
    a precision/scale pair keep it in the token (``decimal(10,2)``).
    """
    if not raw:
        return "text", None
    match = _TYPE_RE.match(raw)
    if not match:
        return normalize_type(raw), None
    base = normalize_type(match.group(1))
    args = match.group(2)
    if args is None:
        return base, None
    if "," in args:
        return f"{base}({args.replace(' ', '')})", None
    if base in INTEGER_TYPES:
        return base, None
    try:
        return base, int(args)
    except ValueError:
        return f"{base}({args})", None


# ── Definitions ─────────────────────────────────────────────────────────────


@dataclass
class ColumnDefinition:
    """A single column. ``default`` is a raw SQL literal (``'active'``, ``0``)."""

    name: str
    type: str
    length: Optional[int] = None
    nullable: bool = True
    default: Optional[str] = None
    primary: bool = False
    unique: bool = False
    auto_increment: bool = False
    comment: Optional[str] = None

    def rendered_type(self) -> str:
        """Type with length, e.g. ``varchar(255)``."""
        if self.length is not None:
            return f"{self.type}({self.length})"
        return self.type

    def is_type_equal(self, other: ColumnDefinition) -> bool:
        """Type, length and nullability all match."""
        return (
            normalize_type(self.type) == normalize_type(other.type)
            and _effective_length(self) == _effective_length(other)
            and self.nullable == other.nullable
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "length": self.length,
            "nullable": self.nullable,
            "default": self.default,
            "primary": self.primary,
            "unique": self.unique,
            "auto_increment": self.auto_increment,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ColumnDefinition:
        return cls(
            name=data["name"],
            type=data["type"],
            length=data.get("length"),
            nullable=data.get("nullable", True),
            default=data.get("default"),
            primary=data.get("primary", False),
            unique=data.get("unique", False),
            auto_increment=data.get("auto_increment", False),
            comment=data.get("comment"),
        )


def _effective_length(column: ColumnDefinition) -> Optional[int]:
    if normalize_type(column.type) in INTEGER_TYPES:
        return None
    return column.length


@dataclass
class IndexDefinition:
    """An index; an empty ``name`` marks an unnamed index."""

    name: str
    columns: List[str] = field(default_factory=list)
    unique: bool = False

    def structure(self) -> tuple:
        return (tuple(self.columns), self.unique)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "columns": list(self.columns), "unique": self.unique}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> IndexDefinition:
        return cls(
            name=data.get("name", ""),
            columns=list(data.get("columns", [])),
            unique=data.get("unique", False),
        )


@dataclass
class ForeignKeyDefinition:
    """A single-column foreign key."""

    name: str
    column: str
    referenced_table: str
    referenced_column: str
    on_delete: Optional[str] = None
    on_update: Optional[str] = None

    def structure(self) -> tuple:
        return (self.column, self.referenced_table, self.referenced_column)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "column": self.column,
            "referenced_table": self.referenced_table,
            "referenced_column": self.referenced_column,
            "on_delete": self.on_delete,
            "on_update": self.on_update,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ForeignKeyDefinition:
        return cls(
            name=data.get("name", ""),
            column=data["column"],
            referenced_table=data["referenced_table"],
            referenced_column=data["referenced_column"],
            on_delete=data.get("on_delete"),
            on_update=data.get("on_update"),
        )


@dataclass
class TableDefinition:
    """
    A table: ordered columns plus indexes and foreign keys.

    Column names are unique and at most one column is the primary key.
    """

    name: str
    columns: List[ColumnDefinition] = field(default_factory=list)
    indexes: List[IndexDefinition] = field(default_factory=list)
    foreign_keys: List[ForeignKeyDefinition] = field(default_factory=list)

    def __post_init__(self):
        seen = set()
        for col in self.columns:
            if col.name in seen:
                raise SchemaFault(table=self.name, reason=f"duplicate column '{col.name}'")
            seen.add(col.name)
        primaries = [c.name for c in self.columns if c.primary]
        if len(primaries) > 1:
            raise SchemaFault(
                table=self.name,
                reason=f"multiple primary key columns: {', '.join(primaries)}",
            )

    def get_column(self, name: str) -> Optional[ColumnDefinition]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def has_column(self, name: str) -> bool:
        return self.get_column(name) is not None

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def primary_key(self) -> Optional[ColumnDefinition]:
        for col in self.columns:
            if col.primary:
                return col
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "indexes": [i.to_dict() for i in self.indexes],
            "foreign_keys": [fk.to_dict() for fk in self.foreign_keys],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TableDefinition:
        return cls(
            name=data["name"],
            columns=[ColumnDefinition.from_dict(c) for c in data.get("columns", [])],
            indexes=[IndexDefinition.from_dict(i) for i in data.get("indexes", [])],
            foreign_keys=[ForeignKeyDefinition.from_dict(f) for f in data.get("foreign_keys", [])],
        )


class Schema:
    """
    In-memory database schema: table name → ``TableDefinition``.

    Usage:
        schema = Schema()
        schema.add_table(TableDefinition("users", [ColumnDefinition("id", "bigint", primary=True)]))
        restored = Schema.from_json(schema.to_json())
    """

    def __init__(self, tables: Optional[List[TableDefinition]] = None):
        self._tables: Dict[str, TableDefinition] = {}
        for table in tables or []:
            self.add_table(table)

    def add_table(self, table: TableDefinition) -> None:
        self._tables[table.name] = table

    def remove_table(self, name: str) -> bool:
        return self._tables.pop(name, None) is not None

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def get_table(self, name: str) -> Optional[TableDefinition]:
        return self._tables.get(name)

    def get_tables(self) -> List[TableDefinition]:
        return list(self._tables.values())

    def get_table_names(self) -> List[str]:
        return list(self._tables.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self) -> Iterator[TableDefinition]:
        return iter(list(self._tables.values()))

    def __repr__(self) -> str:
        return f"Schema(tables={self.get_table_names()!r})"

    # ── Serialization ────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {"tables": [t.to_dict() for t in self._tables.values()]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Schema:
        return cls([TableDefinition.from_dict(t) for t in data.get("tables", [])])

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, raw: str) -> Schema:
        return cls.from_dict(json.loads(raw))


# ── Diff result ─────────────────────────────────────────────────────────────


class ChangeType(str, Enum):
    """Kind of change reported for a column present on both sides."""

    TYPE_CHANGE = "TYPE_CHANGE"
    NULLABLE_CHANGE = "NULLABLE_CHANGE"
    DEFAULT_CHANGE = "DEFAULT_CHANGE"


@dataclass
class TableRename:
    from_table: str
    to_table: str
    confidence: float = 1.0


@dataclass
class ColumnRef:
    table: str
    column: ColumnDefinition


@dataclass
class ColumnChange:
    table: str
    column: str
    change_type: ChangeType
    from_value: Any
    to_value: Any


@dataclass
class ColumnRename:
    table: str
    from_column: str
    to_column: str
    confidence: float = 1.0


@dataclass
class IndexRef:
    table: str
    index: IndexDefinition


@dataclass
class ForeignKeyRef:
    table: str
    foreign_key: ForeignKeyDefinition


@dataclass
class SchemaDiffResult:
    """
    Every change needed to turn a current schema into a desired one.

    Only additions are never destructive; dropping a table or removing a
    column is.
    """

    tables_to_create: List[TableDefinition] = field(default_factory=list)
    tables_to_drop: List[str] = field(default_factory=list)
    tables_to_rename: List[TableRename] = field(default_factory=list)
    columns_to_add: List[ColumnRef] = field(default_factory=list)
    columns_to_remove: List[ColumnRef] = field(default_factory=list)
    columns_to_modify: List[ColumnChange] = field(default_factory=list)
    columns_to_rename: List[ColumnRename] = field(default_factory=list)
    indexes_to_add: List[IndexRef] = field(default_factory=list)
    indexes_to_remove: List[IndexRef] = field(default_factory=list)
    foreign_keys_to_add: List[ForeignKeyRef] = field(default_factory=list)
    foreign_keys_to_remove: List[ForeignKeyRef] = field(default_factory=list)

    _LISTS = (
        "tables_to_create",
        "tables_to_drop",
        "tables_to_rename",
        "columns_to_add",
        "columns_to_remove",
        "columns_to_modify",
        "columns_to_rename",
        "indexes_to_add",
        "indexes_to_remove",
        "foreign_keys_to_add",
        "foreign_keys_to_remove",
    )

    def is_empty(self) -> bool:
        return all(not getattr(self, name) for name in self._LISTS)

    def is_destructive(self) -> bool:
        return bool(self.tables_to_drop or self.columns_to_remove)

    @property
    def change_count(self) -> int:
        return sum(len(getattr(self, name)) for name in self._LISTS)

    def summary(self) -> Dict[str, int]:
        """Non-zero change counts keyed by list name."""
        return {
            name: len(getattr(self, name))
            for name in self._LISTS
            if getattr(self, name)
        }
