"""
Strata Schema Differ - computes the changes between two schemas.

``diff(current, desired)`` compares tables, columns, indexes and foreign
keys independently and returns a ``SchemaDiffResult``. Removed/added
pairs are handed to the ``RenameDetector`` first, so a renamed table or
column shows up as a rename instead of a drop plus an add.

Table names in the result follow the side a change is applied to:
index and foreign key removals name the table as it exists today
(they run before renames), everything else names the desired table.

Neither input schema is mutated.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from .renames import RenameDetector
from .schema import (
    INTEGER_TYPES,
    ChangeType,
    ColumnChange,
    ColumnDefinition,
    ColumnRef,
    ColumnRename,
    ForeignKeyDefinition,
    ForeignKeyRef,
    IndexDefinition,
    IndexRef,
    Schema,
    SchemaDiffResult,
    TableDefinition,
    TableRename,
    normalize_type,
)

logger = logging.getLogger("strata.migrations.differ")

# Referential actions that behave as "no action" for immediate constraints
_DEFAULT_ACTIONS = {"NO ACTION", "RESTRICT"}


def normalize_default(value: Optional[str]) -> Optional[str]:
    """``'active'`` and ``active`` compare equal; ``NULL`` is no default."""
    if value is None:
        return None
    text = str(value).strip()
    if text.upper() == "NULL":
        return None
    if len(text) >= 2 and text[0] == "'" and text[-1] == "'":
        text = text[1:-1].replace("''", "'")
    return text


def _normalize_action(action: Optional[str]) -> Optional[str]:
    if not action:
        return None
    action = action.upper()
    return None if action in _DEFAULT_ACTIONS else action


def _is_auto_key(column: ColumnDefinition) -> bool:
    return (
        column.primary
        and column.auto_increment
        and normalize_type(column.type) in INTEGER_TYPES
    )


def same_type(old: ColumnDefinition, new: ColumnDefinition) -> bool:
    """Type and length match, nullability aside."""
    if _is_auto_key(old) and _is_auto_key(new):
        # Engines pick the storage width of auto-increment keys (SQLite: INTEGER)
        return True
    return old.is_type_equal(replace(new, nullable=old.nullable))


class SchemaDiffer:
    """
    Diffs a current schema against a desired one.

    Usage:
        differ = SchemaDiffer()
        result = differ.diff(introspected, desired)
        if result.is_destructive():
            ...
    """

    def __init__(
        self,
        *,
        detect_renames: bool = True,
        rename_detector: Optional[RenameDetector] = None,
    ):
        self.detect_renames = detect_renames
        self.rename_detector = rename_detector or RenameDetector()

    def diff(self, current: Schema, desired: Schema) -> SchemaDiffResult:
        result = SchemaDiffResult()

        current_names = current.get_table_names()
        desired_names = desired.get_table_names()
        removed = [n for n in current_names if n not in desired]
        added = [n for n in desired_names if n not in current]

        # (current name, desired name) of every table present on both sides
        pairs: List[Tuple[str, str]] = [(n, n) for n in current_names if n in desired]

        if self.detect_renames and removed and added:
            candidates = self.rename_detector.detect_table_renames(
                [current.get_table(n) for n in removed],
                [desired.get_table(n) for n in added],
            )
            for candidate in candidates:
                removed.remove(candidate.from_name)
                added.remove(candidate.to_name)
                result.tables_to_rename.append(TableRename(
                    from_table=candidate.from_name,
                    to_table=candidate.to_name,
                    confidence=candidate.confidence,
                ))
                pairs.append((candidate.from_name, candidate.to_name))
                logger.debug(
                    f"Table rename detected: {candidate.from_name} → {candidate.to_name} "
                    f"({candidate.confidence:.2f})"
                )

        result.tables_to_drop.extend(sorted(removed))
        result.tables_to_create.extend(desired.get_table(n) for n in added)

        for old_name, new_name in pairs:
            self._diff_table(current.get_table(old_name), desired.get_table(new_name), result)

        if not result.is_empty():
            logger.debug(f"Schema diff: {result.summary()}")
        return result

    # ── Tables ───────────────────────────────────────────────────────

    def _diff_table(
        self,
        old: TableDefinition,
        new: TableDefinition,
        result: SchemaDiffResult,
    ) -> None:
        table = new.name
        removed = [c for c in old.columns if not new.has_column(c.name)]
        added = [c for c in new.columns if not old.has_column(c.name)]

        # old column name → new column name
        renames: Dict[str, str] = {}
        if self.detect_renames and removed and added:
            for candidate in self.rename_detector.detect_column_renames(table, removed, added):
                renames[candidate.from_name] = candidate.to_name
                result.columns_to_rename.append(ColumnRename(
                    table=table,
                    from_column=candidate.from_name,
                    to_column=candidate.to_name,
                    confidence=candidate.confidence,
                ))

        for column in removed:
            if column.name not in renames:
                result.columns_to_remove.append(ColumnRef(table, column))
        renamed_to = set(renames.values())
        for column in added:
            if column.name not in renamed_to:
                result.columns_to_add.append(ColumnRef(table, column))

        for column in old.columns:
            target = renames.get(column.name, column.name)
            new_column = new.get_column(target)
            if new_column is not None:
                self._diff_column(table, column, new_column, result)

        self._diff_indexes(old, new, renames, result)
        self._diff_foreign_keys(old, new, renames, result)

    def _diff_column(
        self,
        table: str,
        old: ColumnDefinition,
        new: ColumnDefinition,
        result: SchemaDiffResult,
    ) -> None:
        if not same_type(old, new):
            result.columns_to_modify.append(ColumnChange(
                table, new.name, ChangeType.TYPE_CHANGE, old.rendered_type(), new.rendered_type(),
            ))
        if old.nullable != new.nullable:
            result.columns_to_modify.append(ColumnChange(
                table, new.name, ChangeType.NULLABLE_CHANGE, old.nullable, new.nullable,
            ))
        if normalize_default(old.default) != normalize_default(new.default):
            result.columns_to_modify.append(ColumnChange(
                table, new.name, ChangeType.DEFAULT_CHANGE, old.default, new.default,
            ))

    # ── Indexes & foreign keys ───────────────────────────────────────

    def _diff_indexes(
        self,
        old: TableDefinition,
        new: TableDefinition,
        renames: Dict[str, str],
        result: SchemaDiffResult,
    ) -> None:
        def old_key(index: IndexDefinition) -> tuple:
            return (tuple(renames.get(c, c) for c in index.columns), index.unique)

        def new_key(index: IndexDefinition) -> tuple:
            return index.structure()

        gone, fresh = _match(old.indexes, new.indexes, old_key, new_key)
        result.indexes_to_remove.extend(IndexRef(old.name, i) for i in gone)
        result.indexes_to_add.extend(IndexRef(new.name, i) for i in fresh)

    def _diff_foreign_keys(
        self,
        old: TableDefinition,
        new: TableDefinition,
        renames: Dict[str, str],
        result: SchemaDiffResult,
    ) -> None:
        def old_key(fk: ForeignKeyDefinition) -> tuple:
            return (
                renames.get(fk.column, fk.column),
                fk.referenced_table,
                fk.referenced_column,
                _normalize_action(fk.on_delete),
                _normalize_action(fk.on_update),
            )

        def new_key(fk: ForeignKeyDefinition) -> tuple:
            return fk.structure() + (_normalize_action(fk.on_delete), _normalize_action(fk.on_update))

        gone, fresh = _match(old.foreign_keys, new.foreign_keys, old_key, new_key)
        result.foreign_keys_to_remove.extend(ForeignKeyRef(old.name, fk) for fk in gone)
        result.foreign_keys_to_add.extend(ForeignKeyRef(new.name, fk) for fk in fresh)


def _match(old_items, new_items, old_key, new_key):
    """
    Pair definitions and return ``(removed, added)``.

    Same-named items pair by name and are replaced when their structure
    differs. Remaining items pair structurally when either side is
    unnamed.
    """
    remaining_old = list(old_items)
    remaining_new = list(new_items)
    removed, added = [], []

    for item in list(remaining_old):
        if not item.name:
            continue
        match = next((n for n in remaining_new if n.name == item.name), None)
        if match is None:
            continue
        remaining_old.remove(item)
        remaining_new.remove(match)
        if old_key(item) != new_key(match):
            removed.append(item)
            added.append(match)

    for item in list(remaining_old):
        match = next(
            (
                n for n in remaining_new
                if (not item.name or not n.name) and old_key(item) == new_key(n)
            ),
            None,
        )
        if match is not None:
            remaining_old.remove(item)
            remaining_new.remove(match)

    removed.extend(remaining_old)
    added.extend(remaining_new)
    return removed, added
