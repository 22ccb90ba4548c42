"""
Strata Rename Detector - tells renames apart from drop+add pairs.

Scores every (removed, added) pair:

- columns: ``0.7 × name_similarity + 0.3 × type_score``
- tables:  ``0.6 × name_similarity + 0.4 × column_overlap``

Name similarity is a ``difflib.SequenceMatcher`` ratio over identifiers
normalized by lowercasing and removing ``_``, ``-`` and spaces, so
``firstName`` and ``first_name`` are identical. Pairs scoring above the
threshold are assigned greedily, highest confidence first, one-to-one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Iterable, List, Sequence, Set

from .schema import ColumnDefinition, TableDefinition, normalize_type

# Rename detection threshold: confidence above this triggers rename
RENAME_THRESHOLD = 0.6

COLUMN_NAME_WEIGHT = 0.7
COLUMN_TYPE_WEIGHT = 0.3
TABLE_NAME_WEIGHT = 0.6
TABLE_STRUCTURE_WEIGHT = 0.4

TYPE_FAMILIES = {
    "integer": {"tinyint", "smallint", "mediumint", "int", "bigint"},
    "text": {"char", "varchar", "tinytext", "text", "mediumtext", "longtext", "string"},
    "numeric": {"float", "double", "real", "decimal", "numeric"},
    "temporal": {"date", "datetime", "timestamp", "time", "year"},
    "boolean": {"boolean"},
    "binary": {"binary", "varbinary", "blob", "tinyblob", "mediumblob", "longblob"},
    "json": {"json"},
}

_SEPARATORS = re.compile(r"[_\-\s]+")


@dataclass
class RenameCandidate:
    """A proposed rename with its confidence in [0, 1]."""

    from_name: str
    to_name: str
    confidence: float


def normalize_identifier(name: str) -> str:
    return _SEPARATORS.sub("", name).lower()


def name_similarity(a: str, b: str) -> float:
    na, nb = normalize_identifier(a), normalize_identifier(b)
    if na == nb:
        return 1.0
    if not na or not nb:
        return 0.0
    return SequenceMatcher(None, na, nb).ratio()


def type_family(type_name: str) -> str:
    base = normalize_type(type_name).split("(")[0]
    for family, members in TYPE_FAMILIES.items():
        if base in members:
            return family
    return base


def type_score(old: ColumnDefinition, new: ColumnDefinition) -> float:
    """1.0 type-equal, 0.5 compatible (same family, length or nullability differs), else 0."""
    if old.is_type_equal(new):
        return 1.0
    if type_family(old.type) == type_family(new.type):
        return 0.5
    return 0.0


class RenameDetector:
    """
    Pure scoring over two candidate lists; keeps no state between calls.

    Usage:
        detector = RenameDetector()
        detector.detect_column_renames("users", removed_columns, added_columns)
    """

    def __init__(self, threshold: float = RENAME_THRESHOLD):
        self.threshold = threshold

    def column_confidence(self, old: ColumnDefinition, new: ColumnDefinition) -> float:
        return (
            COLUMN_NAME_WEIGHT * name_similarity(old.name, new.name)
            + COLUMN_TYPE_WEIGHT * type_score(old, new)
        )

    def table_confidence(self, old: TableDefinition, new: TableDefinition) -> float:
        old_cols = {normalize_identifier(n) for n in old.column_names}
        new_cols = {normalize_identifier(n) for n in new.column_names}
        union = old_cols | new_cols
        structure = len(old_cols & new_cols) / len(union) if union else 0.0
        return (
            TABLE_NAME_WEIGHT * name_similarity(old.name, new.name)
            + TABLE_STRUCTURE_WEIGHT * structure
        )

    def detect_column_renames(
        self,
        table_name: str,
        removed: Sequence[ColumnDefinition],
        added: Sequence[ColumnDefinition],
    ) -> List[RenameCandidate]:
        scored = [
            RenameCandidate(old.name, new.name, self.column_confidence(old, new))
            for old in removed
            for new in added
            if old.name != new.name
        ]
        return self._assign(scored)

    def detect_table_renames(
        self,
        removed: Sequence[TableDefinition],
        added: Sequence[TableDefinition],
    ) -> List[RenameCandidate]:
        scored = [
            RenameCandidate(old.name, new.name, self.table_confidence(old, new))
            for old in removed
            for new in added
            if old.name != new.name
        ]
        return self._assign(scored)

    def _assign(self, scored: Iterable[RenameCandidate]) -> List[RenameCandidate]:
        """Greedy one-to-one assignment, highest confidence first."""
        eligible = [c for c in scored if c.confidence > self.threshold]
        eligible.sort(key=lambda c: (-c.confidence, c.from_name, c.to_name))

        used_from: Set[str] = set()
        used_to: Set[str] = set()
        accepted: List[RenameCandidate] = []
        for candidate in eligible:
            if candidate.from_name in used_from or candidate.to_name in used_to:
                continue
            used_from.add(candidate.from_name)
            used_to.add(candidate.to_name)
            accepted.append(candidate)
        return accepted
