"""
Tests for rename detection scoring and assignment.
"""

from strata.migrations import (
    ColumnDefinition,
    RenameDetector,
    TableDefinition,
)
from strata.migrations.renames import name_similarity, normalize_identifier, type_score

from conftest import pk, varchar


class TestScoring:

    def test_normalize_identifier(self):
        assert normalize_identifier("First_Name") == "firstname"
        assert normalize_identifier("first-name") == "firstname"
        assert normalize_identifier("firstName") == "firstname"

    def test_name_similarity_bounds(self):
        assert name_similarity("user_name", "userName") == 1.0
        assert name_similarity("", "x") == 0.0
        assert 0.0 < name_similarity("age", "email") < 0.5

    def test_type_score(self):
        assert type_score(varchar("a", 100), varchar("b", 100)) == 1.0
        assert type_score(varchar("a", 100), varchar("b", 255)) == 0.5
        assert type_score(varchar("a"), ColumnDefinition("b", "text")) == 0.5
        assert type_score(ColumnDefinition("a", "int"), ColumnDefinition("b", "bigint")) == 0.5
        assert type_score(ColumnDefinition("a", "int"), varchar("b")) == 0.0


class TestColumnRenames:

    def test_case_style_change_is_a_rename(self):
        detector = RenameDetector()
        confidence = detector.column_confidence(varchar("firstName", 100), varchar("first_name", 100))
        assert confidence > 0.9

        candidates = detector.detect_column_renames(
            "users", [varchar("firstName", 100)], [varchar("first_name", 100)],
        )
        assert len(candidates) == 1
        assert candidates[0].from_name == "firstName"
        assert candidates[0].to_name == "first_name"

    def test_unrelated_names_are_not_renames(self):
        detector = RenameDetector()
        candidates = detector.detect_column_renames(
            "users",
            [ColumnDefinition("age", "int")],
            [varchar("email")],
        )
        assert candidates == []

    def test_same_type_unrelated_names_below_threshold(self):
        detector = RenameDetector()
        confidence = detector.column_confidence(varchar("age"), varchar("email"))
        assert confidence <= 0.6

    def test_assignment_is_one_to_one(self):
        detector = RenameDetector()
        removed = [varchar("user_name"), varchar("user_nick")]
        added = [varchar("username")]
        candidates = detector.detect_column_renames("users", removed, added)

        assert len(candidates) == 1
        assert candidates[0].from_name == "user_name"

    def test_threshold_is_strict(self):
        detector = RenameDetector(threshold=1.0)
        # Exact normalized match with equal types scores 1.0, not above it
        assert detector.detect_column_renames(
            "users", [varchar("firstName")], [varchar("first_name")],
        ) == []


class TestTableRenames:

    def test_similar_name_and_columns(self):
        columns = [pk(), varchar("title"), varchar("body")]
        old = TableDefinition("blog_post", columns=list(columns))
        new = TableDefinition("blog_posts", columns=list(columns))

        candidates = RenameDetector().detect_table_renames([old], [new])
        assert [(c.from_name, c.to_name) for c in candidates] == [("blog_post", "blog_posts")]
        assert candidates[0].confidence > 0.9

    def test_different_tables_not_renamed(self):
        old = TableDefinition("audit_log", columns=[pk(), varchar("message")])
        new = TableDefinition("products", columns=[pk(), varchar("sku"), ColumnDefinition("price", "decimal(10,2)")])
        assert RenameDetector().detect_table_renames([old], [new]) == []
