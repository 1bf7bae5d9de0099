"""
Unit tests for upsert conflict policies
"""

import pytest
from sqlalchemy.dialects import sqlite
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from models.case import Case
from pipeline.loaders.conflict_policy import (
    DEFAULT_POLICY,
    LastWriteWins,
    PreferNewestNonNull,
    get_policy,
)

EXISTING = {"case_name": "Smith v. Jones", "summary": "Stored summary", "outcome": "Dismissed"}
INCOMING = {"case_name": "Smith v. Jones (Amended)", "summary": None}


class TestPreferNewestNonNull:

    def test_merge_keeps_stored_value_over_null(self):
        merged = PreferNewestNonNull().merge(EXISTING, INCOMING)
        assert merged == {
            "case_name": "Smith v. Jones (Amended)",
            "summary": "Stored summary",
            "outcome": "Dismissed",
        }

    def test_update_values_drop_nulls(self):
        assert PreferNewestNonNull().update_values(INCOMING) == {"case_name": "Smith v. Jones (Amended)"}

    def test_set_clause_coalesces(self):
        stmt = sqlite_insert(Case).values(case_name="x", summary=None)
        set_ = PreferNewestNonNull().set_clause(stmt, ["summary"])
        compiled = str(set_["summary"].compile(dialect=sqlite.dialect()))
        assert compiled.startswith("coalesce(")


class TestLastWriteWins:

    def test_merge_overwrites_with_null(self):
        merged = LastWriteWins().merge(EXISTING, INCOMING)
        assert merged["summary"] is None
        assert merged["outcome"] == "Dismissed"

    def test_update_values_keep_nulls(self):
        assert LastWriteWins().update_values(INCOMING) == INCOMING

    def test_set_clause_uses_excluded(self):
        stmt = sqlite_insert(Case).values(case_name="x", summary=None)
        set_ = LastWriteWins().set_clause(stmt, ["summary"])
        assert "excluded" in str(set_["summary"].compile(dialect=sqlite.dialect()))


def test_policy_lookup():
    assert isinstance(get_policy(), DEFAULT_POLICY)
    assert isinstance(get_policy("last_write_wins"), LastWriteWins)
    assert isinstance(get_policy("prefer_newest_non_null"), PreferNewestNonNull)
    with pytest.raises(ValueError):
        get_policy("first_write_wins")
