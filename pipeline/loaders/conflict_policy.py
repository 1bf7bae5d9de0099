"""
Conflict policies for case upserts.

A policy decides what an upsert writes over an existing row. It is used in
two places: the SET clause of INSERT ... ON CONFLICT DO UPDATE, and the
values of an in-place UPDATE when a row was matched before inserting.
merge() expresses the same rule on plain dicts.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable
from sqlalchemy import func


class ConflictPolicy(ABC):
    """Strategy for resolving an incoming record against a stored row."""

    name: str = "abstract"

    @abstractmethod
    def merge(self, existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
        """Row values after applying `incoming` to `existing`."""

    @abstractmethod
    def set_clause(self, stmt, columns: Iterable[str]) -> Dict[str, Any]:
        """SET mapping for an ON CONFLICT DO UPDATE built from `stmt`."""

    @abstractmethod
    def update_values(self, incoming: Dict[str, Any]) -> Dict[str, Any]:
        """Values for a plain UPDATE of an already matched row."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


class LastWriteWins(ConflictPolicy):
    """Incoming values replace stored ones, including nulls."""

    name = "last_write_wins"

    def merge(self, existing, incoming):
        return {**existing, **incoming}

    def set_clause(self, stmt, columns):
        return {column: stmt.excluded[column] for column in columns}

    def update_values(self, incoming):
        return dict(incoming)


class PreferNewestNonNull(ConflictPolicy):
    """
    Incoming non-null values win; a null never erases a stored value.

    A later sync that lacks a field (e.g. an opinion fetched without its
    cluster) keeps what an earlier, richer sync stored.
    """

    name = "prefer_newest_non_null"

    def merge(self, existing, incoming):
        merged = dict(existing)
        for key, value in incoming.items():
            if value is not None:
                merged[key] = value
        return merged

    def set_clause(self, stmt, columns):
        table = stmt.table
        return {
            column: func.coalesce(stmt.excluded[column], table.c[column])
            for column in columns
        }

    def update_values(self, incoming):
        return {key: value for key, value in incoming.items() if value is not None}


POLICIES = {
    LastWriteWins.name: LastWriteWins,
    PreferNewestNonNull.name: PreferNewestNonNull,
}

DEFAULT_POLICY = PreferNewestNonNull


def get_policy(name: str = None) -> ConflictPolicy:
    if not name:
        return DEFAULT_POLICY()
    try:
        return POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown conflict policy: {name}") from None
