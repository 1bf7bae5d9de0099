"""
Persistence of synced records.

Modules:
    decision_repository: idempotent case upserts, lookups and judge case counts
    conflict_policy: what an upsert writes over an existing row
"""

__all__ = [
    "DecisionRepository",
    "UpsertResult",
    "ConflictPolicy",
    "LastWriteWins",
    "PreferNewestNonNull",
]
