"""
Pure transformations from upstream payloads to stored values.

Modules:
    normalization: case numbers, jurisdictions, outcome labels, docket hashes
    docket_helpers: case type, status, summary and url helpers for dockets
"""

__all__ = [
    "normalize_case_number",
    "normalize_jurisdiction",
    "normalize_outcome_label",
    "create_docket_hash",
    "classify_case_type_from_docket",
    "determine_case_outcome_and_status",
    "build_case_summary_from_docket",
]
