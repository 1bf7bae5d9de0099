"""
Normalization of upstream identifiers and labels.

All functions here are pure. Outcome classification is an ordered rule
table: the first matching rule wins, so the order of OUTCOME_RULES is part
of the contract.
"""

from typing import Any, List, NamedTuple, Optional, Pattern
from datetime import date, datetime
import hashlib
import re

from models.base import OutcomeCategory


class OutcomeRule(NamedTuple):
    category: OutcomeCategory
    label: str
    patterns: List[Pattern]

    def matches(self, value: str) -> bool:
        return any(pattern.search(value) for pattern in self.patterns)


class NormalizedOutcome(NamedTuple):
    label: Optional[str]
    category: OutcomeCategory


class NormalizedCaseNumber(NamedTuple):
    display: Optional[str]
    key: Optional[str]


def _patterns(*expressions: str) -> List[Pattern]:
    return [re.compile(expression, re.IGNORECASE) for expression in expressions]


# First match wins. Dismissal outranks settlement, which outranks the
# party-judgment rules, which outrank the generic open/closed states.
OUTCOME_RULES: List[OutcomeRule] = [
    OutcomeRule(OutcomeCategory.DISMISSED, "Dismissed",
                _patterns(r"dismiss", r"thrown out", r"quash", r"terminated")),
    OutcomeRule(OutcomeCategory.SETTLED, "Settled",
                _patterns(r"settle", r"stipulated judgment")),
    OutcomeRule(OutcomeCategory.VACATED, "Vacated",
                _patterns(r"vacated?", r"set aside")),
    OutcomeRule(OutcomeCategory.REMANDED, "Remanded",
                _patterns(r"remand")),
    OutcomeRule(OutcomeCategory.JUDGMENT_PLAINTIFF, "Judgment for Plaintiff",
                _patterns(r"plaintiff", r"for the plaintiff", r"grant.*plaintiff")),
    OutcomeRule(OutcomeCategory.JUDGMENT_DEFENDANT, "Judgment for Defendant",
                _patterns(r"defendant", r"for the defendant", r"grant.*defendant")),
    OutcomeRule(OutcomeCategory.PENDING, "Active",
                _patterns(r"pending", r"active", r"open")),
    OutcomeRule(OutcomeCategory.CLOSED, "Closed",
                _patterns(r"closed", r"disposed", r"completed")),
]


ROLE_ALIASES = {
    "plaintiff": "plaintiff",
    "pltf": "plaintiff",
    "pet": "petitioner",
    "petitioner": "petitioner",
    "prose": "pro se",
    "respondent": "respondent",
    "resp": "respondent",
    "defendant": "defendant",
    "deft": "defendant",
    "appellee": "appellee",
    "appellant": "appellant",
    "pros": "prosecution",
    "prosecutor": "prosecution",
    "da": "prosecution",
    "state": "prosecution",
    "publicdefender": "public defender",
    "defense": "defense",
    "guardianadlitum": "guardian ad litem",
}

FEDERAL_ALIASES = {"USA", "UNITED STATES", "FEDERAL", "US"}

_DASHES = re.compile(r"[–—]")
_WHITESPACE = re.compile(r"\s+")
_NON_KEY = re.compile(r"[^A-Z0-9]")


def to_title(value: str) -> str:
    """Lowercase, underscores to spaces, collapse whitespace, capitalize words."""
    cleaned = _WHITESPACE.sub(" ", value.lower().replace("_", " ")).strip()
    return re.sub(r"(^|\s)(\w)", lambda m: m.group(1) + m.group(2).upper(), cleaned)


def normalize_outcome_label(raw: Optional[str]) -> NormalizedOutcome:
    """
    Map a free-text disposition to a canonical label and category.

    Blank input gives (None, "other"); text that matches no rule is passed
    through title-cased with category "other".
    """
    value = (raw or "").strip()
    if not value:
        return NormalizedOutcome(None, OutcomeCategory.OTHER)

    for rule in OUTCOME_RULES:
        if rule.matches(value):
            return NormalizedOutcome(rule.label, rule.category)

    return NormalizedOutcome(to_title(value), OutcomeCategory.OTHER)


def normalize_jurisdiction(value: Optional[str]) -> Optional[str]:
    """Canonical short jurisdiction code ("US", "CA", ...)."""
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None

    upper = trimmed.upper()
    if upper in FEDERAL_ALIASES:
        return "US"

    if re.fullmatch(r"[A-Z]{2}", upper):
        return upper

    if "CALIFORNIA" in upper:
        return "CA"
    if "NEW YORK" in upper:
        return "NY"

    return upper[:4]


def normalize_case_number(raw: Any, fallback: Any = None) -> NormalizedCaseNumber:
    """
    Display form and hashing key for a case number.

    The display keeps punctuation (dashes unified, whitespace collapsed,
    uppercased, max 100 chars). The key keeps only [A-Z0-9] and is only
    used for hashing. Missing or blank input falls back to the fallback
    value, typically an upstream id.
    """
    text = "" if raw is None else str(raw).strip()
    if not text:
        if fallback is None or fallback == "":
            return NormalizedCaseNumber(None, None)
        return normalize_case_number(str(fallback))

    display = _WHITESPACE.sub(" ", _DASHES.sub("-", text)).upper()[:100]
    key = _NON_KEY.sub("", display)

    return NormalizedCaseNumber(display, key or None)


def _date_part(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)[:10]


def create_docket_hash(
    case_number_key: Optional[str],
    jurisdiction: Optional[str] = None,
    judge_id: Any = None,
    external_id: Any = None,
    filing_date: Any = None
) -> Optional[str]:
    """
    SHA-1 idempotency key for a case row.

    Present parts are joined with "|" in a fixed order; absent parts are
    dropped. Returns None when every part is empty, in which case callers
    fall back to the (case_number, jurisdiction) key.
    """
    parts = [
        case_number_key.upper() if case_number_key else "",
        jurisdiction.upper() if jurisdiction else "",
        str(judge_id) if judge_id else "",
        str(external_id) if external_id else "",
        _date_part(filing_date),
    ]

    payload = "|".join(part for part in parts if part)
    if not payload:
        return None

    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


def normalize_party_role(role: Optional[str]) -> Optional[str]:
    if not role:
        return None
    compact = re.sub(r"[^a-z]", "", role.lower())
    return ROLE_ALIASES.get(compact) or role.strip().lower()
