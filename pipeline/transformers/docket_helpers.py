"""
Helpers that turn CourtListener dockets and opinions into case fields.
"""

from typing import Callable, List, NamedTuple, Optional, Tuple
from datetime import date, datetime, timezone
import re

from models.base import CaseStatus, OutcomeCategory
from schemas.courtlistener import Docket, OpinionSummary
from pipeline.transformers.normalization import normalize_outcome_label, to_title

COURTLISTENER_WEB_URL = "https://www.courtlistener.com"
SUMMARY_MAX_LENGTH = 500

_TAGS = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


class DocketText(NamedTuple):
    """Lowercased docket fields the case-type rules look at"""
    nature: str
    jurisdiction: str
    name: str

    @classmethod
    def from_docket(cls, docket: Docket) -> "DocketText":
        return cls(
            nature=(docket.nature_of_suit or "").lower(),
            jurisdiction=(docket.jurisdiction_type or "").lower(),
            name=(docket.case_name or docket.case_name_short or "").lower(),
        )


class CaseDisposition(NamedTuple):
    decision_date: Optional[date]
    status: CaseStatus
    outcome_label: Optional[str]


CaseTypeRule = Tuple[Callable[[DocketText], bool], str]

# Evaluated top to bottom, first match wins.
CASE_TYPE_RULES: List[CaseTypeRule] = [
    (lambda t: "criminal" in t.jurisdiction or "criminal" in t.nature or "people v" in t.name,
     "Criminal"),
    (lambda t: "family" in t.jurisdiction or "domestic" in t.nature or "family" in t.nature
     or "marriage" in t.name or "custody" in t.name,
     "Family Law"),
    (lambda t: "probate" in t.nature or "estate" in t.name, "Probate"),
    (lambda t: "bankruptcy" in t.nature or "bankruptcy" in t.name, "Bankruptcy"),
    (lambda t: "tax" in t.nature or "tax" in t.jurisdiction, "Tax"),
    (lambda t: "labor" in t.nature or "employment" in t.nature, "Employment"),
    (lambda t: "appeal" in t.jurisdiction or "appeal" in t.name, "Appeals"),
    (lambda t: "traffic" in t.nature, "Traffic"),
    (lambda t: "immigration" in t.nature or "immigration" in t.name, "Immigration"),
    (lambda t: "insurance" in t.nature, "Insurance"),
    (lambda t: "civil" in t.jurisdiction or "civil" in t.nature, "Civil Litigation"),
]

DEFAULT_CASE_TYPE = "General Litigation"


def format_date(value) -> Optional[date]:
    """Parse an upstream date or timestamp string; None when unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def parse_timestamp(value) -> Optional[datetime]:
    """Naive-UTC datetime from an upstream timestamp; date-only values map to midnight."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            day = format_date(text)
            return datetime.combine(day, datetime.min.time()) if day else None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def build_source_url(absolute_url: Optional[str]) -> Optional[str]:
    if not absolute_url:
        return None
    if absolute_url.startswith("http"):
        return absolute_url
    return f"{COURTLISTENER_WEB_URL}{absolute_url}"


def strip_html(html: str) -> str:
    return _WHITESPACE.sub(" ", _TAGS.sub(" ", html)).strip()


def classify_case_type_from_docket(docket: Docket) -> str:
    text = DocketText.from_docket(docket)
    for predicate, case_type in CASE_TYPE_RULES:
        if predicate(text):
            return case_type
    return DEFAULT_CASE_TYPE


def build_case_summary_from_docket(
    docket: Docket,
    filing_date: date,
    decision_date: Optional[date],
    last_activity: Optional[date]
) -> Optional[str]:
    """One-line docket summary, capped at 500 characters."""
    parts = [f"Filed {filing_date.isoformat()}"]

    if decision_date:
        parts.append(f"Closed {decision_date.isoformat()}")
    elif last_activity and last_activity != filing_date:
        parts.append(f"Last activity {last_activity.isoformat()}")

    if docket.nature_of_suit:
        parts.append(f"Nature: {docket.nature_of_suit}")

    if docket.jurisdiction_type:
        parts.append(f"Jurisdiction: {to_title(docket.jurisdiction_type)}")

    if docket.docket_entries_count and docket.docket_entries_count > 0:
        parts.append(f"Entries: {docket.docket_entries_count}")

    if docket.assigned_to_str:
        parts.append(f"Assigned: {docket.assigned_to_str}")

    return " | ".join(parts)[:SUMMARY_MAX_LENGTH]


def get_decision_key(decision: OpinionSummary, now: Optional[datetime] = None) -> str:
    """
    Stable external id for a decision: opinion id, then id, then cluster id.

    The timestamp fallback is not stable across runs; it only applies to
    items upstream returned without any id.
    """
    if decision.opinion_id:
        return str(decision.opinion_id)
    if decision.id:
        return str(decision.id)
    if decision.cluster_id:
        return f"cluster-{decision.cluster_id}"
    moment = now or datetime.now()
    return f"decision-{int(moment.timestamp() * 1000)}"


def determine_case_outcome_and_status(docket: Docket) -> CaseDisposition:
    """
    Decision date is the termination date, else the last filing date.

    Dismissed and settled outcomes map straight to a status; anything else
    is DECIDED when a decision date exists and PENDING otherwise.
    """
    decision_date = format_date(docket.date_terminated) or format_date(docket.date_last_filing)
    outcome = normalize_outcome_label(docket.status or ("Closed" if decision_date else None))

    if outcome.category == OutcomeCategory.DISMISSED:
        status = CaseStatus.DISMISSED
    elif outcome.category == OutcomeCategory.SETTLED:
        status = CaseStatus.SETTLED
    else:
        status = CaseStatus.DECIDED if decision_date else CaseStatus.PENDING

    return CaseDisposition(decision_date, status, outcome.label)
