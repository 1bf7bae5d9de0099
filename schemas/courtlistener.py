"""
Pydantic models for CourtListener REST v4 payloads.

Only the fields the pipeline reads are declared; everything else is kept
via extra="allow" so the raw payload can be stored as provenance.
"""

from pydantic import BaseModel, validator
from typing import Optional, List, Any
import re


def resource_id(value: Any) -> Optional[int]:
    """
    Upstream links are either bare ids or resource URLs
    (".../clusters/123/"). Returns the trailing integer id.
    """
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    match = re.search(r"(\d+)/?$", str(value))
    return int(match.group(1)) if match else None


class CourtRecord(BaseModel):
    """Entry from /courts/"""
    id: str
    name: Optional[str] = None
    full_name: Optional[str] = None
    short_name: Optional[str] = None
    jurisdiction: Optional[str] = None
    url: Optional[str] = None
    citation_string: Optional[str] = None
    in_use: Optional[bool] = None

    @validator("id", pre=True)
    def coerce_id(cls, v):
        return str(v)

    @property
    def display_name(self) -> str:
        return self.name or self.full_name or self.short_name or self.id

    class Config:
        extra = "allow"


class CourtPage(BaseModel):
    """One cursor page of courts"""
    results: List[CourtRecord] = []
    next: Optional[str] = None


class OpinionSummary(BaseModel):
    """
    An opinion authored by a judge, joined with its cluster.

    case_name/date_filed/precedential_status come from the cluster; when
    the cluster lookup failed case_name is "Unknown Case" and date_filed
    is None.
    """
    id: Optional[int] = None
    opinion_id: Optional[int] = None
    cluster_id: Optional[int] = None
    case_name: Optional[str] = None
    date_filed: Optional[str] = None
    precedential_status: Optional[str] = None
    author_str: Optional[str] = None
    absolute_url: Optional[str] = None

    class Config:
        extra = "allow"


class Docket(BaseModel):
    """Entry from /dockets/"""
    id: int
    absolute_url: Optional[str] = None
    case_name: Optional[str] = None
    case_name_short: Optional[str] = None
    docket_number: Optional[str] = None
    pacer_case_id: Optional[str] = None
    court_id: Optional[str] = None
    date_filed: Optional[str] = None
    date_terminated: Optional[str] = None
    date_last_filing: Optional[str] = None
    jurisdiction_type: Optional[str] = None
    nature_of_suit: Optional[str] = None
    assigned_to_str: Optional[str] = None
    assigned_to_id: Optional[str] = None
    status: Optional[str] = None
    docket_entries_count: Optional[int] = None

    @validator("docket_number", "pacer_case_id", "court_id", "assigned_to_id", pre=True)
    def coerce_str(cls, v):
        if v is None:
            return None
        return str(v)

    class Config:
        extra = "allow"


class OpinionDetail(BaseModel):
    """Entry from /opinions/{id}/"""
    id: int
    cluster: Optional[Any] = None
    type: Optional[str] = None
    author_str: Optional[str] = None
    per_curiam: Optional[bool] = None
    plain_text: Optional[str] = None
    html: Optional[str] = None
    html_with_citations: Optional[str] = None
    date_created: Optional[str] = None

    @property
    def cluster_id(self) -> Optional[int]:
        return resource_id(self.cluster)

    class Config:
        extra = "allow"
