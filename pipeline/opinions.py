"""
Lazy creation of opinion full-text rows for decided cases.
"""

from typing import Any, Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from models.opinion import Opinion
from pipeline.extractors.courtlistener import UpstreamClient
from pipeline.loaders.decision_repository import dialect_insert
from pipeline.transformers.docket_helpers import parse_timestamp, strip_html
from schemas.courtlistener import OpinionSummary
import logging

logger = logging.getLogger(__name__)


class OpinionTextLoader:
    """
    Fetch and store opinion text for a case at most once.

    Failures are logged and swallowed: a missing opinion text never fails
    the decision it belongs to, and the next run tries again.
    """

    def __init__(self, db_session: AsyncSession, client: UpstreamClient):
        self.db = db_session
        self.client = client

    async def opinion_exists(self, case_id: int, external_id: str) -> bool:
        result = await self.db.execute(
            select(Opinion.id).where(
                Opinion.case_id == case_id,
                Opinion.external_id == external_id
            )
        )
        return result.first() is not None

    async def ensure_opinion_for_case(self, case_id: int, decision: OpinionSummary) -> Optional[bool]:
        """
        Returns True when a row was written, False when it already existed
        or no text was available, None on failure.
        """
        opinion_id = decision.opinion_id or decision.id
        if not opinion_id:
            return False
        external_id = str(opinion_id)

        try:
            if await self.opinion_exists(case_id, external_id):
                return False

            detail = await self.client.get_opinion_detail(opinion_id)
            plain_text = _opinion_text(detail)
            if not plain_text:
                logger.warning(f"Opinion {opinion_id} for case {case_id} has no text, skipping")
                return False

            insert = dialect_insert(self.db)
            values = {
                "case_id": case_id,
                "cluster_id": str(detail.cluster_id or decision.cluster_id or "") or None,
                "opinion_type": detail.type or "lead",
                "author_name": detail.author_str or decision.author_str,
                "per_curiam": bool(detail.per_curiam),
                "plain_text": plain_text,
                "html_text": detail.html_with_citations or detail.html,
                "external_id": external_id,
                "date_created": parse_timestamp(detail.date_created) or parse_timestamp(decision.date_filed),
                "updated_at": utcnow(),
            }
            stmt = insert(Opinion).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["external_id"],
                set_={
                    column: stmt.excluded[column]
                    for column in values
                    if column != "external_id"
                }
            )
            await self.db.execute(stmt)
            await self.db.commit()
            return True

        except Exception as e:
            try:
                await self.db.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback after opinion failure failed")
            logger.error(
                f"Failed to ensure opinion {opinion_id} for case {case_id}: {e}",
                extra={"error_context": {"case_id": case_id, "opinion_id": opinion_id}}
            )
            return None


def _opinion_text(detail: Any) -> Optional[str]:
    if detail.plain_text and detail.plain_text.strip():
        return detail.plain_text
    for html in (detail.html, detail.html_with_citations):
        if html:
            text = strip_html(html)
            if text:
                return text
    return None
