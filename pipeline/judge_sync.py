"""
Judge profile enrichment from CourtListener people records.
"""

from typing import Any, Dict, List, Optional
from datetime import timedelta
from sqlalchemy import select, update, or_

from core.exceptions import is_retryable
from models.judge import Judge
from pipeline.base import SyncManager
from schemas.sync import JudgeSyncOptions, JudgeSyncResult
import logging

logger = logging.getLogger(__name__)


def build_bio(person: Dict[str, Any]) -> Optional[str]:
    """Short biography from the person's judicial positions."""
    positions = person.get("positions") or []
    parts = []
    for position in positions:
        if not isinstance(position, dict):
            continue
        title = position.get("job_title") or position.get("position_type")
        court = position.get("court_full_name") or position.get("organization_name")
        start = (position.get("date_start") or "")[:4]
        if not title and not court:
            continue
        text = " at ".join(part for part in (title, court) if part)
        if start:
            text += f" (since {start})"
        parts.append(text)
    return "; ".join(parts)[:2000] if parts else None


def build_education(person: Dict[str, Any]) -> List[Dict[str, Any]]:
    education = []
    for entry in person.get("educations") or []:
        if not isinstance(entry, dict):
            continue
        school = entry.get("school")
        if isinstance(school, dict):
            school = school.get("name")
        education.append({
            "school": school,
            "degree": entry.get("degree_detail") or entry.get("degree_level"),
            "year": entry.get("degree_year"),
        })
    return education


class JudgeSyncManager(SyncManager):
    """
    Refresh profile fields of judges already linked to CourtListener.

    Judges are never created here, and directory-owned columns (name,
    jurisdiction, court) are left untouched.
    """

    sync_type = "judge"

    async def sync_judges(self, options: Optional[JudgeSyncOptions] = None) -> JudgeSyncResult:
        options = options or JudgeSyncOptions()
        self._begin_run()
        result = JudgeSyncResult()

        logger.info(f"Starting judge sync {self.run_id} (force_refresh={options.force_refresh})")
        await self.log_sync_start(options)

        try:
            judges = await self.get_judges_for_sync(options)
        except Exception as e:
            result.success = False
            result.aborted = True
            result.retryable = is_retryable(e)
            result.errors.append(f"Sync failed: {e}")
            result.duration_ms = self.elapsed_ms()
            logger.exception(f"Judge sync {self.run_id} failed while selecting judges")
            await self.log_sync_error(e, result)
            return result

        result.judges_processed = len(judges)

        for start in range(0, len(judges), options.batch_size):
            for judge in judges[start:start + options.batch_size]:
                try:
                    if await self.sync_judge(judge):
                        result.judges_updated += 1
                    else:
                        result.judges_skipped += 1
                except Exception as e:
                    await self._rollback_quietly()
                    message = f"Failed to sync judge {judge['name']}: {e}"
                    result.errors.append(message)
                    logger.error(message)

            if start + options.batch_size < len(judges):
                await self.clock.sleep(options.batch_pause_seconds)

        result.duration_ms = self.elapsed_ms()
        result.success = not result.errors
        await self.log_sync_completion(result)

        logger.info(
            f"Judge sync {self.run_id} completed: processed={result.judges_processed} "
            f"updated={result.judges_updated} errors={len(result.errors)}"
        )
        return result

    async def get_judges_for_sync(self, options: JudgeSyncOptions) -> List[Dict[str, Any]]:
        query = select(Judge.id, Judge.name, Judge.external_id).where(Judge.external_id.is_not(None))

        if options.jurisdiction:
            query = query.where(Judge.jurisdiction == options.jurisdiction)
        if options.judge_ids:
            query = query.where(Judge.id.in_(options.judge_ids))
        if not options.force_refresh:
            cutoff = self.clock.now() - timedelta(days=options.staleness_days)
            query = query.where(or_(Judge.last_synced_at.is_(None), Judge.last_synced_at < cutoff))

        rows = await self.db.execute(query.order_by(Judge.id).limit(options.max_judges))
        return [dict(row._mapping) for row in rows]

    async def sync_judge(self, judge: Dict[str, Any]) -> bool:
        """Returns False when upstream has no record for the judge."""
        person = await self.client.get_person(judge["external_id"])
        if person is None:
            logger.warning(f"No CourtListener person {judge['external_id']} for judge {judge['name']}")
            return False

        now = self.clock.now()
        values = {
            "education": build_education(person),
            "profile_metadata": {
                "source": "courtlistener",
                "run_id": self.run_id,
                "fetched_at": now.isoformat(),
                "name_full": person.get("name_full"),
                "slug": person.get("slug"),
                "date_dob": person.get("date_dob"),
                "positions_count": len(person.get("positions") or []),
            },
            "last_synced_at": now,
            "updated_at": now,
        }
        bio = build_bio(person)
        if bio:
            values["bio"] = bio

        await self.db.execute(update(Judge).where(Judge.id == judge["id"]).values(**values))
        await self.db.commit()
        return True
