"""
Court directory sync from CourtListener.
"""

from typing import Any, Dict, List, Optional
from datetime import timedelta
from sqlalchemy import select, update, insert, func

from core.exceptions import is_retryable
from models.base import CourtType
from models.court import Court
from pipeline.base import SyncManager
from pipeline.transformers.normalization import normalize_jurisdiction
from schemas.courtlistener import CourtRecord
from schemas.sync import CourtSyncOptions, CourtSyncResult
import logging

logger = logging.getLogger(__name__)

DEFAULT_JURISDICTION = "CA"
SOURCE_TAG = "courtlistener"


def extract_jurisdiction(court: CourtRecord) -> str:
    """Upstream jurisdiction when present, else a guess from the court name."""
    if court.jurisdiction:
        return normalize_jurisdiction(court.jurisdiction)
    name = court.name or court.full_name or ""
    if "California" in name or "CA " in name:
        return "CA"
    if "Federal" in name or "U.S." in name:
        return "US"
    return DEFAULT_JURISDICTION


def determine_court_type(court: CourtRecord) -> CourtType:
    name = court.name or court.full_name or ""
    if "Federal" in name or "U.S." in name or "Circuit" in name:
        return CourtType.FEDERAL
    return CourtType.STATE


def matches_jurisdiction(court: CourtRecord, jurisdiction: Optional[str]) -> bool:
    if not jurisdiction:
        return True
    return court.jurisdiction == jurisdiction or jurisdiction in (court.full_name or "")


class CourtSyncManager(SyncManager):
    """
    Mirror the CourtListener court list into the courts table.

    A court is matched by external id, then by case-insensitive name, so a
    court renamed upstream is updated in place rather than duplicated.
    """

    sync_type = "court"

    async def sync_courts(self, options: Optional[CourtSyncOptions] = None) -> CourtSyncResult:
        options = options or CourtSyncOptions()
        self._begin_run()
        result = CourtSyncResult()

        logger.info(f"Starting court sync {self.run_id} (jurisdiction={options.jurisdiction})")
        await self.log_sync_start(options)

        try:
            courts = await self.fetch_courts(options)
        except Exception as e:
            result.success = False
            result.aborted = True
            result.retryable = is_retryable(e)
            result.errors.append(f"Sync failed: {e}")
            result.duration_ms = self.elapsed_ms()
            logger.exception(f"Court sync {self.run_id} failed while fetching courts")
            await self.log_sync_error(e, result)
            return result

        result.courts_processed = len(courts)

        for start in range(0, len(courts), options.batch_size):
            batch = courts[start:start + options.batch_size]
            await self._process_batch(batch, options, result)

            if start + options.batch_size < len(courts):
                await self.clock.sleep(options.batch_pause_seconds)

        result.duration_ms = self.elapsed_ms()
        result.success = not result.errors
        await self.log_sync_completion(result)

        logger.info(
            f"Court sync {self.run_id} completed: processed={result.courts_processed} "
            f"created={result.courts_created} updated={result.courts_updated} "
            f"errors={len(result.errors)}"
        )
        return result

    async def fetch_courts(self, options: CourtSyncOptions) -> List[CourtRecord]:
        """Follow the cursor until exhausted or max_courts reached, then filter."""
        courts: List[CourtRecord] = []
        cursor = None

        while len(courts) < options.max_courts:
            page = await self.client.list_courts(cursor=cursor, ordering=options.ordering)
            courts.extend(page.results)
            cursor = page.next
            if not cursor or not page.results:
                break
            await self.clock.sleep(options.page_pause_seconds)

        courts = courts[:options.max_courts]
        filtered = [court for court in courts if matches_jurisdiction(court, options.jurisdiction)]
        logger.info(f"Fetched {len(courts)} courts from CourtListener, {len(filtered)} after filtering")
        return filtered

    async def _process_batch(
        self,
        batch: List[CourtRecord],
        options: CourtSyncOptions,
        result: CourtSyncResult
    ):
        for court in batch:
            try:
                existing = await self.find_existing_court(court)
                if existing is None:
                    await self.create_court(court)
                    result.courts_created += 1
                elif options.force_refresh or self.should_update_court(existing, court, options):
                    await self.update_court(existing["id"], court)
                    result.courts_updated += 1
                else:
                    result.courts_skipped += 1
            except Exception as e:
                await self._rollback_quietly()
                message = f"Failed to process court {court.display_name}: {e}"
                result.errors.append(message)
                logger.error(message)

    async def find_existing_court(self, court: CourtRecord) -> Optional[Dict[str, Any]]:
        columns = (Court.id, Court.name, Court.external_id, Court.updated_at)

        row = (await self.db.execute(
            select(*columns).where(Court.external_id == court.id)
        )).first()
        if row is not None:
            return dict(row._mapping)

        if not court.name:
            return None

        row = (await self.db.execute(
            select(*columns)
            .where(
                Court.external_id.is_(None),
                func.lower(Court.name) == court.name.lower()
            )
            .order_by(Court.id)
            .limit(1)
        )).first()
        return dict(row._mapping) if row is not None else None

    def should_update_court(
        self,
        existing: Dict[str, Any],
        court: CourtRecord,
        options: CourtSyncOptions
    ) -> bool:
        """Name or external id changed, or the row is older than the staleness window."""
        if existing["name"] != court.display_name:
            return True
        if existing["external_id"] != court.id:
            return True
        updated_at = existing["updated_at"]
        if updated_at is None:
            return True
        return self.clock.now() - updated_at > timedelta(days=options.staleness_days)

    def _provenance(self, court: CourtRecord) -> Dict[str, Any]:
        return {
            "source": SOURCE_TAG,
            "run_id": self.run_id,
            "fetched_at": self.clock.now().isoformat(),
            "raw": court.model_dump(mode="json"),
        }

    async def update_court(self, court_id: int, court: CourtRecord):
        await self.db.execute(
            update(Court)
            .where(Court.id == court_id)
            .values(
                name=court.display_name,
                external_id=court.id,
                jurisdiction=extract_jurisdiction(court),
                website=court.url,
                provenance=self._provenance(court),
                updated_at=self.clock.now(),
            )
        )
        await self.db.commit()

    async def create_court(self, court: CourtRecord):
        now = self.clock.now()
        await self.db.execute(
            insert(Court).values(
                name=court.display_name,
                type=determine_court_type(court),
                jurisdiction=extract_jurisdiction(court),
                external_id=court.id,
                website=court.url,
                provenance=self._provenance(court),
                created_at=now,
                updated_at=now,
            )
        )
        await self.db.commit()
