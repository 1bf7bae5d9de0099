"""
CourtListener REST v4 client with rate limiting and retry logic.

This module provides:
- Token authentication
- A fixed pause after every request to respect upstream rate limits
- Exponential backoff retry for timeouts, network errors and 5xx responses
- Retry-After handling for HTTP 429
- A circuit breaker that fails fast after repeated failures
- Offset pagination for opinions/dockets and cursor pagination for courts
"""

import httpx
from typing import List, Dict, Any, Optional, Protocol
from datetime import date, timedelta
from core.clock import Clock, system_clock, subtract_years
from core.config import settings
from core.exceptions import (
    AuthenticationError,
    CircuitOpenError,
    ConfigurationError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    UpstreamError,
)
from schemas.courtlistener import (
    CourtPage,
    Docket,
    OpinionDetail,
    OpinionSummary,
    resource_id,
)
import logging

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
MAX_OPINIONS_PER_JUDGE = 200
UNKNOWN_CASE = "Unknown Case"


class UpstreamClient(Protocol):
    """Operations the sync managers need from the upstream API."""

    async def list_courts(self, cursor: Optional[str] = None, ordering: str = "id") -> CourtPage:
        ...

    async def get_recent_opinions_by_judge(
        self, external_judge_id: str, years_back: int = 3
    ) -> List[OpinionSummary]:
        ...

    async def get_recent_dockets_by_judge(
        self,
        external_judge_id: str,
        start_date: Optional[date] = None,
        years_back: int = 5,
        max_records: int = 300
    ) -> List[Docket]:
        ...

    async def get_opinion_detail(self, opinion_id: Any) -> OpinionDetail:
        ...

    async def get_person(self, external_judge_id: str) -> Optional[Dict[str, Any]]:
        ...


class CourtListenerClient:
    """
    Async CourtListener client.

    Attributes:
        max_retries: Maximum number of attempts per request (default: 3)
        retry_delay: Initial retry delay in seconds, doubled per attempt
        request_delay: Pause after every successful request
        timeout: Request timeout in seconds
        circuit_breaker_threshold: Failures before circuit opens (default: 5)
        circuit_breaker_timeout: Seconds before circuit reset (default: 60)
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        request_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: float = 1.0,
        clock: Optional[Clock] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.api_token = api_token or settings.courtlistener_token
        if not self.api_token:
            raise ConfigurationError(
                "COURTLISTENER_API_TOKEN (or COURTLISTENER_API_KEY) is required",
                context={"setting": "COURTLISTENER_API_TOKEN"}
            )

        self.base_url = (base_url or settings.COURTLISTENER_BASE_URL).rstrip("/")
        self.request_delay = (
            settings.COURTLISTENER_REQUEST_DELAY if request_delay is None else request_delay
        )
        self.timeout = settings.COURTLISTENER_TIMEOUT if timeout is None else timeout
        self.max_retries = max_retries or settings.COURTLISTENER_MAX_RETRIES
        self.retry_delay = retry_delay
        self.clock = clock or system_clock

        self._client = http_client or httpx.AsyncClient()
        self._owns_client = http_client is None

        # Circuit breaker state
        self._circuit_breaker_failures = 0
        self._circuit_breaker_threshold = 5
        self._circuit_breaker_open_until = None
        self._circuit_breaker_timeout = 60  # seconds

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "CourtListenerClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": "courtsync/1.0",
            "Authorization": f"Token {self.api_token}",
        }

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    def _is_circuit_open(self) -> bool:
        if self._circuit_breaker_open_until is None:
            return False

        if self.clock.now() >= self._circuit_breaker_open_until:
            logger.info("Circuit breaker reset for CourtListener")
            self._circuit_breaker_failures = 0
            self._circuit_breaker_open_until = None
            return False

        return True

    def _record_failure(self):
        self._circuit_breaker_failures += 1

        if self._circuit_breaker_failures >= self._circuit_breaker_threshold:
            self._circuit_breaker_open_until = self.clock.now() + timedelta(
                seconds=self._circuit_breaker_timeout
            )
            logger.warning(
                f"Circuit breaker opened for CourtListener. "
                f"Will retry after {self._circuit_breaker_timeout} seconds."
            )

    def _record_success(self):
        self._circuit_breaker_failures = 0
        self._circuit_breaker_open_until = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}{endpoint}"

    async def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET a JSON resource with retry logic and exponential backoff.

        Raises:
            AuthenticationError: HTTP 401/403
            ResourceNotFoundError: HTTP 404
            RateLimitError: HTTP 429 after max retries
            NetworkError: timeouts, transport errors or 5xx after max retries
            CircuitOpenError: circuit breaker is open
        """
        url = self._url(endpoint)
        query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}

        if self._is_circuit_open():
            raise CircuitOpenError(
                "Circuit breaker is open for CourtListener",
                context={
                    "url": url,
                    "open_until": self._circuit_breaker_open_until.isoformat()
                }
            )

        for attempt in range(self.max_retries):
            is_last = attempt == self.max_retries - 1
            delay = self.retry_delay * (2 ** attempt)

            try:
                logger.debug(f"Request attempt {attempt + 1}/{self.max_retries} to {url}")
                response = await self._client.get(
                    url,
                    headers=self.headers,
                    params=query or None,
                    timeout=self.timeout
                )
            except httpx.TimeoutException as e:
                if not is_last:
                    logger.warning(f"Request timeout. Retrying in {delay} seconds")
                    await self.clock.sleep(delay)
                    continue
                self._record_failure()
                raise NetworkError(
                    f"Request timeout after {self.max_retries} retries",
                    context={"url": url, "timeout": self.timeout, "retry_count": attempt + 1},
                    original_exception=e
                )
            except httpx.TransportError as e:
                if not is_last:
                    logger.warning(f"Network error. Retrying in {delay} seconds: {e}")
                    await self.clock.sleep(delay)
                    continue
                self._record_failure()
                raise NetworkError(
                    f"Network error after {self.max_retries} retries",
                    context={"url": url, "retry_count": attempt + 1},
                    original_exception=e
                )

            status = response.status_code

            if status in (401, 403):
                self._record_failure()
                raise AuthenticationError(
                    f"Authentication failed for {url}",
                    context={"status_code": status, "url": url}
                )

            if status == 404:
                raise ResourceNotFoundError(
                    f"Resource not found: {url}",
                    context={"status_code": 404, "url": url}
                )

            if status == 429:
                retry_after = _retry_after_seconds(response, delay)
                if not is_last:
                    logger.warning(f"Rate limited. Retrying after {retry_after} seconds")
                    await self.clock.sleep(retry_after)
                    continue
                self._record_failure()
                raise RateLimitError(
                    f"Rate limit exceeded for {url}",
                    context={"status_code": 429, "url": url, "retry_count": attempt + 1},
                    retry_after=retry_after
                )

            if status >= 500:
                if not is_last:
                    logger.warning(
                        f"Server error {status}. "
                        f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await self.clock.sleep(delay)
                    continue
                self._record_failure()
                raise NetworkError(
                    f"Server error after {self.max_retries} retries",
                    context={
                        "status_code": status,
                        "url": url,
                        "retry_count": attempt + 1,
                        "response_body": response.text[:500]
                    }
                )

            if status >= 400:
                raise UpstreamError(
                    f"CourtListener API error {status}",
                    context={"status_code": status, "url": url, "response_body": response.text[:500]}
                )

            self._record_success()
            await self.clock.sleep(self.request_delay)
            return response.json()

        raise NetworkError("Max retries exceeded", context={"url": url})

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def list_courts(self, cursor: Optional[str] = None, ordering: str = "id") -> CourtPage:
        """
        One page of courts. `cursor` is the `next` link of the previous page.
        """
        if cursor:
            data = await self._request(cursor)
        else:
            data = await self._request("/courts/", {"ordering": ordering, "page_size": PAGE_SIZE})
        return CourtPage.model_validate(data)

    async def get_opinions_by_judge(
        self,
        external_judge_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = PAGE_SIZE,
        offset: int = 0
    ) -> Dict[str, Any]:
        return await self._request("/opinions/", {
            "author": external_judge_id,
            "ordering": "-date_created",
            "cluster__date_filed__gte": start_date.isoformat() if start_date else None,
            "cluster__date_filed__lte": end_date.isoformat() if end_date else None,
            "page_size": limit,
            "offset": offset or None,
        })

    async def get_cluster_details(self, cluster_id: Any) -> Dict[str, Any]:
        return await self._request(f"/clusters/{cluster_id}/")

    async def get_recent_opinions_by_judge(
        self, external_judge_id: str, years_back: int = 3
    ) -> List[OpinionSummary]:
        """
        Opinions authored by a judge in the last `years_back` years, each
        joined with its cluster (case name, filing date, precedential status).

        A failing first page propagates; a failing later page ends paging
        with what was already collected. A failing cluster lookup yields an
        "Unknown Case" item.
        """
        end_date = self.clock.today()
        start_date = subtract_years(end_date, years_back)

        summaries: List[OpinionSummary] = []
        offset = 0
        has_more = True

        while has_more and len(summaries) < MAX_OPINIONS_PER_JUDGE:
            try:
                page = await self.get_opinions_by_judge(
                    external_judge_id, start_date, end_date, PAGE_SIZE, offset
                )
            except UpstreamError as e:
                if offset == 0:
                    raise
                logger.error(
                    f"Error fetching opinions for judge {external_judge_id} at offset {offset}: {e}"
                )
                break

            results = page.get("results") or []
            for opinion in results:
                cluster_id = resource_id(opinion.get("cluster"))
                if cluster_id is None:
                    continue
                summaries.append(await self._join_cluster(opinion, cluster_id))

            has_more = bool(page.get("next")) and len(results) == PAGE_SIZE
            offset += PAGE_SIZE
            logger.debug(
                f"Fetched {len(results)} opinions for judge {external_judge_id}, "
                f"total {len(summaries)}"
            )

        return summaries[:MAX_OPINIONS_PER_JUDGE]

    async def _join_cluster(self, opinion: Dict[str, Any], cluster_id: int) -> OpinionSummary:
        opinion_id = opinion.get("id")
        try:
            cluster = await self.get_cluster_details(cluster_id)
        except UpstreamError as e:
            logger.error(f"Error fetching cluster {cluster_id}: {e}")
            return OpinionSummary(
                id=opinion_id,
                opinion_id=opinion_id,
                cluster_id=cluster_id,
                case_name=UNKNOWN_CASE,
                date_filed=None,
            )

        return OpinionSummary(
            id=opinion_id,
            opinion_id=opinion_id,
            cluster_id=cluster_id,
            case_name=cluster.get("case_name") or UNKNOWN_CASE,
            date_filed=cluster.get("date_filed"),
            precedential_status=cluster.get("precedential_status"),
            author_str=opinion.get("author_str"),
            absolute_url=cluster.get("absolute_url"),
        )

    async def get_recent_dockets_by_judge(
        self,
        external_judge_id: str,
        start_date: Optional[date] = None,
        years_back: int = 5,
        max_records: int = 300,
        end_date: Optional[date] = None
    ) -> List[Docket]:
        """Dockets assigned to a judge, newest filing first, capped at max_records."""
        end_date = end_date or self.clock.today()
        start_date = start_date or subtract_years(end_date, years_back)

        dockets: List[Docket] = []
        offset = 0
        has_more = True

        while has_more and len(dockets) < max_records:
            try:
                page = await self._request("/dockets/", {
                    "assigned_to_id": external_judge_id,
                    "ordering": "-date_filed",
                    "date_filed__gte": start_date.isoformat(),
                    "date_filed__lte": end_date.isoformat(),
                    "page_size": PAGE_SIZE,
                    "offset": offset or None,
                })
            except UpstreamError as e:
                if offset == 0:
                    raise
                logger.error(
                    f"Error fetching dockets for judge {external_judge_id} at offset {offset}: {e}"
                )
                break

            results = page.get("results") or []
            dockets.extend(Docket.model_validate(item) for item in results)

            has_more = bool(page.get("next")) and len(results) == PAGE_SIZE
            offset += PAGE_SIZE

        return dockets[:max_records]

    async def get_opinion_detail(self, opinion_id: Any) -> OpinionDetail:
        data = await self._request(f"/opinions/{opinion_id}/")
        return OpinionDetail.model_validate(data)

    async def get_person(self, external_judge_id: str) -> Optional[Dict[str, Any]]:
        """Judge profile from /people/{id}/, or None when upstream has no such person."""
        try:
            return await self._request(f"/people/{external_judge_id}/")
        except ResourceNotFoundError:
            return None


def _retry_after_seconds(response: httpx.Response, default: float) -> float:
    value = response.headers.get("Retry-After")
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default
