"""
API endpoint tests
"""

import httpx
import pytest
import pytest_asyncio
from datetime import timedelta
from sqlalchemy import insert

from api.dependencies import get_db, get_upstream_client
from api.main import app
from core.config import settings
from core.exceptions import NetworkError
from models.base import SyncLogStatus
from models.sync_log import SyncLog
from schemas.courtlistener import CourtPage, CourtRecord

NO_PAUSE = {"page_pause_seconds": 0, "batch_pause_seconds": 0}


@pytest_asyncio.fixture
async def client(db_session, fake_client):
    """HTTP client with the database and upstream overridden"""

    async def override_get_db():
        yield db_session

    async def override_get_upstream_client():
        yield fake_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_upstream_client] = override_get_upstream_client

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


async def add_log(session, run_id, sync_type, status, started_at):
    await session.execute(insert(SyncLog).values(
        run_id=run_id, sync_type=sync_type, status=status, started_at=started_at
    ))
    await session.commit()


@pytest.mark.asyncio
async def test_health_without_runs_is_healthy(client):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["latest_runs"] == []
    assert data["pending_jobs"] == 0


@pytest.mark.asyncio
async def test_health_is_degraded_when_latest_run_of_a_type_failed(client, db_session, clock):
    now = clock.now()
    await add_log(db_session, "court-1", "court", SyncLogStatus.FAILED, now - timedelta(days=2))
    await add_log(db_session, "court-2", "court", SyncLogStatus.COMPLETED, now - timedelta(days=1))
    await add_log(db_session, "decision-1", "decision", SyncLogStatus.FAILED, now)

    data = (await client.get("/health")).json()

    assert data["status"] == "degraded"
    assert data["total_sync_types"] == 2
    assert data["failed_sync_types"] == 1
    latest = {run["sync_type"]: run for run in data["latest_runs"]}
    assert latest["court"]["run_id"] == "court-2"
    assert latest["decision"]["status"] == "failed"


@pytest.mark.asyncio
async def test_health_is_unhealthy_when_every_type_failed(client, db_session, clock):
    await add_log(db_session, "decision-1", "decision", SyncLogStatus.FAILED, clock.now())

    assert (await client.get("/health")).json()["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert "X-API-Latency-ms" in response.headers


@pytest.mark.asyncio
async def test_request_id_is_generated(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert len(response.headers["X-Request-ID"]) == 36


@pytest.mark.asyncio
async def test_enqueue_and_queue_stats(client):
    response = await client.post("/sync/queue", json={
        "type": "decision",
        "options": {"days_since_last": 1},
        "priority": 100,
    })

    assert response.status_code == 202
    body = response.json()
    assert body["type"] == "decision"
    assert body["status"] == "pending"
    assert len(body["job_id"]) == 36

    stats = (await client.get("/sync/queue/stats")).json()
    assert stats["pending"] == 1
    assert stats["total"] == 1
    assert stats["pending_by_type"]["decision"] == 1


@pytest.mark.asyncio
async def test_enqueue_rejects_unknown_type(client):
    response = await client.post("/sync/queue", json={"type": "reindex"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_cancel_queue(client):
    await client.post("/sync/queue", json={"type": "decision"})
    await client.post("/sync/queue", json={"type": "court"})

    response = await client.delete("/sync/queue", params={"type": "decision"})
    assert response.status_code == 200
    assert response.json() == {"cancelled": 1}

    stats = (await client.get("/sync/queue/stats")).json()
    assert stats["cancelled"] == 1
    assert stats["pending"] == 1


@pytest.mark.asyncio
async def test_cancel_queue_with_unknown_type(client):
    response = await client.delete("/sync/queue", params={"type": "bogus"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_court_sync_endpoint(client, fake_client):
    fake_client.court_pages = [CourtPage(results=[CourtRecord(id="cal", name="Supreme Court of California")])]

    response = await client.post("/sync/courts", json=NO_PAUSE)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["sync_type"] == "court"
    assert body["data"]["courts_created"] == 1
    assert body["errors"] == []

    status = (await client.get("/sync/status", params={"sync_type": "court"})).json()
    assert status["recent_runs"][0]["sync_type"] == "court"
    assert status["recent_runs"][0]["status"] == "completed"
    assert status["queue"]["total"] == 0


@pytest.mark.asyncio
async def test_decision_sync_with_failing_judge_is_partial(client, fake_client, make_judge, make_opinion):
    await make_judge(name="Working Judge", external_id="1")
    await make_judge(name="Failing Judge", external_id="2")
    fake_client.opinions["1"] = [make_opinion(1)]
    fake_client.failures["2"] = NetworkError("connection reset")

    response = await client.post("/sync/decisions", json={
        "batch_pause_seconds": 0,
        "judge_pause_seconds": 0,
        "years_back": 10,
    })

    assert response.status_code == 207
    body = response.json()
    assert body["success"] is False
    assert body["data"]["judges_processed"] == 2
    assert body["data"]["decisions_created"] == 1
    assert len(body["errors"]) == 1
    assert "Failing Judge" in body["errors"][0]


@pytest.mark.asyncio
async def test_status_rejects_unknown_sync_type(client):
    response = await client.get("/sync/status", params={"sync_type": "bogus"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_sync_without_upstream_token_is_unavailable(db_session, monkeypatch):
    monkeypatch.setattr(settings, "COURTLISTENER_API_TOKEN", None)
    monkeypatch.setattr(settings, "COURTLISTENER_API_KEY", None)

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
            response = await test_client.post("/sync/courts")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
