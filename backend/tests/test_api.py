"""HTTP flows through the FastAPI app with providers mocked."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from neoclip import main
from neoclip.api.deps import get_http_client
from neoclip.config import get_settings
from neoclip.database import get_db
from neoclip.main import create_app
from neoclip.models import Generation, GenerationEvent
from neoclip.models.enums import GenerationStatus, Tier
from neoclip.utils.datetime import utc_now
from tests.conftest import counters, make_user


@asynccontextmanager
async def api_client(session, settings, handler):
    app = create_app(settings)
    provider_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def override_db():
        yield session

    async def override_http_client():
        yield provider_client

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_http_client] = override_http_client
    app.dependency_overrides[get_settings] = lambda: settings

    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        await provider_client.aclose()


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected provider call: {request.url}")


async def _processing_generation(session, user_id, **overrides) -> Generation:
    values = dict(
        id=uuid.uuid4(),
        user_id=user_id,
        prompt="ocean waves",
        tier=Tier.FREE.value,
        length=10,
        provider_key="wan",
        provider_name="Wan 2.1",
        provider_task_id="pred-old",
        status=GenerationStatus.PROCESSING.value,
        poll_count=0,
        empty_result_count=0,
        created_at=utc_now(),
    )
    values.update(overrides)
    generation = Generation(**values)
    session.add(generation)
    await session.commit()
    return generation


@pytest.mark.asyncio
async def test_sunset_timelapse_happy_path(session, settings, user):
    statuses = iter(
        [
            {"id": "pred-1", "status": "starting"},
            {"id": "pred-1", "status": "processing"},
            {"id": "pred-1", "status": "succeeded", "output": "https://replicate.delivery/sunset.mp4"},
        ]
    )

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            assert request.url.path == "/v1/models/wan-video/wan-2.1-1.3b/predictions"
            return httpx.Response(201, json={"id": "pred-1", "status": "starting"})
        assert request.url.path == "/v1/predictions/pred-1"
        return httpx.Response(200, json=next(statuses))

    async with api_client(session, settings, handler) as client:
        created = await client.post(
            "/api/generate",
            json={"prompt": "sunset timelapse", "userId": str(user.id), "tier": "free", "length": 10},
        )
        assert created.status_code == 200
        body = created.json()
        assert body["success"] is True
        assert body["status"] == "processing"
        assert body["remainingFree"] == 9
        assert body["provider"] == "wan"
        assert body["providerName"] == "Wan 2.1"
        assert body["taskId"] == "pred-1"
        assert body["estimatedTime"] == 60
        assert body["needsAd"] is True
        assert body["pollInterval"] == settings.POLL_INTERVAL_SECONDS
        assert body["pollUrl"] == f"/api/poll?generationId={body['generationId']}"

        seen = []
        for _ in range(3):
            polled = await client.get(body["pollUrl"])
            assert polled.status_code == 200
            seen.append(polled.json())

    assert [p["status"] for p in seen] == ["processing", "processing", "completed"]
    assert seen[-1]["videoUrl"] == "https://replicate.delivery/sunset.mp4"
    assert seen[-1]["progress"] == 100
    assert "error" not in seen[-1]

    free_used, _, _, total_generated = await counters(session, user.id)
    assert free_used == 1
    assert total_generated == 1

    events = await session.execute(
        select(GenerationEvent.event_type).where(
            GenerationEvent.generation_id == uuid.UUID(body["generationId"])
        )
    )
    assert set(events.scalars().all()) == {"created", "sent_to_provider", "poll", "completed"}


@pytest.mark.asyncio
async def test_terminal_polls_are_identical(session, settings, user):
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"id": "pred-2"})
        return httpx.Response(200, json={"status": "failed", "error": "NSFW content detected"})

    async with api_client(session, settings, handler) as client:
        created = (
            await client.post("/api/generate", json={"prompt": "a cat", "userId": str(user.id)})
        ).json()
        first = (await client.get(created["pollUrl"])).json()
        second = (await client.get(created["pollUrl"])).json()
        third = (await client.get(created["pollUrl"])).json()

    assert first["status"] == "failed"
    assert first["error"] == "NSFW content detected"
    assert "videoUrl" not in first
    assert first == second == third
    # failures at poll time never refund the reservation
    assert (await counters(session, user.id))[0] == 1


@pytest.mark.asyncio
async def test_quota_exceeded_returns_402(session, settings):
    user = await make_user(session, free_used=10)

    async with api_client(session, settings, _unreachable) as client:
        response = await client.post("/api/generate", json={"prompt": "a cat", "userId": str(user.id)})

    assert response.status_code == 402
    body = response.json()
    assert body["success"] is False
    assert body["freeUsed"] == 10
    assert body["freeLimit"] == 10
    assert "Upgrade" in body["message"]
    assert (await counters(session, user.id))[0] == 10


@pytest.mark.asyncio
async def test_paid_tier_request_from_exhausted_free_user_returns_402(session, settings):
    user = await make_user(session, free_used=10)

    async with api_client(session, settings, _unreachable) as client:
        response = await client.post(
            "/api/generate",
            json={"prompt": "a cat", "userId": str(user.id), "tier": "enterprise"},
        )

    assert response.status_code == 402
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "tier_not_allowed"
    assert body["allowedTier"] == "free"
    free_used, paid_used, _, _ = await counters(session, user.id)
    assert (free_used, paid_used) == (10, 0)
    rows = await session.execute(select(Generation.id).where(Generation.user_id == user.id))
    assert rows.all() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"prompt": "", "userId": "00000000-0000-0000-0000-000000000001"},
        {"prompt": "   ", "userId": "00000000-0000-0000-0000-000000000001"},
        {"prompt": "x" * 501, "userId": "00000000-0000-0000-0000-000000000001"},
        {"prompt": "a cat"},
        {"prompt": "a cat", "userId": "not-a-uuid"},
        {"prompt": "a cat", "userId": "00000000-0000-0000-0000-000000000001", "tier": "platinum"},
    ],
)
async def test_invalid_input_returns_400(session, settings, payload):
    async with api_client(session, settings, _unreachable) as client:
        response = await client.post("/api/generate", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "invalid_input"
    assert body["details"]


@pytest.mark.asyncio
async def test_unknown_user_returns_404(session, settings):
    async with api_client(session, settings, _unreachable) as client:
        response = await client.post("/api/generate", json={"prompt": "a cat", "userId": str(uuid.uuid4())})

    assert response.status_code == 404
    assert response.json()["error"] == "user_not_found"


@pytest.mark.asyncio
async def test_exhausted_chain_returns_500_and_refunds(session, settings, user):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "internal error"})

    async with api_client(session, settings, handler) as client:
        response = await client.post("/api/generate", json={"prompt": "a cat", "userId": str(user.id)})

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "all_providers_exhausted"
    assert body["lastError"]
    assert len(body["attempts"]) == 4
    assert "elapsed" in body
    assert (await counters(session, user.id))[0] == 0

    rows = await session.execute(select(Generation.status, Generation.error_code).where(Generation.user_id == user.id))
    assert [tuple(row) for row in rows.all()] == [("failed", "ALL_PROVIDERS_EXHAUSTED")]


@pytest.mark.asyncio
async def test_poll_unknown_generation_returns_404(session, settings):
    async with api_client(session, settings, _unreachable) as client:
        response = await client.get(f"/api/poll?generationId={uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"] == "generation_not_found"


@pytest.mark.asyncio
async def test_poll_requires_generation_id(session, settings):
    async with api_client(session, settings, _unreachable) as client:
        response = await client.get("/api/poll")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_poll_timeout_fails_without_calling_provider(session, settings, user):
    generation = await _processing_generation(
        session, user.id, created_at=utc_now() - timedelta(seconds=settings.POLL_TIMEOUT_SECONDS + 60)
    )

    async with api_client(session, settings, _unreachable) as client:
        body = (await client.get(f"/api/poll?generationId={generation.id}")).json()

    assert body["status"] == "failed"
    assert body["errorCode"] == "POLL_TIMEOUT"
    assert body["elapsed"] >= settings.POLL_TIMEOUT_SECONDS


@pytest.mark.asyncio
async def test_poll_limit_fails_generation(session, settings, user):
    generation = await _processing_generation(session, user.id, poll_count=settings.MAX_SERVER_POLLS)

    async with api_client(session, settings, _unreachable) as client:
        body = (await client.get(f"/api/poll?generationId={generation.id}")).json()

    assert body["status"] == "failed"
    assert body["errorCode"] == "POLL_LIMIT"


@pytest.mark.asyncio
async def test_completed_without_url_degrades_after_budget(session, settings, user):
    settings.MAX_EMPTY_RESULT_POLLS = 2
    generation = await _processing_generation(session, user.id)

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "succeeded", "output": None})

    async with api_client(session, settings, handler) as client:
        first = (await client.get(f"/api/poll?generationId={generation.id}")).json()
        second = (await client.get(f"/api/poll?generationId={generation.id}")).json()

    assert first["status"] == "processing"
    assert "videoUrl" not in first
    assert second["status"] == "failed"
    assert second["errorCode"] == "EMPTY_RESULT"


@pytest.mark.asyncio
async def test_user_status(session, settings):
    user = await make_user(session, free_used=3)
    await _processing_generation(session, user.id)

    async with api_client(session, settings, _unreachable) as client:
        response = await client.get(f"/api/status?userId={user.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["freeUsed"] == 3
    assert body["freeRemaining"] == 7
    assert body["freeLimit"] == 10
    assert body["daysUntilReset"] >= 0
    assert [g["prompt"] for g in body["generations"]] == ["ocean waves"]
    assert body["generations"][0]["status"] == "processing"


@pytest.mark.asyncio
async def test_health(session, settings):
    async with api_client(session, settings, _unreachable) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_list_providers(session, settings):
    async with api_client(session, settings, _unreachable) as client:
        everything = (await client.get("/api/providers")).json()
        free = (await client.get("/api/providers?tier=free")).json()

    assert everything["success"] is True
    assert {p["name"] for p in everything["providers"]} == {"wan", "minimax", "pika", "luma"}
    assert "chain" not in everything
    assert {p["name"] for p in free["providers"]} == {"wan", "pika"}
    assert free["chain"] == ["wan", "pika"]
    wan = next(p for p in free["providers"] if p["name"] == "wan")
    assert wan["display_name"] == "Wan 2.1"
    assert "free" in wan["tiers"]


@pytest.mark.asyncio
async def test_list_providers_rejects_unknown_tier(session, settings):
    async with api_client(session, settings, _unreachable) as client:
        response = await client.get("/api/providers?tier=platinum")

    assert response.status_code == 400


def test_bad_fallback_chain_fails_at_startup(settings):
    settings.FALLBACK_CHAINS = {"free": ["luma"]}

    with pytest.raises(ValueError):
        create_app(settings)


@pytest.mark.asyncio
async def test_registry_is_built_once_per_app(session, settings, user, monkeypatch):
    built = []
    real_build = main.build_registry

    def counting_build(chains):
        built.append(chains)
        return real_build(chains)

    monkeypatch.setattr(main, "build_registry", counting_build)

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={"id": "pred-9", "status": "starting"})

    async with api_client(session, settings, handler) as client:
        for _ in range(2):
            response = await client.post("/api/generate", json={"prompt": "a cat", "userId": str(user.id)})
            assert response.status_code == 200
        assert (await client.get("/api/providers")).status_code == 200

    assert len(built) == 1
