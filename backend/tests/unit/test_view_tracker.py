import asyncio

import httpx
import pytest

from codex.domain.contributions.models import PageType
from codex.domain.contributions.views import (
    HttpViewRecorder,
    InMemorySessionStore,
    RedisSessionStore,
    ViewTracker,
    normalise_page_id,
)
from codex.settings import settings


class StubRecorder:
    def __init__(self, outcomes=None) -> None:
        self.calls: list[tuple[str, int]] = []
        self.outcomes = list(outcomes or [])

    async def record(self, page_type: str, page_id: int):
        self.calls.append((page_type, page_id))
        outcome = self.outcomes.pop(0) if self.outcomes else {"success": True}
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.mark.asyncio
async def test_same_key_recorded_once_per_session() -> None:
    recorder = StubRecorder()
    tracker = ViewTracker(InMemorySessionStore(), recorder)

    assert await tracker.record("chapter", 5) is True
    assert await tracker.record("chapter", 5) is False
    assert await tracker.record(PageType.CHAPTER, "5") is False
    assert recorder.calls == [("chapter", 5)]


@pytest.mark.asyncio
async def test_failed_call_rolls_back_for_later_retry() -> None:
    store = InMemorySessionStore()
    recorder = StubRecorder([httpx.ConnectError("offline"), {"success": True}])
    tracker = ViewTracker(store, recorder)

    assert await tracker.record("chapter", 5) is False
    assert len(store) == 0
    assert await tracker.record("chapter", 5) is True
    assert len(recorder.calls) == 2


@pytest.mark.asyncio
async def test_unsuccessful_response_rolls_back() -> None:
    store = InMemorySessionStore()
    recorder = StubRecorder([{"success": False}])
    tracker = ViewTracker(store, recorder)

    assert await tracker.record("guide", 9) is False
    assert not await store.has("guide:9")


@pytest.mark.asyncio
@pytest.mark.parametrize("page_id", [0, -1, "abc", "", None, 3.5, True, "\u00b2", "\u0663"])
async def test_invalid_ids_never_reach_network(page_id) -> None:
    recorder = StubRecorder()
    tracker = ViewTracker(InMemorySessionStore(), recorder)
    assert await tracker.record("chapter", page_id) is False
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_concurrent_renders_issue_single_call() -> None:
    release = asyncio.Event()

    class SlowRecorder(StubRecorder):
        async def record(self, page_type: str, page_id: int):
            self.calls.append((page_type, page_id))
            await release.wait()
            return {"success": True}

    recorder = SlowRecorder()
    tracker = ViewTracker(InMemorySessionStore(), recorder)
    first = asyncio.create_task(tracker.record("arc", 2))
    await asyncio.sleep(0)
    second = await tracker.record("arc", 2)
    release.set()
    assert await first is True
    assert second is False
    assert len(recorder.calls) == 1


@pytest.mark.asyncio
async def test_concurrent_renders_share_redis_session(fake_redis) -> None:
    class SlowRecorder(StubRecorder):
        async def record(self, page_type: str, page_id: int):
            self.calls.append((page_type, page_id))
            await asyncio.sleep(0.01)
            return {"success": True}

    recorder = SlowRecorder()
    tracker = ViewTracker(RedisSessionStore(fake_redis, "sess-race", ttl_seconds=60), recorder)
    results = await asyncio.gather(tracker.record("chapter", 5), tracker.record("chapter", 5))

    assert sorted(results) == [False, True]
    assert recorder.calls == [("chapter", 5)]


@pytest.mark.asyncio
async def test_cancelled_call_rolls_back_and_propagates() -> None:
    class HangingRecorder(StubRecorder):
        async def record(self, page_type: str, page_id: int):
            await asyncio.sleep(3600)
            return {"success": True}

    store = InMemorySessionStore()
    tracker = ViewTracker(store, HangingRecorder())
    task = asyncio.create_task(tracker.record("event", 4))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(store) == 0


@pytest.mark.asyncio
async def test_redis_session_store(fake_redis) -> None:
    store = RedisSessionStore(fake_redis, "sess-1", ttl_seconds=60)
    tracker = ViewTracker(store, StubRecorder())

    assert await tracker.record("character", 12) is True
    assert await fake_redis.sismember("views:session:sess-1", "character:12")
    assert 0 < await fake_redis.ttl("views:session:sess-1") <= 60
    assert await store.add("character:12") is False

    other_session = ViewTracker(RedisSessionStore(fake_redis, "sess-2", ttl_seconds=60), StubRecorder())
    assert await other_session.record("character", 12) is True


@pytest.mark.asyncio
async def test_http_recorder_posts_to_endpoint() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path.endswith("/13/view"):
            return httpx.Response(503)
        return httpx.Response(200, json={"success": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api") as http:
        tracker = ViewTracker(InMemorySessionStore(), HttpViewRecorder(http))
        assert await tracker.record("guide", 12) is True
        assert await tracker.record("guide", 13) is False

    assert seen == ["/api/v1/page-views/guide/12/view", "/api/v1/page-views/guide/13/view"]


def test_normalise_page_id() -> None:
    assert normalise_page_id(5) == 5
    assert normalise_page_id(" 42 ") == 42
    assert normalise_page_id("0") is None
    assert normalise_page_id(False) is None
    assert normalise_page_id("\u00b2") is None


@pytest.mark.asyncio
async def test_redis_session_store_defaults_to_configured_ttl(fake_redis, monkeypatch) -> None:
    monkeypatch.setattr(settings, "view_session_ttl_seconds", 120)
    store = RedisSessionStore(fake_redis, "sess-default")
    assert await store.add("volume:3") is True
    assert 60 < await fake_redis.ttl("views:session:sess-default") <= 120
