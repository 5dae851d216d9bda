"""Per-session page view tracking for the reader-facing client.

A view key (``"{type}:{id}"``) is marked as recorded *before* the record call
goes out so concurrent renders of the same page do not race each other. A
failed call removes the mark again, leaving a later page load free to retry.
Nothing here raises to the caller: view counts are an approximate popularity
signal and must never break a page.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Protocol

import httpx
from redis.asyncio import Redis

from codex.infra.redis import RedisProxy
from codex.obs import metrics as obs_metrics
from codex.settings import settings

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    async def has(self, key: str) -> bool:
        ...

    async def add(self, key: str) -> bool:
        """Mark ``key`` and return True only if it was not already marked."""
        ...

    async def remove(self, key: str) -> None:
        ...


class ViewRecorder(Protocol):
    async def record(self, page_type: str, page_id: int) -> Mapping[str, Any]:
        """Issue one record call; returns ``{"success": bool}``."""
        ...


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._keys: set[str] = set()

    async def has(self, key: str) -> bool:
        return key in self._keys

    async def add(self, key: str) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    async def remove(self, key: str) -> None:
        self._keys.discard(key)

    def __len__(self) -> int:
        return len(self._keys)


class RedisSessionStore(SessionStore):
    """Recorded-view set kept in Redis for one browser session."""

    def __init__(
        self,
        redis: Redis | RedisProxy,
        session_id: str,
        *,
        ttl_seconds: int | None = None,
        prefix: str = "views:session",
    ) -> None:
        self._redis = redis
        self._key = f"{prefix}:{session_id}"
        self._ttl = settings.view_session_ttl_seconds if ttl_seconds is None else ttl_seconds

    async def has(self, key: str) -> bool:
        return bool(await self._redis.sismember(self._key, key))

    async def add(self, key: str) -> bool:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.sadd(self._key, key)
            pipe.expire(self._key, self._ttl)
            added, _ = await pipe.execute()
        return bool(added)

    async def remove(self, key: str) -> None:
        await self._redis.srem(self._key, key)


@dataclass
class HttpViewRecorder(ViewRecorder):
    """Posts view events to the page-view endpoint."""

    http: httpx.AsyncClient
    path_template: str = "/api/v1/page-views/{page_type}/{page_id}/view"
    request_timeout: float = 2.0

    async def record(self, page_type: str, page_id: int) -> Mapping[str, Any]:
        path = self.path_template.format(page_type=page_type, page_id=page_id)
        response = await self.http.post(path, timeout=self.request_timeout)
        if response.status_code >= 400:
            return {"success": False, "status": response.status_code}
        body = response.json()
        return {"success": bool(body.get("success"))}


def normalise_page_id(page_id: object) -> int | None:
    """Return a positive integer id, or None when the id is unusable."""
    if isinstance(page_id, bool):
        return None
    if isinstance(page_id, int):
        value = page_id
    elif isinstance(page_id, str):
        text = page_id.strip()
        # Only ASCII decimal strings; "²" and other unicode digits are rejected.
        if not (text.isascii() and text.isdecimal()):
            return None
        value = int(text)
    else:
        return None
    return value if value > 0 else None


def view_key(page_type: str, page_id: int) -> str:
    return f"{page_type}:{page_id}"


class ViewTracker:
    """Records at most one view per (type, id) per session store."""

    def __init__(self, store: SessionStore, recorder: ViewRecorder) -> None:
        self._store = store
        self._recorder = recorder

    async def record(self, page_type: str | Enum, page_id: object) -> bool:
        """Record a view; True only when a call went out and succeeded."""
        type_value = page_type.value if isinstance(page_type, Enum) else str(page_type).strip()
        normalised = normalise_page_id(page_id)
        if not type_value or normalised is None:
            logger.debug("page_view_invalid_id", extra={"page_type": type_value, "page_id": repr(page_id)})
            return False
        key = view_key(type_value, normalised)

        try:
            if not await self._store.add(key):
                return False
        except Exception:
            logger.debug("page_view_session_store_failed", extra={"view_key": key}, exc_info=True)
            return False

        try:
            result = await self._recorder.record(type_value, normalised)
        except asyncio.CancelledError:
            await self._rollback(key, type_value)
            raise
        except Exception:
            logger.debug("page_view_record_failed", extra={"view_key": key}, exc_info=True)
            await self._rollback(key, type_value)
            return False

        if not result.get("success"):
            logger.debug("page_view_record_unsuccessful", extra={"view_key": key})
            await self._rollback(key, type_value)
            return False
        return True

    async def _rollback(self, key: str, page_type: str) -> None:
        obs_metrics.inc_view_rollback(page_type)
        try:
            await self._store.remove(key)
        except Exception:
            logger.debug("page_view_rollback_failed", extra={"view_key": key}, exc_info=True)
