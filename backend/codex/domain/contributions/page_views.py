"""Server side of view recording: counts, trending pages, duplicate suppression."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Sequence

from redis.asyncio import Redis
from redis.exceptions import RedisError

from codex.domain.contributions.exceptions import ContentValidationError
from codex.domain.contributions.models import ContentType, PageType, TrendingPage
from codex.domain.contributions.repository import ContentRepository, PageViewRepository
from codex.infra.redis import RedisProxy
from codex.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

# Page types whose views also bump a contribution's own counter
_CONTENT_BACKED_PAGES = {PageType.GUIDE: ContentType.GUIDE}


def client_fingerprint(ip_address: Optional[str], user_agent: Optional[str]) -> Optional[str]:
    if not ip_address and not user_agent:
        return None
    raw = f"{ip_address or ''}|{user_agent or ''}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:32]


class PageViewService:
    def __init__(
        self,
        repository: PageViewRepository,
        content: ContentRepository,
        redis: Redis | RedisProxy,
        *,
        dedup_ttl_seconds: int,
        dedup_prefix: str = "views:dedup",
    ) -> None:
        self._repo = repository
        self._content = content
        self._redis = redis
        self._dedup_ttl = dedup_ttl_seconds
        self._dedup_prefix = dedup_prefix

    async def record_view(
        self,
        page_type: PageType,
        page_id: int,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """Store one view. Safe to call redundantly; repeats inside the dedup window are absorbed."""
        if page_id <= 0:
            raise ContentValidationError("invalid_page_id", field="page_id")
        fingerprint = client_fingerprint(ip_address, user_agent)
        if fingerprint and self._dedup_ttl > 0 and not await self._first_sighting(page_type, page_id, fingerprint):
            obs_metrics.inc_page_view(page_type.value, "deduplicated")
            return True

        await self._repo.add(page_type, page_id, ip_address=ip_address, user_agent=user_agent)
        content_type = _CONTENT_BACKED_PAGES.get(page_type)
        if content_type is not None:
            await self._content.increment_view_count(content_type, page_id)
        obs_metrics.inc_page_view(page_type.value, "recorded")
        return True

    async def _first_sighting(self, page_type: PageType, page_id: int, fingerprint: str) -> bool:
        key = f"{self._dedup_prefix}:{page_type.value}:{page_id}:{fingerprint}"
        try:
            created = await self._redis.set(key, "1", nx=True, ex=self._dedup_ttl)
        except RedisError:
            logger.warning("page_view_dedup_unavailable", extra={"page_type": page_type.value}, exc_info=True)
            return True
        return bool(created)

    async def get_view_count(self, page_type: PageType, page_id: int) -> int:
        return await self._repo.count(page_type, page_id)

    async def get_view_counts(self, page_type: PageType, page_ids: Sequence[int]) -> Dict[int, int]:
        counts = await self._repo.counts(page_type, page_ids)
        return {page_id: counts.get(page_id, 0) for page_id in page_ids}

    async def get_trending(
        self,
        page_type: Optional[PageType] = None,
        *,
        limit: int = 10,
        days_back: int = 7,
    ) -> Sequence[TrendingPage]:
        since = datetime.now(timezone.utc) - timedelta(days=days_back)
        return await self._repo.trending(page_type, limit=limit, since=since)
