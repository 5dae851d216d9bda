"""Lightweight service container shared by contribution routes."""

from __future__ import annotations

from typing import Optional

import asyncpg

from codex.domain.contributions.aggregator import ContributionAggregator
from codex.domain.contributions.page_views import PageViewService
from codex.domain.contributions.repository import (
    ContentRepository,
    EditLogRepository,
    InMemoryContentRepository,
    InMemoryEditLogRepository,
    InMemoryPageViewRepository,
    InMemoryReaderRepository,
    PageViewRepository,
    ReaderRepository,
)
from codex.domain.contributions.service import ContributionService
from codex.infra.redis import RedisProxy, redis_client
from codex.settings import settings

_content_repository: ContentRepository = InMemoryContentRepository()
_reader_repository: ReaderRepository = InMemoryReaderRepository()
_edit_log_repository: EditLogRepository = InMemoryEditLogRepository()
_page_view_repository: PageViewRepository = InMemoryPageViewRepository()
_redis_proxy: RedisProxy = redis_client
_aggregator: ContributionAggregator
_contribution_service: ContributionService
_page_view_service: PageViewService


def _rebuild() -> None:
    global _aggregator, _contribution_service, _page_view_service
    _aggregator = ContributionAggregator(
        _content_repository,
        _edit_log_repository,
        detail_limit=settings.contribution_detail_limit,
        concurrency=settings.contribution_query_concurrency,
    )
    _contribution_service = ContributionService(
        _content_repository,
        _reader_repository,
        _edit_log_repository,
        _aggregator,
    )
    _page_view_service = PageViewService(
        _page_view_repository,
        _content_repository,
        _redis_proxy,
        dedup_ttl_seconds=settings.view_dedup_ttl_seconds,
    )


def configure(
    *,
    content_repository: Optional[ContentRepository] = None,
    reader_repository: Optional[ReaderRepository] = None,
    edit_log_repository: Optional[EditLogRepository] = None,
    page_view_repository: Optional[PageViewRepository] = None,
    redis_proxy: Optional[RedisProxy] = None,
) -> None:
    global _content_repository, _reader_repository, _edit_log_repository, _page_view_repository, _redis_proxy
    if content_repository is not None:
        _content_repository = content_repository
    if reader_repository is not None:
        _reader_repository = reader_repository
    if edit_log_repository is not None:
        _edit_log_repository = edit_log_repository
    if page_view_repository is not None:
        _page_view_repository = page_view_repository
    _redis_proxy = redis_proxy or _redis_proxy
    _rebuild()


def configure_postgres(pool: asyncpg.Pool) -> None:
    from codex.infra.postgres_repo import (
        PostgresContentRepository,
        PostgresEditLogRepository,
        PostgresPageViewRepository,
        PostgresReaderRepository,
    )

    configure(
        content_repository=PostgresContentRepository(pool),
        reader_repository=PostgresReaderRepository(pool),
        edit_log_repository=PostgresEditLogRepository(pool),
        page_view_repository=PostgresPageViewRepository(pool),
    )


def reset() -> None:
    """Return to fresh in-memory repositories (tests)."""
    configure(
        content_repository=InMemoryContentRepository(),
        reader_repository=InMemoryReaderRepository(),
        edit_log_repository=InMemoryEditLogRepository(),
        page_view_repository=InMemoryPageViewRepository(),
        redis_proxy=redis_client,
    )


def get_contribution_service() -> ContributionService:
    return _contribution_service


def get_page_view_service() -> PageViewService:
    return _page_view_service


_rebuild()
