"""Per-user contribution summaries and history listings for profile pages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, FrozenSet, List, Mapping, Optional, TypeVar

from codex.domain.contributions import gate, permissions
from codex.domain.contributions.models import (
    Actor,
    ContentItem,
    ContentStatus,
    ContentType,
    EditEntityType,
    EditLogEntry,
    SpoilerPreferences,
)
from codex.domain.contributions.repository import ContentRepository, EditLogRepository
from codex.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUBMISSION_CATEGORIES: Mapping[str, ContentType] = {
    "guides": ContentType.GUIDE,
    "media": ContentType.MEDIA,
    "annotations": ContentType.ANNOTATION,
    "quotes": ContentType.QUOTE,
}

EDIT_CATEGORIES: Mapping[str, EditEntityType] = {
    "characters": EditEntityType.CHARACTER,
    "gambles": EditEntityType.GAMBLE,
    "arcs": EditEntityType.ARC,
    "organizations": EditEntityType.ORGANIZATION,
    "events": EditEntityType.EVENT,
}

PUBLIC_STATUSES: FrozenSet[ContentStatus] = frozenset({ContentStatus.APPROVED})
ALL_STATUSES: FrozenSet[ContentStatus] = frozenset(ContentStatus)


@dataclass(slots=True)
class ContributionSummary:
    user_id: int
    submissions: Dict[str, int]
    edits: Dict[str, int]
    by_status: Dict[str, Dict[str, int]]
    unavailable: List[str] = field(default_factory=list)

    @property
    def submissions_total(self) -> int:
        return sum(self.submissions.values())

    @property
    def edits_total(self) -> int:
        return sum(self.edits.values())

    @property
    def total_contributions(self) -> int:
        return self.submissions_total + self.edits_total


@dataclass(slots=True)
class ContributionEntry:
    id: int
    content_type: ContentType
    status: ContentStatus
    created_at: datetime
    updated_at: datetime
    title: str = ""
    description: Optional[str] = None
    url: Optional[str] = None
    owner_type: Optional[str] = None
    owner_id: Optional[int] = None
    rejection_reason: Optional[str] = None
    placeholder: Optional[str] = None


@dataclass(slots=True)
class ContributionDetails:
    user_id: int
    submissions: Dict[str, List[ContributionEntry]]
    edits: List[EditLogEntry]
    unavailable: List[str] = field(default_factory=list)


def visible_statuses(viewer: Actor, user_id: int) -> FrozenSet[ContentStatus]:
    """Statuses a viewer may see on ``user_id``'s profile."""
    if viewer.is_privileged or (viewer.is_authenticated and viewer.id == user_id):
        return ALL_STATUSES
    return PUBLIC_STATUSES


def _entry_for(
    viewer: Actor,
    item: ContentItem,
    preferences: Optional[SpoilerPreferences] = None,
) -> ContributionEntry:
    shown = gate.present(viewer, item, preferences=preferences)
    shown_item = shown.item
    description = shown_item.content if item.content_type in (ContentType.MEDIA, ContentType.QUOTE) else None
    return ContributionEntry(
        id=item.id,
        content_type=item.content_type,
        status=item.status,
        created_at=item.created_at,
        updated_at=item.updated_at,
        title=shown_item.title,
        description=description,
        url=shown_item.url,
        owner_type=item.owner_type,
        owner_id=item.owner_id,
        # The reason is only ever visible to people who may see the rejection at all
        rejection_reason=item.rejection_reason if permissions.can_edit(viewer, item) else None,
        placeholder=shown.placeholder,
    )


class ContributionAggregator:
    def __init__(
        self,
        content: ContentRepository,
        edit_log: EditLogRepository,
        *,
        detail_limit: int = 50,
        concurrency: int = 3,
    ) -> None:
        self._content = content
        self._edit_log = edit_log
        self._detail_limit = detail_limit
        self._concurrency = max(1, concurrency)

    async def _gather(self, jobs: Mapping[str, Callable[[], Awaitable[T]]]) -> tuple[Dict[str, T], List[str]]:
        """Run category loaders with bounded concurrency; failures degrade to "unavailable"."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _limited(loader: Callable[[], Awaitable[T]]) -> T:
            async with semaphore:
                return await loader()

        names = list(jobs)
        results = await asyncio.gather(*(_limited(jobs[name]) for name in names), return_exceptions=True)
        loaded: Dict[str, T] = {}
        unavailable: List[str] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(
                    "contribution_category_unavailable",
                    extra={"category": name},
                    exc_info=(type(result), result, result.__traceback__),
                )
                obs_metrics.inc_aggregate_failure(name)
                unavailable.append(name)
                continue
            loaded[name] = result
        return loaded, unavailable

    async def get_user_contributions(self, viewer: Actor, user_id: int) -> ContributionSummary:
        statuses = visible_statuses(viewer, user_id)
        jobs: Dict[str, Callable[[], Awaitable[Mapping]]] = {
            name: (lambda content_type=content_type: self._content.count_by_author(content_type, user_id))
            for name, content_type in SUBMISSION_CATEGORIES.items()
        }
        jobs["edits"] = lambda: self._edit_log.count_by_user_grouped(user_id)
        loaded, unavailable = await self._gather(jobs)

        submissions: Dict[str, int] = {}
        by_status: Dict[str, Dict[str, int]] = {}
        for name in SUBMISSION_CATEGORIES:
            counts = loaded.get(name, {})
            breakdown = {status.value: int(counts.get(status, 0)) for status in ContentStatus if status in statuses}
            by_status[name] = breakdown
            submissions[name] = sum(breakdown.values())

        edit_counts = loaded.get("edits", {})
        edits = {name: int(edit_counts.get(entity_type, 0)) for name, entity_type in EDIT_CATEGORIES.items()}
        if "edits" in unavailable:
            unavailable = [name for name in unavailable if name != "edits"] + list(EDIT_CATEGORIES)

        return ContributionSummary(
            user_id=user_id,
            submissions=submissions,
            edits=edits,
            by_status=by_status,
            unavailable=unavailable,
        )

    async def get_user_contribution_details(
        self,
        viewer: Actor,
        user_id: int,
        *,
        preferences: Optional[SpoilerPreferences] = None,
    ) -> ContributionDetails:
        """Itemised history; spoiler entries are gated with the viewer's preferences."""
        statuses = visible_statuses(viewer, user_id)
        jobs: Dict[str, Callable[[], Awaitable]] = {
            name: (
                lambda content_type=content_type: self._content.list_by_author(
                    content_type, user_id, statuses=statuses, limit=self._detail_limit
                )
            )
            for name, content_type in SUBMISSION_CATEGORIES.items()
        }
        jobs["edits"] = lambda: self._edit_log.list_by_user(user_id, limit=self._detail_limit)
        loaded, unavailable = await self._gather(jobs)

        submissions = {
            name: [_entry_for(viewer, item, preferences) for item in loaded.get(name, [])]
            for name in SUBMISSION_CATEGORIES
        }
        return ContributionDetails(
            user_id=user_id,
            submissions=submissions,
            edits=list(loaded.get("edits", [])),
            unavailable=unavailable,
        )
