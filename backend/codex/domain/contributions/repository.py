"""Persistence interfaces for contributions plus in-memory implementations."""

from __future__ import annotations

import dataclasses
import itertools
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Collection, Dict, Mapping, Optional, Protocol, Sequence

from codex.domain.contributions.exceptions import ContentNotFoundError
from codex.domain.contributions.models import (
    ContentItem,
    ContentStatus,
    ContentType,
    EditAction,
    EditEntityType,
    EditLogEntry,
    LikeResult,
    PageType,
    SpoilerPreferences,
    TrendingPage,
)


@dataclass(frozen=True, slots=True)
class NewContent:
    content_type: ContentType
    author_id: int
    status: ContentStatus
    title: str = ""
    content: str = ""
    url: Optional[str] = None
    owner_type: Optional[str] = None
    owner_id: Optional[int] = None
    is_spoiler: bool = False
    spoiler_chapter: Optional[int] = None


class ContentRepository(Protocol):
    async def create(self, draft: NewContent) -> ContentItem:
        ...

    async def get(self, content_type: ContentType, item_id: int) -> ContentItem | None:
        ...

    async def update_fields(self, item: ContentItem) -> ContentItem:
        """Persist editable fields; status and counters are untouched."""
        ...

    async def update_status(self, item: ContentItem) -> ContentItem:
        """Persist status, rejection reason and updated_at in one write."""
        ...

    async def delete(self, content_type: ContentType, item_id: int) -> bool:
        ...

    async def list_by_author(
        self,
        content_type: ContentType,
        author_id: int,
        *,
        statuses: Collection[ContentStatus] | None = None,
        limit: int = 50,
    ) -> Sequence[ContentItem]:
        ...

    async def count_by_author(self, content_type: ContentType, author_id: int) -> Mapping[ContentStatus, int]:
        ...

    async def list_by_status(
        self,
        content_type: ContentType,
        status: ContentStatus,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> Sequence[ContentItem]:
        ...

    async def count_by_status(self, status: ContentStatus) -> Mapping[ContentType, int]:
        ...

    async def list_for_owner(
        self,
        content_type: ContentType,
        owner_type: str,
        owner_id: int,
        *,
        limit: int = 100,
    ) -> Sequence[ContentItem]:
        ...

    async def increment_view_count(self, content_type: ContentType, item_id: int) -> None:
        ...

    async def toggle_like(self, content_type: ContentType, item_id: int, user_id: int) -> LikeResult:
        """Flip the like atomically and return the new state and count."""
        ...

    async def has_liked(self, content_type: ContentType, item_id: int, user_id: int) -> bool:
        ...


class ReaderRepository(Protocol):
    async def get_progress(self, user_id: int) -> int | None:
        ...

    async def set_progress(self, user_id: int, chapter: int) -> int:
        ...

    async def get_preferences(self, user_id: int) -> SpoilerPreferences:
        ...

    async def set_preferences(self, user_id: int, preferences: SpoilerPreferences) -> SpoilerPreferences:
        ...


class EditLogRepository(Protocol):
    async def append(
        self,
        entity_type: EditEntityType,
        entity_id: int,
        action: EditAction,
        user_id: int,
        changed_fields: Sequence[str] = (),
    ) -> EditLogEntry:
        ...

    async def count_by_user_grouped(self, user_id: int) -> Mapping[EditEntityType, int]:
        ...

    async def list_by_user(self, user_id: int, *, limit: int = 50) -> Sequence[EditLogEntry]:
        ...


class PageViewRepository(Protocol):
    async def add(
        self,
        page_type: PageType,
        page_id: int,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        ...

    async def count(self, page_type: PageType, page_id: int) -> int:
        ...

    async def counts(self, page_type: PageType, page_ids: Sequence[int]) -> Dict[int, int]:
        ...

    async def trending(
        self,
        page_type: PageType | None,
        *,
        limit: int,
        since: datetime,
    ) -> Sequence[TrendingPage]:
        ...


class InMemoryContentRepository(ContentRepository):
    """Simple repository implementation for development and tests."""

    def __init__(self) -> None:
        self._items: dict[tuple[ContentType, int], ContentItem] = {}
        self._likes: set[tuple[ContentType, int, int]] = set()
        self._ids = itertools.count(1)

    def _require(self, content_type: ContentType, item_id: int) -> ContentItem:
        item = self._items.get((content_type, item_id))
        if item is None:
            raise ContentNotFoundError()
        return item

    async def create(self, draft: NewContent) -> ContentItem:
        now = datetime.now(timezone.utc)
        item = ContentItem(
            id=next(self._ids),
            content_type=draft.content_type,
            author_id=draft.author_id,
            status=draft.status,
            created_at=now,
            updated_at=now,
            title=draft.title,
            content=draft.content,
            url=draft.url,
            owner_type=draft.owner_type,
            owner_id=draft.owner_id,
            is_spoiler=draft.is_spoiler,
            spoiler_chapter=draft.spoiler_chapter,
        )
        self._items[(item.content_type, item.id)] = item
        return item

    async def get(self, content_type: ContentType, item_id: int) -> ContentItem | None:
        return self._items.get((content_type, item_id))

    async def update_fields(self, item: ContentItem) -> ContentItem:
        current = self._require(item.content_type, item.id)
        stored = dataclasses.replace(
            current,
            title=item.title,
            content=item.content,
            url=item.url,
            owner_type=item.owner_type,
            owner_id=item.owner_id,
            is_spoiler=item.is_spoiler,
            spoiler_chapter=item.spoiler_chapter,
            updated_at=item.updated_at,
        )
        self._items[(item.content_type, item.id)] = stored
        return stored

    async def update_status(self, item: ContentItem) -> ContentItem:
        current = self._require(item.content_type, item.id)
        stored = dataclasses.replace(
            current,
            status=item.status,
            rejection_reason=item.rejection_reason,
            updated_at=item.updated_at,
        )
        self._items[(item.content_type, item.id)] = stored
        return stored

    async def delete(self, content_type: ContentType, item_id: int) -> bool:
        removed = self._items.pop((content_type, item_id), None)
        self._likes = {like for like in self._likes if like[:2] != (content_type, item_id)}
        return removed is not None

    async def list_by_author(
        self,
        content_type: ContentType,
        author_id: int,
        *,
        statuses: Collection[ContentStatus] | None = None,
        limit: int = 50,
    ) -> Sequence[ContentItem]:
        items = [
            item
            for item in self._items.values()
            if item.content_type is content_type
            and item.author_id == author_id
            and (statuses is None or item.status in statuses)
        ]
        items.sort(key=lambda item: (item.created_at, item.id), reverse=True)
        return items[:limit]

    async def count_by_author(self, content_type: ContentType, author_id: int) -> Mapping[ContentStatus, int]:
        counts = Counter(
            item.status
            for item in self._items.values()
            if item.content_type is content_type and item.author_id == author_id
        )
        return dict(counts)

    async def list_by_status(
        self,
        content_type: ContentType,
        status: ContentStatus,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> Sequence[ContentItem]:
        items = [
            item for item in self._items.values() if item.content_type is content_type and item.status is status
        ]
        items.sort(key=lambda item: (item.created_at, item.id))
        return items[offset : offset + limit]

    async def count_by_status(self, status: ContentStatus) -> Mapping[ContentType, int]:
        return dict(Counter(item.content_type for item in self._items.values() if item.status is status))

    async def list_for_owner(
        self,
        content_type: ContentType,
        owner_type: str,
        owner_id: int,
        *,
        limit: int = 100,
    ) -> Sequence[ContentItem]:
        items = [
            item
            for item in self._items.values()
            if item.content_type is content_type and item.owner_type == owner_type and item.owner_id == owner_id
        ]
        items.sort(key=lambda item: (item.created_at, item.id), reverse=True)
        return items[:limit]

    async def increment_view_count(self, content_type: ContentType, item_id: int) -> None:
        current = self._items.get((content_type, item_id))
        if current is not None:
            self._items[(content_type, item_id)] = dataclasses.replace(current, view_count=current.view_count + 1)

    async def toggle_like(self, content_type: ContentType, item_id: int, user_id: int) -> LikeResult:
        current = self._require(content_type, item_id)
        key = (content_type, item_id, user_id)
        if key in self._likes:
            self._likes.discard(key)
            count = max(0, current.like_count - 1)
            liked = False
        else:
            self._likes.add(key)
            count = current.like_count + 1
            liked = True
        self._items[(content_type, item_id)] = dataclasses.replace(current, like_count=count)
        return LikeResult(liked=liked, like_count=count)

    async def has_liked(self, content_type: ContentType, item_id: int, user_id: int) -> bool:
        return (content_type, item_id, user_id) in self._likes


class InMemoryReaderRepository(ReaderRepository):
    def __init__(self) -> None:
        self._progress: dict[int, int] = {}
        self._preferences: dict[int, SpoilerPreferences] = {}

    async def get_progress(self, user_id: int) -> int | None:
        return self._progress.get(user_id)

    async def set_progress(self, user_id: int, chapter: int) -> int:
        self._progress[user_id] = chapter
        return chapter

    async def get_preferences(self, user_id: int) -> SpoilerPreferences:
        return self._preferences.get(user_id, SpoilerPreferences())

    async def set_preferences(self, user_id: int, preferences: SpoilerPreferences) -> SpoilerPreferences:
        self._preferences[user_id] = preferences
        return preferences


class InMemoryEditLogRepository(EditLogRepository):
    def __init__(self) -> None:
        self._entries: list[EditLogEntry] = []
        self._ids = itertools.count(1)

    async def append(
        self,
        entity_type: EditEntityType,
        entity_id: int,
        action: EditAction,
        user_id: int,
        changed_fields: Sequence[str] = (),
    ) -> EditLogEntry:
        entry = EditLogEntry(
            id=next(self._ids),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            user_id=user_id,
            created_at=datetime.now(timezone.utc),
            changed_fields=tuple(changed_fields),
        )
        self._entries.append(entry)
        return entry

    async def count_by_user_grouped(self, user_id: int) -> Mapping[EditEntityType, int]:
        counts = {entity_type: 0 for entity_type in EditEntityType}
        for entry in self._entries:
            if entry.user_id == user_id:
                counts[entry.entity_type] += 1
        return counts

    async def list_by_user(self, user_id: int, *, limit: int = 50) -> Sequence[EditLogEntry]:
        entries = [entry for entry in self._entries if entry.user_id == user_id]
        return list(reversed(entries))[:limit]


@dataclass(frozen=True, slots=True)
class _PageView:
    page_type: PageType
    page_id: int
    created_at: datetime
    ip_address: str | None
    user_agent: str | None


class InMemoryPageViewRepository(PageViewRepository):
    def __init__(self) -> None:
        self._views: list[_PageView] = []

    async def add(
        self,
        page_type: PageType,
        page_id: int,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self._views.append(
            _PageView(
                page_type=page_type,
                page_id=page_id,
                created_at=datetime.now(timezone.utc),
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    async def count(self, page_type: PageType, page_id: int) -> int:
        return sum(1 for view in self._views if view.page_type is page_type and view.page_id == page_id)

    async def counts(self, page_type: PageType, page_ids: Sequence[int]) -> Dict[int, int]:
        wanted = set(page_ids)
        result = {page_id: 0 for page_id in page_ids}
        for view in self._views:
            if view.page_type is page_type and view.page_id in wanted:
                result[view.page_id] += 1
        return result

    async def trending(
        self,
        page_type: PageType | None,
        *,
        limit: int,
        since: datetime,
    ) -> Sequence[TrendingPage]:
        totals: Counter[tuple[PageType, int]] = Counter()
        recent: Counter[tuple[PageType, int]] = Counter()
        for view in self._views:
            if page_type is not None and view.page_type is not page_type:
                continue
            key = (view.page_type, view.page_id)
            totals[key] += 1
            if view.created_at >= since:
                recent[key] += 1
        ranked = sorted(totals, key=lambda key: (recent[key], totals[key]), reverse=True)
        return [
            TrendingPage(page_type=key[0], page_id=key[1], view_count=totals[key], recent_view_count=recent[key])
            for key in ranked[:limit]
        ]
