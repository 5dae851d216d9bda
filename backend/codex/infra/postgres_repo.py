"""PostgreSQL persistence for contributions, reader progress, edit log and page views."""

from __future__ import annotations

import functools
from datetime import datetime
from typing import Any, Awaitable, Callable, Collection, Dict, Mapping, Sequence, TypeVar

import asyncpg

from codex.domain.contributions.exceptions import ContentNotFoundError, TransientError
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
from codex.domain.contributions.repository import (
	ContentRepository,
	EditLogRepository,
	NewContent,
	PageViewRepository,
	ReaderRepository,
)

T = TypeVar("T")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS contribution_items (
	id BIGSERIAL PRIMARY KEY,
	content_type TEXT NOT NULL,
	author_id BIGINT NOT NULL,
	status TEXT NOT NULL,
	title TEXT NOT NULL DEFAULT '',
	content TEXT NOT NULL DEFAULT '',
	url TEXT,
	owner_type TEXT,
	owner_id BIGINT,
	is_spoiler BOOLEAN NOT NULL DEFAULT FALSE,
	spoiler_chapter INTEGER,
	rejection_reason TEXT,
	view_count INTEGER NOT NULL DEFAULT 0,
	like_count INTEGER NOT NULL DEFAULT 0 CHECK (like_count >= 0),
	created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
	updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
	CHECK (NOT is_spoiler OR spoiler_chapter > 0)
);
CREATE INDEX IF NOT EXISTS contribution_items_author_idx ON contribution_items (content_type, author_id, status);
CREATE INDEX IF NOT EXISTS contribution_items_status_idx ON contribution_items (status, content_type, created_at);
CREATE INDEX IF NOT EXISTS contribution_items_owner_idx ON contribution_items (content_type, owner_type, owner_id);

CREATE TABLE IF NOT EXISTS contribution_likes (
	item_id BIGINT NOT NULL REFERENCES contribution_items (id) ON DELETE CASCADE,
	user_id BIGINT NOT NULL,
	created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
	PRIMARY KEY (item_id, user_id)
);

CREATE TABLE IF NOT EXISTS reader_progress (
	user_id BIGINT PRIMARY KEY,
	chapter INTEGER NOT NULL DEFAULT 0 CHECK (chapter >= 0),
	show_all_spoilers BOOLEAN NOT NULL DEFAULT FALSE,
	chapter_tolerance INTEGER NOT NULL DEFAULT 0,
	updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS entity_edit_log (
	id BIGSERIAL PRIMARY KEY,
	entity_type TEXT NOT NULL,
	entity_id BIGINT NOT NULL,
	action TEXT NOT NULL,
	user_id BIGINT NOT NULL,
	changed_fields TEXT[] NOT NULL DEFAULT '{}',
	created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS entity_edit_log_user_idx ON entity_edit_log (user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS page_views (
	id BIGSERIAL PRIMARY KEY,
	page_type TEXT NOT NULL,
	page_id BIGINT NOT NULL,
	ip_address TEXT,
	user_agent TEXT,
	created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS page_views_page_idx ON page_views (page_type, page_id, created_at);
"""

_ITEM_COLUMNS = (
	"id, content_type, author_id, status, title, content, url, owner_type, owner_id, is_spoiler, "
	"spoiler_chapter, rejection_reason, view_count, like_count, created_at, updated_at"
)

_CONNECTION_ERRORS = (
	asyncpg.exceptions.PostgresConnectionError,
	asyncpg.exceptions.InterfaceError,
	ConnectionError,
	TimeoutError,
)


def _transient(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
	@functools.wraps(func)
	async def wrapper(*args: Any, **kwargs: Any) -> T:
		try:
			return await func(*args, **kwargs)
		except _CONNECTION_ERRORS as exc:
			raise TransientError("database_unavailable") from exc

	return wrapper


async def ensure_schema(pool: asyncpg.Pool) -> None:
	async with pool.acquire() as conn:
		await conn.execute(SCHEMA_SQL)


def _row_to_item(row: asyncpg.Record) -> ContentItem:
	return ContentItem.from_record(dict(row))


def _row_to_entry(row: asyncpg.Record) -> EditLogEntry:
	return EditLogEntry(
		id=int(row["id"]),
		entity_type=EditEntityType(row["entity_type"]),
		entity_id=int(row["entity_id"]),
		action=EditAction(row["action"]),
		user_id=int(row["user_id"]),
		created_at=row["created_at"],
		changed_fields=tuple(row["changed_fields"] or ()),
	)


class PostgresContentRepository(ContentRepository):
	"""Every contribution type lives in contribution_items, keyed by content_type."""

	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	@_transient
	async def create(self, draft: NewContent) -> ContentItem:
		row = await self._pool.fetchrow(
			f"""
			INSERT INTO contribution_items (
				content_type, author_id, status, title, content, url, owner_type, owner_id,
				is_spoiler, spoiler_chapter
			)
			VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
			RETURNING {_ITEM_COLUMNS}
			""",
			draft.content_type.value,
			draft.author_id,
			draft.status.value,
			draft.title,
			draft.content,
			draft.url,
			draft.owner_type,
			draft.owner_id,
			draft.is_spoiler,
			draft.spoiler_chapter,
		)
		if row is None:  # pragma: no cover - RETURNING always yields a row
			raise RuntimeError("Failed to insert contribution")
		return _row_to_item(row)

	@_transient
	async def get(self, content_type: ContentType, item_id: int) -> ContentItem | None:
		row = await self._pool.fetchrow(
			f"SELECT {_ITEM_COLUMNS} FROM contribution_items WHERE content_type = $1 AND id = $2",
			content_type.value,
			item_id,
		)
		return _row_to_item(row) if row is not None else None

	@_transient
	async def update_fields(self, item: ContentItem) -> ContentItem:
		row = await self._pool.fetchrow(
			f"""
			UPDATE contribution_items
			SET title = $3, content = $4, url = $5, owner_type = $6, owner_id = $7,
				is_spoiler = $8, spoiler_chapter = $9, updated_at = $10
			WHERE content_type = $1 AND id = $2
			RETURNING {_ITEM_COLUMNS}
			""",
			item.content_type.value,
			item.id,
			item.title,
			item.content,
			item.url,
			item.owner_type,
			item.owner_id,
			item.is_spoiler,
			item.spoiler_chapter,
			item.updated_at,
		)
		if row is None:
			raise ContentNotFoundError()
		return _row_to_item(row)

	@_transient
	async def update_status(self, item: ContentItem) -> ContentItem:
		row = await self._pool.fetchrow(
			f"""
			UPDATE contribution_items
			SET status = $3, rejection_reason = $4, updated_at = $5
			WHERE content_type = $1 AND id = $2
			RETURNING {_ITEM_COLUMNS}
			""",
			item.content_type.value,
			item.id,
			item.status.value,
			item.rejection_reason,
			item.updated_at,
		)
		if row is None:
			raise ContentNotFoundError()
		return _row_to_item(row)

	@_transient
	async def delete(self, content_type: ContentType, item_id: int) -> bool:
		status = await self._pool.execute(
			"DELETE FROM contribution_items WHERE content_type = $1 AND id = $2",
			content_type.value,
			item_id,
		)
		return status.endswith(" 1")

	@_transient
	async def list_by_author(
		self,
		content_type: ContentType,
		author_id: int,
		*,
		statuses: Collection[ContentStatus] | None = None,
		limit: int = 50,
	) -> Sequence[ContentItem]:
		wanted = [status.value for status in (statuses if statuses is not None else ContentStatus)]
		rows = await self._pool.fetch(
			f"""
			SELECT {_ITEM_COLUMNS} FROM contribution_items
			WHERE content_type = $1 AND author_id = $2 AND status = ANY($3::text[])
			ORDER BY created_at DESC, id DESC
			LIMIT $4
			""",
			content_type.value,
			author_id,
			wanted,
			limit,
		)
		return [_row_to_item(row) for row in rows]

	@_transient
	async def count_by_author(self, content_type: ContentType, author_id: int) -> Mapping[ContentStatus, int]:
		rows = await self._pool.fetch(
			"""
			SELECT status, COUNT(*) AS total FROM contribution_items
			WHERE content_type = $1 AND author_id = $2
			GROUP BY status
			""",
			content_type.value,
			author_id,
		)
		return {ContentStatus(row["status"]): int(row["total"]) for row in rows}

	@_transient
	async def list_by_status(
		self,
		content_type: ContentType,
		status: ContentStatus,
		*,
		limit: int = 20,
		offset: int = 0,
	) -> Sequence[ContentItem]:
		rows = await self._pool.fetch(
			f"""
			SELECT {_ITEM_COLUMNS} FROM contribution_items
			WHERE content_type = $1 AND status = $2
			ORDER BY created_at ASC, id ASC
			LIMIT $3 OFFSET $4
			""",
			content_type.value,
			status.value,
			limit,
			offset,
		)
		return [_row_to_item(row) for row in rows]

	@_transient
	async def count_by_status(self, status: ContentStatus) -> Mapping[ContentType, int]:
		rows = await self._pool.fetch(
			"SELECT content_type, COUNT(*) AS total FROM contribution_items WHERE status = $1 GROUP BY content_type",
			status.value,
		)
		return {ContentType(row["content_type"]): int(row["total"]) for row in rows}

	@_transient
	async def list_for_owner(
		self,
		content_type: ContentType,
		owner_type: str,
		owner_id: int,
		*,
		limit: int = 100,
	) -> Sequence[ContentItem]:
		rows = await self._pool.fetch(
			f"""
			SELECT {_ITEM_COLUMNS} FROM contribution_items
			WHERE content_type = $1 AND owner_type = $2 AND owner_id = $3
			ORDER BY created_at DESC, id DESC
			LIMIT $4
			""",
			content_type.value,
			owner_type,
			owner_id,
			limit,
		)
		return [_row_to_item(row) for row in rows]

	@_transient
	async def increment_view_count(self, content_type: ContentType, item_id: int) -> None:
		await self._pool.execute(
			"UPDATE contribution_items SET view_count = view_count + 1 WHERE content_type = $1 AND id = $2",
			content_type.value,
			item_id,
		)

	@_transient
	async def toggle_like(self, content_type: ContentType, item_id: int, user_id: int) -> LikeResult:
		async with self._pool.acquire() as conn:
			async with conn.transaction():
				# Row lock serialises concurrent toggles on the same item.
				locked = await conn.fetchrow(
					"SELECT id FROM contribution_items WHERE content_type = $1 AND id = $2 FOR UPDATE",
					content_type.value,
					item_id,
				)
				if locked is None:
					raise ContentNotFoundError()
				removed = await conn.execute(
					"DELETE FROM contribution_likes WHERE item_id = $1 AND user_id = $2",
					item_id,
					user_id,
				)
				liked = not removed.endswith(" 1")
				if liked:
					await conn.execute(
						"INSERT INTO contribution_likes (item_id, user_id) VALUES ($1, $2)",
						item_id,
						user_id,
					)
				count = await conn.fetchval(
					"""
					UPDATE contribution_items
					SET like_count = GREATEST(like_count + $2, 0)
					WHERE id = $1
					RETURNING like_count
					""",
					item_id,
					1 if liked else -1,
				)
		return LikeResult(liked=liked, like_count=int(count or 0))

	@_transient
	async def has_liked(self, content_type: ContentType, item_id: int, user_id: int) -> bool:
		found = await self._pool.fetchval(
			"""
			SELECT 1 FROM contribution_likes l
			JOIN contribution_items i ON i.id = l.item_id
			WHERE i.content_type = $1 AND l.item_id = $2 AND l.user_id = $3
			""",
			content_type.value,
			item_id,
			user_id,
		)
		return found is not None


class PostgresReaderRepository(ReaderRepository):
	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	@_transient
	async def get_progress(self, user_id: int) -> int | None:
		value = await self._pool.fetchval("SELECT chapter FROM reader_progress WHERE user_id = $1", user_id)
		return int(value) if value is not None else None

	@_transient
	async def set_progress(self, user_id: int, chapter: int) -> int:
		value = await self._pool.fetchval(
			"""
			INSERT INTO reader_progress (user_id, chapter)
			VALUES ($1, $2)
			ON CONFLICT (user_id) DO UPDATE SET chapter = EXCLUDED.chapter, updated_at = now()
			RETURNING chapter
			""",
			user_id,
			chapter,
		)
		return int(value)

	@_transient
	async def get_preferences(self, user_id: int) -> SpoilerPreferences:
		row = await self._pool.fetchrow(
			"SELECT show_all_spoilers, chapter_tolerance FROM reader_progress WHERE user_id = $1",
			user_id,
		)
		if row is None:
			return SpoilerPreferences()
		return SpoilerPreferences(
			show_all_spoilers=bool(row["show_all_spoilers"]),
			chapter_tolerance=int(row["chapter_tolerance"]),
		)

	@_transient
	async def set_preferences(self, user_id: int, preferences: SpoilerPreferences) -> SpoilerPreferences:
		await self._pool.execute(
			"""
			INSERT INTO reader_progress (user_id, show_all_spoilers, chapter_tolerance)
			VALUES ($1, $2, $3)
			ON CONFLICT (user_id) DO UPDATE
			SET show_all_spoilers = EXCLUDED.show_all_spoilers,
				chapter_tolerance = EXCLUDED.chapter_tolerance,
				updated_at = now()
			""",
			user_id,
			preferences.show_all_spoilers,
			preferences.chapter_tolerance,
		)
		return preferences


class PostgresEditLogRepository(EditLogRepository):
	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	@_transient
	async def append(
		self,
		entity_type: EditEntityType,
		entity_id: int,
		action: EditAction,
		user_id: int,
		changed_fields: Sequence[str] = (),
	) -> EditLogEntry:
		row = await self._pool.fetchrow(
			"""
			INSERT INTO entity_edit_log (entity_type, entity_id, action, user_id, changed_fields)
			VALUES ($1, $2, $3, $4, $5)
			RETURNING id, entity_type, entity_id, action, user_id, changed_fields, created_at
			""",
			entity_type.value,
			entity_id,
			action.value,
			user_id,
			list(changed_fields),
		)
		if row is None:  # pragma: no cover - RETURNING always yields a row
			raise RuntimeError("Failed to insert edit log entry")
		return _row_to_entry(row)

	@_transient
	async def count_by_user_grouped(self, user_id: int) -> Mapping[EditEntityType, int]:
		rows = await self._pool.fetch(
			"SELECT entity_type, COUNT(*) AS total FROM entity_edit_log WHERE user_id = $1 GROUP BY entity_type",
			user_id,
		)
		counts = {entity_type: 0 for entity_type in EditEntityType}
		for row in rows:
			counts[EditEntityType(row["entity_type"])] = int(row["total"])
		return counts

	@_transient
	async def list_by_user(self, user_id: int, *, limit: int = 50) -> Sequence[EditLogEntry]:
		rows = await self._pool.fetch(
			"""
			SELECT id, entity_type, entity_id, action, user_id, changed_fields, created_at
			FROM entity_edit_log
			WHERE user_id = $1
			ORDER BY created_at DESC, id DESC
			LIMIT $2
			""",
			user_id,
			limit,
		)
		return [_row_to_entry(row) for row in rows]


class PostgresPageViewRepository(PageViewRepository):
	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	@_transient
	async def add(
		self,
		page_type: PageType,
		page_id: int,
		*,
		ip_address: str | None = None,
		user_agent: str | None = None,
	) -> None:
		await self._pool.execute(
			"INSERT INTO page_views (page_type, page_id, ip_address, user_agent) VALUES ($1, $2, $3, $4)",
			page_type.value,
			page_id,
			ip_address,
			user_agent,
		)

	@_transient
	async def count(self, page_type: PageType, page_id: int) -> int:
		value = await self._pool.fetchval(
			"SELECT COUNT(*) FROM page_views WHERE page_type = $1 AND page_id = $2",
			page_type.value,
			page_id,
		)
		return int(value or 0)

	@_transient
	async def counts(self, page_type: PageType, page_ids: Sequence[int]) -> Dict[int, int]:
		if not page_ids:
			return {}
		rows = await self._pool.fetch(
			"""
			SELECT page_id, COUNT(*) AS total FROM page_views
			WHERE page_type = $1 AND page_id = ANY($2::bigint[])
			GROUP BY page_id
			""",
			page_type.value,
			list(page_ids),
		)
		return {int(row["page_id"]): int(row["total"]) for row in rows}

	@_transient
	async def trending(
		self,
		page_type: PageType | None,
		*,
		limit: int,
		since: datetime,
	) -> Sequence[TrendingPage]:
		rows = await self._pool.fetch(
			"""
			SELECT page_type, page_id,
				COUNT(*) AS view_count,
				COUNT(*) FILTER (WHERE created_at >= $2) AS recent_view_count
			FROM page_views
			WHERE $1::text IS NULL OR page_type = $1
			GROUP BY page_type, page_id
			ORDER BY recent_view_count DESC, view_count DESC
			LIMIT $3
			""",
			page_type.value if page_type is not None else None,
			since,
			limit,
		)
		return [
			TrendingPage(
				page_type=PageType(row["page_type"]),
				page_id=int(row["page_id"]),
				view_count=int(row["view_count"]),
				recent_view_count=int(row["recent_view_count"]),
			)
			for row in rows
		]
