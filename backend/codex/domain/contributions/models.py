"""Domain models for reader contributions, moderation status, and spoiler metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional

# Reserved maximum progress; fits a PostgreSQL integer column.
UNRESTRICTED_PROGRESS = 2**31 - 1


class ContentStatus(str, Enum):
	"""Moderation states shared by every user-submitted content type."""

	DRAFT = "draft"
	PENDING = "pending"
	APPROVED = "approved"
	REJECTED = "rejected"

	@classmethod
	def parse(cls, value: str) -> "ContentStatus":
		# Guides call an approved item "published".
		if value == "published":
			return cls.APPROVED
		return cls(value)


class ContentType(str, Enum):
	ANNOTATION = "annotation"
	GUIDE = "guide"
	MEDIA = "media"
	QUOTE = "quote"


class Role(str, Enum):
	MEMBER = "member"
	MODERATOR = "moderator"
	ADMIN = "admin"

	@property
	def is_privileged(self) -> bool:
		return self in (Role.MODERATOR, Role.ADMIN)


class Action(str, Enum):
	VIEW = "view"
	EDIT = "edit"
	DELETE = "delete"
	APPROVE = "approve"
	REJECT = "reject"
	UNPUBLISH = "unpublish"
	LIKE = "like"


class AnnotationOwnerType(str, Enum):
	CHARACTER = "character"
	GAMBLE = "gamble"
	ARC = "arc"
	CHAPTER = "chapter"


class EditEntityType(str, Enum):
	CHARACTER = "character"
	GAMBLE = "gamble"
	ARC = "arc"
	ORGANIZATION = "organization"
	EVENT = "event"


class EditAction(str, Enum):
	CREATE = "create"
	UPDATE = "update"
	DELETE = "delete"


class PageType(str, Enum):
	GUIDE = "guide"
	CHARACTER = "character"
	EVENT = "event"
	GAMBLE = "gamble"
	ARC = "arc"
	VOLUME = "volume"
	CHAPTER = "chapter"
	QUOTE = "quote"
	ORGANIZATION = "organization"


@dataclass(frozen=True, slots=True)
class ContentKind:
	"""Per-type capabilities; the transition table itself is shared."""

	content_type: ContentType
	supports_draft: bool = False
	requires_review: bool = True
	required_fields: tuple[str, ...] = ("title", "content")

	def initial_status(self, *, as_draft: bool = False) -> ContentStatus:
		if not self.requires_review:
			return ContentStatus.APPROVED
		if as_draft and self.supports_draft:
			return ContentStatus.DRAFT
		return ContentStatus.PENDING


CONTENT_KINDS: Mapping[ContentType, ContentKind] = {
	ContentType.ANNOTATION: ContentKind(ContentType.ANNOTATION),
	ContentType.GUIDE: ContentKind(ContentType.GUIDE, supports_draft=True),
	ContentType.MEDIA: ContentKind(ContentType.MEDIA, required_fields=("url",)),
	ContentType.QUOTE: ContentKind(ContentType.QUOTE, requires_review=False, required_fields=("content",)),
}


def kind_for(content_type: ContentType) -> ContentKind:
	return CONTENT_KINDS[content_type]


@dataclass(frozen=True, slots=True)
class Actor:
	"""A reader acting on the site; ``id`` is None for anonymous visitors."""

	id: Optional[int]
	role: Role = Role.MEMBER
	progress: int = 0

	@classmethod
	def anonymous(cls) -> "Actor":
		return cls(id=None, role=Role.MEMBER, progress=0)

	@property
	def is_authenticated(self) -> bool:
		return self.id is not None

	@property
	def is_privileged(self) -> bool:
		return self.is_authenticated and self.role.is_privileged


@dataclass(frozen=True, slots=True)
class ContentItem:
	id: int
	content_type: ContentType
	author_id: int
	status: ContentStatus
	created_at: datetime
	updated_at: datetime
	title: str = ""
	content: str = ""
	url: Optional[str] = None
	owner_type: Optional[str] = None
	owner_id: Optional[int] = None
	is_spoiler: bool = False
	spoiler_chapter: Optional[int] = None
	rejection_reason: Optional[str] = None
	view_count: int = 0
	like_count: int = 0

	@property
	def key(self) -> str:
		return f"{self.content_type.value}:{self.id}"

	@classmethod
	def from_record(cls, record: Mapping) -> "ContentItem":
		return cls(
			id=int(record["id"]),
			content_type=ContentType(record["content_type"]),
			author_id=int(record["author_id"]),
			status=ContentStatus(record["status"]),
			created_at=record["created_at"],
			updated_at=record["updated_at"],
			title=record.get("title") or "",
			content=record.get("content") or "",
			url=record.get("url"),
			owner_type=record.get("owner_type"),
			owner_id=int(record["owner_id"]) if record.get("owner_id") is not None else None,
			is_spoiler=bool(record.get("is_spoiler")),
			spoiler_chapter=record.get("spoiler_chapter"),
			rejection_reason=record.get("rejection_reason"),
			view_count=int(record.get("view_count") or 0),
			like_count=int(record.get("like_count") or 0),
		)


@dataclass(frozen=True, slots=True)
class SpoilerPreferences:
	"""Reader-chosen overrides on top of declared progress."""

	show_all_spoilers: bool = False
	chapter_tolerance: int = 0


@dataclass(frozen=True, slots=True)
class LikeResult:
	liked: bool
	like_count: int


@dataclass(frozen=True, slots=True)
class EditLogEntry:
	id: int
	entity_type: EditEntityType
	entity_id: int
	action: EditAction
	user_id: int
	created_at: datetime
	changed_fields: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class TrendingPage:
	page_type: PageType
	page_id: int
	view_count: int
	recent_view_count: int
