"""Pydantic schemas for contribution, moderation and page view endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from codex.domain.contributions.aggregator import ContributionDetails, ContributionEntry, ContributionSummary
from codex.domain.contributions.models import (
	UNRESTRICTED_PROGRESS,
	ContentItem,
	ContentStatus,
	ContentType,
	EditAction,
	EditEntityType,
	EditLogEntry,
	PageType,
	SpoilerPreferences,
	TrendingPage,
)
from codex.domain.contributions.service import PresentedItem


class SubmitContentRequest(BaseModel):
	title: str = Field(default="", max_length=200)
	content: str = Field(default="")
	url: Optional[str] = Field(default=None, max_length=500)
	owner_type: Optional[str] = Field(default=None, description="Entity an annotation or media item belongs to")
	owner_id: Optional[int] = Field(default=None, gt=0)
	is_spoiler: bool = False
	spoiler_chapter: Optional[int] = None
	as_draft: bool = Field(default=False, description="Guides only: save without submitting for review")


class EditContentRequest(BaseModel):
	title: Optional[str] = Field(default=None, max_length=200)
	content: Optional[str] = None
	url: Optional[str] = Field(default=None, max_length=500)
	is_spoiler: Optional[bool] = None
	spoiler_chapter: Optional[int] = None


class StatusChangeRequest(BaseModel):
	status: str = Field(..., description="Target status; 'published' is accepted for guides")
	reason: Optional[str] = Field(default=None, description="Required when rejecting")


class ProgressUpdateRequest(BaseModel):
	chapter: int = Field(..., ge=0, le=UNRESTRICTED_PROGRESS)


class SpoilerPreferencesRequest(BaseModel):
	show_all_spoilers: bool = False
	chapter_tolerance: int = Field(default=0, ge=0)

	def to_domain(self) -> SpoilerPreferences:
		return SpoilerPreferences(
			show_all_spoilers=self.show_all_spoilers,
			chapter_tolerance=self.chapter_tolerance,
		)


class EntityEditRequest(BaseModel):
	action: EditAction = EditAction.UPDATE
	changed_fields: List[str] = Field(default_factory=list)


class ContentItemResponse(BaseModel):
	id: int
	content_type: ContentType
	author_id: int
	status: ContentStatus
	title: str
	content: str
	url: Optional[str] = None
	owner_type: Optional[str] = None
	owner_id: Optional[int] = None
	is_spoiler: bool
	spoiler_chapter: Optional[int] = None
	rejection_reason: Optional[str] = None
	view_count: int = 0
	like_count: int = 0
	created_at: datetime
	updated_at: datetime

	@classmethod
	def from_item(cls, item: ContentItem) -> "ContentItemResponse":
		return cls(
			id=item.id,
			content_type=item.content_type,
			author_id=item.author_id,
			status=item.status,
			title=item.title,
			content=item.content,
			url=item.url,
			owner_type=item.owner_type,
			owner_id=item.owner_id,
			is_spoiler=item.is_spoiler,
			spoiler_chapter=item.spoiler_chapter,
			rejection_reason=item.rejection_reason,
			view_count=item.view_count,
			like_count=item.like_count,
			created_at=item.created_at,
			updated_at=item.updated_at,
		)


class PresentedItemResponse(BaseModel):
	item: ContentItemResponse
	visible: bool
	placeholder: Optional[str] = None
	actions: List[str]
	user_has_liked: bool = False

	@classmethod
	def from_presented(cls, presented: PresentedItem) -> "PresentedItemResponse":
		item = ContentItemResponse.from_item(presented.item)
		# Only the people allowed to edit ever see why something was rejected.
		if "edit" not in {action.value for action in presented.actions}:
			item.rejection_reason = None
		return cls(
			item=item,
			visible=presented.visible,
			placeholder=presented.placeholder,
			actions=sorted(action.value for action in presented.actions),
			user_has_liked=presented.user_has_liked,
		)


class LikeResponse(BaseModel):
	liked: bool
	like_count: int


class PendingCountResponse(BaseModel):
	counts: Dict[str, int]
	total: int


class ProgressResponse(BaseModel):
	user_id: int
	chapter: int


class EditLogEntryResponse(BaseModel):
	id: int
	entity_type: EditEntityType
	entity_id: int
	action: EditAction
	user_id: int
	created_at: datetime
	changed_fields: List[str] = Field(default_factory=list)

	@classmethod
	def from_entry(cls, entry: EditLogEntry) -> "EditLogEntryResponse":
		return cls(
			id=entry.id,
			entity_type=entry.entity_type,
			entity_id=entry.entity_id,
			action=entry.action,
			user_id=entry.user_id,
			created_at=entry.created_at,
			changed_fields=list(entry.changed_fields),
		)


class SubmissionCounts(BaseModel):
	guides: int = 0
	media: int = 0
	annotations: int = 0
	quotes: int = 0
	total: int = 0


class EditCounts(BaseModel):
	characters: int = 0
	gambles: int = 0
	arcs: int = 0
	organizations: int = 0
	events: int = 0
	total: int = 0


class ContributionSummaryResponse(BaseModel):
	user_id: int
	submissions: SubmissionCounts
	edits: EditCounts
	by_status: Dict[str, Dict[str, int]]
	total_contributions: int
	unavailable: List[str] = Field(default_factory=list)

	@classmethod
	def from_summary(cls, summary: ContributionSummary) -> "ContributionSummaryResponse":
		return cls(
			user_id=summary.user_id,
			submissions=SubmissionCounts(**summary.submissions, total=summary.submissions_total),
			edits=EditCounts(**summary.edits, total=summary.edits_total),
			by_status=summary.by_status,
			total_contributions=summary.total_contributions,
			unavailable=list(summary.unavailable),
		)


class ContributionEntryResponse(BaseModel):
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

	@classmethod
	def from_entry(cls, entry: ContributionEntry) -> "ContributionEntryResponse":
		return cls(
			id=entry.id,
			content_type=entry.content_type,
			status=entry.status,
			created_at=entry.created_at,
			updated_at=entry.updated_at,
			title=entry.title,
			description=entry.description,
			url=entry.url,
			owner_type=entry.owner_type,
			owner_id=entry.owner_id,
			rejection_reason=entry.rejection_reason,
			placeholder=entry.placeholder,
		)


class ContributionDetailsResponse(BaseModel):
	user_id: int
	submissions: Dict[str, List[ContributionEntryResponse]]
	edits: List[EditLogEntryResponse]
	unavailable: List[str] = Field(default_factory=list)

	@classmethod
	def from_details(cls, details: ContributionDetails) -> "ContributionDetailsResponse":
		return cls(
			user_id=details.user_id,
			submissions={
				name: [ContributionEntryResponse.from_entry(entry) for entry in entries]
				for name, entries in details.submissions.items()
			},
			edits=[EditLogEntryResponse.from_entry(entry) for entry in details.edits],
			unavailable=list(details.unavailable),
		)


class ViewRecordedResponse(BaseModel):
	success: bool


class ViewCountResponse(BaseModel):
	page_type: PageType
	page_id: int
	view_count: int


class TrendingPageResponse(BaseModel):
	page_type: PageType
	page_id: int
	view_count: int
	recent_view_count: int

	@classmethod
	def from_page(cls, page: TrendingPage) -> "TrendingPageResponse":
		return cls(
			page_type=page.page_type,
			page_id=page.page_id,
			view_count=page.view_count,
			recent_view_count=page.recent_view_count,
		)
