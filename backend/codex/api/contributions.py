"""REST API surface for user contributions and the moderation queue."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Response, status

from codex.api.deps import get_actor, get_authenticated_actor, map_error
from codex.domain.contributions import container
from codex.domain.contributions.exceptions import ContentValidationError, ContributionError
from codex.domain.contributions.models import Actor, AnnotationOwnerType, ContentStatus, ContentType
from codex.domain.contributions.schemas import (
	ContentItemResponse,
	EditContentRequest,
	LikeResponse,
	PendingCountResponse,
	PresentedItemResponse,
	StatusChangeRequest,
	SubmitContentRequest,
)
from codex.domain.contributions.service import ContentChanges, SubmitContent

router = APIRouter()


@router.get("/moderation/pending/count", response_model=PendingCountResponse)
async def pending_count(actor: Actor = Depends(get_authenticated_actor)) -> PendingCountResponse:
	try:
		counts = await container.get_contribution_service().count_pending(actor)
	except ContributionError as exc:
		raise map_error(exc) from None
	by_type = {content_type.value: count for content_type, count in counts.items()}
	return PendingCountResponse(counts=by_type, total=sum(by_type.values()))


@router.get("/moderation/{content_type}/pending", response_model=List[ContentItemResponse])
async def pending_queue(
	content_type: ContentType,
	limit: int = Query(default=20, ge=1, le=100),
	offset: int = Query(default=0, ge=0),
	actor: Actor = Depends(get_authenticated_actor),
) -> List[ContentItemResponse]:
	try:
		items = await container.get_contribution_service().list_pending(
			actor, content_type, limit=limit, offset=offset
		)
	except ContributionError as exc:
		raise map_error(exc) from None
	return [ContentItemResponse.from_item(item) for item in items]


@router.get(
	"/{content_type}/by-owner/{owner_type}/{owner_id}",
	response_model=List[PresentedItemResponse],
)
async def list_for_entity(
	content_type: ContentType,
	owner_type: AnnotationOwnerType,
	owner_id: int,
	actor: Actor = Depends(get_actor),
) -> List[PresentedItemResponse]:
	try:
		items = await container.get_contribution_service().list_for_entity(
			actor, content_type, owner_type.value, owner_id
		)
	except ContributionError as exc:
		raise map_error(exc) from None
	return [PresentedItemResponse.from_presented(item) for item in items]


@router.get("/{content_type}/{item_id}", response_model=PresentedItemResponse)
async def fetch_item(
	content_type: ContentType,
	item_id: int,
	preview: bool = Query(default=False, description="Staff only: bypass the spoiler gate"),
	actor: Actor = Depends(get_actor),
) -> PresentedItemResponse:
	try:
		presented = await container.get_contribution_service().fetch_content_item(
			actor, content_type, item_id, preview=preview
		)
	except ContributionError as exc:
		raise map_error(exc) from None
	return PresentedItemResponse.from_presented(presented)


@router.post("/{content_type}", response_model=ContentItemResponse, status_code=status.HTTP_201_CREATED)
async def submit_item(
	content_type: ContentType,
	payload: SubmitContentRequest,
	actor: Actor = Depends(get_authenticated_actor),
) -> ContentItemResponse:
	try:
		item = await container.get_contribution_service().submit_content(
			actor,
			content_type,
			SubmitContent(**payload.model_dump()),
		)
	except ContributionError as exc:
		raise map_error(exc) from None
	return ContentItemResponse.from_item(item)


@router.patch("/{content_type}/{item_id}", response_model=ContentItemResponse)
async def edit_item(
	content_type: ContentType,
	item_id: int,
	payload: EditContentRequest,
	actor: Actor = Depends(get_authenticated_actor),
) -> ContentItemResponse:
	try:
		item = await container.get_contribution_service().edit_content(
			actor,
			content_type,
			item_id,
			ContentChanges(**payload.model_dump()),
		)
	except ContributionError as exc:
		raise map_error(exc) from None
	return ContentItemResponse.from_item(item)


@router.delete("/{content_type}/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
	content_type: ContentType,
	item_id: int,
	actor: Actor = Depends(get_authenticated_actor),
) -> Response:
	try:
		await container.get_contribution_service().delete_content(actor, content_type, item_id)
	except ContributionError as exc:
		raise map_error(exc) from None
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{content_type}/{item_id}/status", response_model=ContentItemResponse)
async def change_status(
	content_type: ContentType,
	item_id: int,
	payload: StatusChangeRequest,
	actor: Actor = Depends(get_authenticated_actor),
) -> ContentItemResponse:
	try:
		try:
			target = ContentStatus.parse(payload.status.strip().lower())
		except ValueError:
			raise ContentValidationError("invalid_status", field="status") from None
		item = await container.get_contribution_service().transition_status(
			actor, content_type, item_id, target, payload.reason
		)
	except ContributionError as exc:
		raise map_error(exc) from None
	return ContentItemResponse.from_item(item)


@router.post("/{content_type}/{item_id}/like", response_model=LikeResponse)
async def toggle_like(
	content_type: ContentType,
	item_id: int,
	actor: Actor = Depends(get_authenticated_actor),
) -> LikeResponse:
	try:
		result = await container.get_contribution_service().toggle_like(actor, content_type, item_id)
	except ContributionError as exc:
		raise map_error(exc) from None
	return LikeResponse(liked=result.liked, like_count=result.like_count)
