"""Profile-facing endpoints: contribution summaries, reading progress, entity edits."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from codex.api.deps import get_actor, get_authenticated_actor, map_error
from codex.domain.contributions import container
from codex.domain.contributions.exceptions import ContributionError
from codex.domain.contributions.models import Actor, EditEntityType
from codex.domain.contributions.schemas import (
	ContributionDetailsResponse,
	ContributionSummaryResponse,
	EditLogEntryResponse,
	EntityEditRequest,
	ProgressResponse,
	ProgressUpdateRequest,
	SpoilerPreferencesRequest,
)

router = APIRouter()


@router.get("/users/{user_id}/contributions", response_model=ContributionSummaryResponse)
async def user_contributions(user_id: int, viewer: Actor = Depends(get_actor)) -> ContributionSummaryResponse:
	try:
		summary = await container.get_contribution_service().get_user_contributions(viewer, user_id)
	except ContributionError as exc:
		raise map_error(exc) from None
	return ContributionSummaryResponse.from_summary(summary)


@router.get("/users/{user_id}/contributions/details", response_model=ContributionDetailsResponse)
async def user_contribution_details(
	user_id: int,
	viewer: Actor = Depends(get_actor),
) -> ContributionDetailsResponse:
	try:
		details = await container.get_contribution_service().get_user_contribution_details(viewer, user_id)
	except ContributionError as exc:
		raise map_error(exc) from None
	return ContributionDetailsResponse.from_details(details)


@router.put("/users/{user_id}/progress", response_model=ProgressResponse)
async def update_progress(
	user_id: int,
	payload: ProgressUpdateRequest,
	actor: Actor = Depends(get_authenticated_actor),
) -> ProgressResponse:
	try:
		chapter = await container.get_contribution_service().update_progress(actor, user_id, payload.chapter)
	except ContributionError as exc:
		raise map_error(exc) from None
	return ProgressResponse(user_id=user_id, chapter=chapter)


@router.put("/users/{user_id}/spoiler-preferences", response_model=SpoilerPreferencesRequest)
async def update_spoiler_preferences(
	user_id: int,
	payload: SpoilerPreferencesRequest,
	actor: Actor = Depends(get_authenticated_actor),
) -> SpoilerPreferencesRequest:
	try:
		stored = await container.get_contribution_service().update_preferences(actor, user_id, payload.to_domain())
	except ContributionError as exc:
		raise map_error(exc) from None
	return SpoilerPreferencesRequest(
		show_all_spoilers=stored.show_all_spoilers,
		chapter_tolerance=stored.chapter_tolerance,
	)


@router.post("/edits/{entity_type}/{entity_id}", response_model=EditLogEntryResponse, status_code=201)
async def record_entity_edit(
	entity_type: EditEntityType,
	entity_id: int,
	payload: EntityEditRequest,
	actor: Actor = Depends(get_authenticated_actor),
) -> EditLogEntryResponse:
	try:
		entry = await container.get_contribution_service().record_entity_edit(
			actor,
			entity_type,
			entity_id,
			payload.action,
			payload.changed_fields,
		)
	except ContributionError as exc:
		raise map_error(exc) from None
	return EditLogEntryResponse.from_entry(entry)
