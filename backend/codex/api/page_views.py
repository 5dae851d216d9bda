"""Page view recording, counts and trending pages."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException, Query, Request

from codex.api.deps import map_error
from codex.domain.contributions import container
from codex.domain.contributions.exceptions import ContributionError
from codex.domain.contributions.models import PageType
from codex.domain.contributions.schemas import TrendingPageResponse, ViewCountResponse, ViewRecordedResponse

router = APIRouter(prefix="/page-views")


@router.get("/trending", response_model=List[TrendingPageResponse])
async def trending_pages(
	page_type: Optional[PageType] = Query(default=None),
	limit: int = Query(default=10, ge=1, le=50),
	days_back: int = Query(default=7, ge=1, le=365),
) -> List[TrendingPageResponse]:
	try:
		pages = await container.get_page_view_service().get_trending(page_type, limit=limit, days_back=days_back)
	except ContributionError as exc:
		raise map_error(exc) from None
	return [TrendingPageResponse.from_page(page) for page in pages]


@router.post("/{page_type}/{page_id}/view", response_model=ViewRecordedResponse)
async def record_view(
	page_type: PageType,
	page_id: int,
	request: Request,
	user_agent: Optional[str] = Header(default=None, alias="User-Agent"),
) -> ViewRecordedResponse:
	ip_address = request.client.host if request.client else None
	try:
		recorded = await container.get_page_view_service().record_view(
			page_type,
			page_id,
			ip_address=ip_address,
			user_agent=user_agent,
		)
	except ContributionError as exc:
		raise map_error(exc) from None
	return ViewRecordedResponse(success=recorded)


@router.get("/{page_type}/{page_id}/count", response_model=ViewCountResponse)
async def view_count(page_type: PageType, page_id: int) -> ViewCountResponse:
	if page_id <= 0:
		raise HTTPException(status_code=422, detail={"kind": "validation", "message": "invalid_page_id"})
	try:
		count = await container.get_page_view_service().get_view_count(page_type, page_id)
	except ContributionError as exc:
		raise map_error(exc) from None
	return ViewCountResponse(page_type=page_type, page_id=page_id, view_count=count)
