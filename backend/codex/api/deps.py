from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, status

from codex.domain.contributions import container
from codex.domain.contributions.exceptions import ContributionError
from codex.domain.contributions.models import Actor
from codex.infra.auth import AuthenticatedUser, get_current_user, get_optional_user

_MESSAGES = {
	"permission": "not_allowed",
	"not_found": "no_longer_available",
	"transient": "temporarily_unavailable",
}
_STATUS_CODES = {
	"validation": status.HTTP_422_UNPROCESSABLE_ENTITY,
	"permission": status.HTTP_403_FORBIDDEN,
	"not_found": status.HTTP_404_NOT_FOUND,
	"transient": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def map_error(exc: ContributionError) -> HTTPException:
	"""Structured ``{kind, message}`` detail; permission failures never say which role was missing."""
	detail = {"kind": exc.kind, "message": _MESSAGES.get(exc.kind, exc.reason)}
	field = getattr(exc, "field", None)
	if exc.kind == "validation" and field:
		detail["field"] = field
	return HTTPException(_STATUS_CODES.get(exc.kind, status.HTTP_400_BAD_REQUEST), detail=detail)


async def _resolve(user: Optional[AuthenticatedUser]) -> Actor:
	service = container.get_contribution_service()
	try:
		if user is None:
			return await service.resolve_actor(None)
		return await service.resolve_actor(user.id, user.role)
	except ContributionError as exc:
		raise map_error(exc) from None


async def get_actor(user: Optional[AuthenticatedUser] = Depends(get_optional_user)) -> Actor:
	"""Anonymous readers resolve to an actor without an id."""
	return await _resolve(user)


async def get_authenticated_actor(user: AuthenticatedUser = Depends(get_current_user)) -> Actor:
	return await _resolve(user)
