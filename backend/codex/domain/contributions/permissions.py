"""Single authority for what an actor may do with a contribution."""

from __future__ import annotations

from typing import FrozenSet, Optional

from codex.domain.contributions import gate
from codex.domain.contributions.exceptions import ContentPermissionError, SelfLikeError
from codex.domain.contributions.models import (
	Action,
	Actor,
	ContentItem,
	ContentStatus,
	SpoilerPreferences,
)

MODERATION_ACTIONS = frozenset({Action.APPROVE, Action.REJECT, Action.UNPUBLISH})


def is_owner(actor: Actor, item: ContentItem) -> bool:
	return actor.is_authenticated and actor.id == item.author_id


def can_access(actor: Actor, item: ContentItem) -> bool:
	"""Whether the item exists for this actor at all (status rule only)."""
	if item.status is ContentStatus.APPROVED:
		return True
	return is_owner(actor, item) or actor.is_privileged


def can_view(
	actor: Actor,
	item: ContentItem,
	*,
	preferences: Optional[SpoilerPreferences] = None,
	unrestricted: bool = False,
) -> bool:
	if not can_access(actor, item):
		return False
	if item.is_spoiler:
		return gate.actor_can_see(actor, item, preferences=preferences, unrestricted=unrestricted)
	return True


def can_edit(actor: Actor, item: ContentItem) -> bool:
	return is_owner(actor, item) or actor.is_privileged


def can_moderate(actor: Actor) -> bool:
	return actor.is_privileged


def can_like(actor: Actor, item: ContentItem) -> bool:
	return actor.is_authenticated and not is_owner(actor, item) and can_access(actor, item)


def allowed_actions(
	actor: Actor,
	item: ContentItem,
	*,
	preferences: Optional[SpoilerPreferences] = None,
	unrestricted: bool = False,
) -> FrozenSet[Action]:
	actions: set[Action] = set()
	if can_view(actor, item, preferences=preferences, unrestricted=unrestricted):
		actions.add(Action.VIEW)
	if can_edit(actor, item):
		actions.update((Action.EDIT, Action.DELETE))
	if can_moderate(actor):
		actions.update(MODERATION_ACTIONS)
	if can_like(actor, item):
		actions.add(Action.LIKE)
	return frozenset(actions)


def ensure_can_edit(actor: Actor, item: ContentItem) -> None:
	if not can_edit(actor, item):
		raise ContentPermissionError()


def ensure_can_delete(actor: Actor, item: ContentItem) -> None:
	ensure_can_edit(actor, item)


def ensure_can_moderate(actor: Actor) -> None:
	if not can_moderate(actor):
		raise ContentPermissionError()


def ensure_can_like(actor: Actor, item: ContentItem) -> None:
	if not actor.is_authenticated:
		raise ContentPermissionError()
	if is_owner(actor, item):
		raise SelfLikeError()
	if not can_access(actor, item):
		raise ContentPermissionError()
