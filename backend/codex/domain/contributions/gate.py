"""Progress gating: decide whether spoiler-marked content may be shown to a reader.

Everything here is a pure predicate apart from logging and metrics. Malformed
spoiler metadata (a spoiler without a positive chapter) is logged and treated
as hidden; it never raises at read time. Writes go through
``validate_spoiler_metadata`` which does raise.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional

from codex.domain.contributions.exceptions import MalformedSpoilerMetadata
from codex.domain.contributions.models import (
	UNRESTRICTED_PROGRESS,
	Actor,
	ContentItem,
	SpoilerPreferences,
)
from codex.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

PLACEHOLDER_TEMPLATE = "Contains spoilers for chapter {chapter}+"
GENERIC_PLACEHOLDER = "Contains spoilers"


@dataclass(frozen=True, slots=True)
class GatedItem:
	item: ContentItem
	visible: bool
	placeholder: Optional[str] = None


def effective_progress(progress: Optional[int], preferences: Optional[SpoilerPreferences] = None) -> int:
	"""Progress the gate compares against, after reader preferences."""
	if preferences is not None:
		if preferences.show_all_spoilers:
			return UNRESTRICTED_PROGRESS
		if preferences.chapter_tolerance > 0:
			return min(preferences.chapter_tolerance, UNRESTRICTED_PROGRESS)
	if progress is None or progress < 0:
		return 0
	return min(progress, UNRESTRICTED_PROGRESS)


def _has_valid_chapter(item: ContentItem) -> bool:
	chapter = item.spoiler_chapter
	if isinstance(chapter, int) and not isinstance(chapter, bool) and chapter > 0:
		return True
	logger.error(
		"spoiler_metadata_invalid",
		extra={"item": item.key, "spoiler_chapter": chapter},
	)
	obs_metrics.inc_spoiler_malformed()
	return False


def is_visible(progress: Optional[int], item: ContentItem, *, unrestricted: bool = False) -> bool:
	"""Return True when ``item`` may be rendered for a reader at ``progress``.

	``progress`` of None means an unauthenticated reader (treated as 0).
	``unrestricted`` is the staff preview override.
	"""
	if not item.is_spoiler:
		return True
	if not _has_valid_chapter(item):
		return False
	if unrestricted:
		return True
	reader = 0 if progress is None else progress
	return reader >= item.spoiler_chapter  # type: ignore[operator]


def actor_can_see(
	actor: Actor,
	item: ContentItem,
	*,
	preferences: Optional[SpoilerPreferences] = None,
	unrestricted: bool = False,
) -> bool:
	progress = effective_progress(actor.progress, preferences) if actor.is_authenticated else None
	return is_visible(progress, item, unrestricted=unrestricted)


def placeholder_for(item: ContentItem) -> str:
	chapter = item.spoiler_chapter
	if isinstance(chapter, int) and not isinstance(chapter, bool) and chapter > 0:
		return PLACEHOLDER_TEMPLATE.format(chapter=chapter)
	return GENERIC_PLACEHOLDER


def redact(item: ContentItem) -> ContentItem:
	return dataclasses.replace(item, title="", content="", url=None)


def present(
	actor: Actor,
	item: ContentItem,
	*,
	preferences: Optional[SpoilerPreferences] = None,
	unrestricted: bool = False,
) -> GatedItem:
	"""Return the item as it may be shown, substituting a placeholder when gated."""
	if actor_can_see(actor, item, preferences=preferences, unrestricted=unrestricted):
		return GatedItem(item=item, visible=True)
	obs_metrics.inc_spoiler_redaction(item.content_type.value)
	return GatedItem(item=redact(item), visible=False, placeholder=placeholder_for(item))


def validate_spoiler_metadata(is_spoiler: bool, spoiler_chapter: Optional[int]) -> Optional[int]:
	"""Check the spoiler pair on write and return the chapter to store."""
	if not is_spoiler:
		# A chapter without the flag is dropped so the pair stays consistent.
		return None
	if spoiler_chapter is None or isinstance(spoiler_chapter, bool) or spoiler_chapter <= 0:
		raise MalformedSpoilerMetadata()
	return int(spoiler_chapter)
