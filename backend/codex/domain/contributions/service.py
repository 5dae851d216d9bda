"""Contribution workflows: submission, editing, moderation, likes, and reader progress."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Sequence

from codex.domain.contributions import audit, gate, permissions
from codex.domain.contributions.aggregator import (
    ContributionAggregator,
    ContributionDetails,
    ContributionSummary,
)
from codex.domain.contributions.exceptions import (
    ContentNotFoundError,
    ContentPermissionError,
    ContentValidationError,
    ContributionError,
)
from codex.domain.contributions.models import (
    UNRESTRICTED_PROGRESS,
    Action,
    Actor,
    AnnotationOwnerType,
    ContentItem,
    ContentStatus,
    ContentType,
    EditAction,
    EditEntityType,
    EditLogEntry,
    LikeResult,
    Role,
    SpoilerPreferences,
    kind_for,
)
from codex.domain.contributions.repository import (
    ContentRepository,
    EditLogRepository,
    NewContent,
    ReaderRepository,
)
from codex.domain.contributions.state_machine import ModerationStateMachine, missing_required_fields
from codex.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

TITLE_MAX_LEN = 200
URL_MAX_LEN = 500
PENDING_PAGE_MAX = 100


@dataclass(frozen=True, slots=True)
class SubmitContent:
    title: str = ""
    content: str = ""
    url: Optional[str] = None
    owner_type: Optional[str] = None
    owner_id: Optional[int] = None
    is_spoiler: bool = False
    spoiler_chapter: Optional[int] = None
    as_draft: bool = False


@dataclass(frozen=True, slots=True)
class ContentChanges:
    """Fields left as None are unchanged."""

    title: Optional[str] = None
    content: Optional[str] = None
    url: Optional[str] = None
    is_spoiler: Optional[bool] = None
    spoiler_chapter: Optional[int] = None


@dataclass(frozen=True, slots=True)
class PresentedItem:
    item: ContentItem
    visible: bool
    placeholder: Optional[str]
    actions: FrozenSet[Action]
    user_has_liked: bool = False


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _check_fields(item: ContentItem) -> None:
    """Field invariants that hold in every status."""
    if len(item.title) > TITLE_MAX_LEN:
        raise ContentValidationError("title_too_long", field="title")
    if item.url is not None and len(item.url) > URL_MAX_LEN:
        raise ContentValidationError("url_too_long", field="url")
    if item.content_type is ContentType.ANNOTATION:
        if item.owner_type not in {owner.value for owner in AnnotationOwnerType}:
            raise ContentValidationError("invalid_owner_type", field="owner_type")
        if item.owner_id is None or item.owner_id <= 0:
            raise ContentValidationError("invalid_owner_id", field="owner_id")
    missing = missing_required_fields(item)
    if item.status is ContentStatus.DRAFT:
        # A draft may be partial but never entirely empty.
        if len(missing) == len(kind_for(item.content_type).required_fields):
            raise ContentValidationError("required_field_missing", field=missing[0])
    elif missing:
        raise ContentValidationError("required_field_missing", field=missing[0])


class ContributionService:
    def __init__(
        self,
        content: ContentRepository,
        readers: ReaderRepository,
        edit_log: EditLogRepository,
        aggregator: ContributionAggregator,
        *,
        state_machine: Optional[ModerationStateMachine] = None,
    ) -> None:
        self._content = content
        self._readers = readers
        self._edit_log = edit_log
        self._aggregator = aggregator
        self._machine = state_machine or ModerationStateMachine()

    # -- actors -----------------------------------------------------------------

    async def resolve_actor(self, user_id: Optional[int], role: str = Role.MEMBER.value) -> Actor:
        if user_id is None:
            return Actor.anonymous()
        progress = await self._readers.get_progress(user_id)
        return Actor(id=user_id, role=Role(role), progress=progress or 0)

    async def get_preferences(self, actor: Actor) -> Optional[SpoilerPreferences]:
        if not actor.is_authenticated:
            return None
        return await self._readers.get_preferences(actor.id)  # type: ignore[arg-type]

    async def update_progress(self, actor: Actor, user_id: int, chapter: int) -> int:
        if not actor.is_authenticated or (actor.id != user_id and actor.role is not Role.ADMIN):
            raise ContentPermissionError()
        if isinstance(chapter, bool) or chapter < 0 or chapter > UNRESTRICTED_PROGRESS:
            raise ContentValidationError("invalid_progress", field="chapter")
        stored = await self._readers.set_progress(user_id, chapter)
        await audit.log_contribution_event(
            "progress.update",
            {"actor_id": actor.id, "user_id": user_id, "chapter": chapter},
        )
        return stored

    async def update_preferences(
        self,
        actor: Actor,
        user_id: int,
        preferences: SpoilerPreferences,
    ) -> SpoilerPreferences:
        if not actor.is_authenticated or actor.id != user_id:
            raise ContentPermissionError()
        if preferences.chapter_tolerance < 0:
            raise ContentValidationError("invalid_chapter_tolerance", field="chapter_tolerance")
        return await self._readers.set_preferences(user_id, preferences)

    # -- reads ------------------------------------------------------------------

    async def _require(self, content_type: ContentType, item_id: int) -> ContentItem:
        if item_id <= 0:
            raise ContentValidationError("invalid_id", field="id")
        item = await self._content.get(content_type, item_id)
        if item is None:
            raise ContentNotFoundError()
        return item

    async def _load(self, actor: Actor, content_type: ContentType, item_id: int) -> ContentItem:
        item = await self._require(content_type, item_id)
        # Unpublished work does not exist for readers who may not see it.
        if not permissions.can_access(actor, item):
            raise ContentNotFoundError()
        return item

    async def fetch_content_item(
        self,
        actor: Actor,
        content_type: ContentType,
        item_id: int,
        *,
        preview: bool = False,
    ) -> PresentedItem:
        if preview and not actor.is_privileged:
            raise ContentPermissionError()
        item = await self._load(actor, content_type, item_id)
        return await self._present(actor, item, preview=preview)

    async def _present(
        self,
        actor: Actor,
        item: ContentItem,
        *,
        preview: bool = False,
        preferences: Optional[SpoilerPreferences] = None,
    ) -> PresentedItem:
        if preferences is None:
            preferences = await self.get_preferences(actor)
        shown = gate.present(actor, item, preferences=preferences, unrestricted=preview)
        actions = permissions.allowed_actions(actor, item, preferences=preferences, unrestricted=preview)
        liked = False
        if actor.is_authenticated:
            liked = await self._content.has_liked(item.content_type, item.id, actor.id)  # type: ignore[arg-type]
        return PresentedItem(
            item=shown.item,
            visible=shown.visible,
            placeholder=shown.placeholder,
            actions=actions,
            user_has_liked=liked,
        )

    async def list_for_entity(
        self,
        actor: Actor,
        content_type: ContentType,
        owner_type: str,
        owner_id: int,
    ) -> List[PresentedItem]:
        """Contributions attached to a narrative entity page, gated for the reader."""
        items = await self._content.list_for_owner(content_type, owner_type, owner_id)
        preferences = await self.get_preferences(actor)
        visible = [item for item in items if permissions.can_access(actor, item)]
        return [await self._present(actor, item, preferences=preferences) for item in visible]

    async def list_pending(
        self,
        actor: Actor,
        content_type: ContentType,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> Sequence[ContentItem]:
        permissions.ensure_can_moderate(actor)
        limit = max(1, min(limit, PENDING_PAGE_MAX))
        return await self._content.list_by_status(content_type, ContentStatus.PENDING, limit=limit, offset=max(0, offset))

    async def count_pending(self, actor: Actor) -> Dict[ContentType, int]:
        permissions.ensure_can_moderate(actor)
        counts = await self._content.count_by_status(ContentStatus.PENDING)
        return {content_type: int(counts.get(content_type, 0)) for content_type in ContentType}

    # -- writes -----------------------------------------------------------------

    async def submit_content(self, actor: Actor, content_type: ContentType, payload: SubmitContent) -> ContentItem:
        if not actor.is_authenticated:
            raise ContentPermissionError()
        kind = kind_for(content_type)
        if payload.as_draft and not kind.supports_draft:
            raise ContentValidationError("draft_not_supported", field="as_draft")
        spoiler_chapter = gate.validate_spoiler_metadata(payload.is_spoiler, payload.spoiler_chapter)
        draft = NewContent(
            content_type=content_type,
            author_id=actor.id,  # type: ignore[arg-type]
            status=kind.initial_status(as_draft=payload.as_draft),
            title=_clean(payload.title),
            content=_clean(payload.content),
            url=_clean(payload.url) or None,
            owner_type=payload.owner_type,
            owner_id=payload.owner_id,
            is_spoiler=payload.is_spoiler,
            spoiler_chapter=spoiler_chapter,
        )
        now = datetime.now(timezone.utc)
        _check_fields(ContentItem(id=0, created_at=now, updated_at=now, **dataclasses.asdict(draft)))

        item = await self._content.create(draft)
        obs_metrics.inc_submission(content_type.value, item.status.value)
        logger.info(
            "contribution_submitted",
            extra={"item": item.key, "status": item.status.value, "author_id": actor.id},
        )
        await audit.log_contribution_event(
            "content.submit",
            {"item": item.key, "actor_id": actor.id, "status": item.status.value},
        )
        return item

    async def edit_content(
        self,
        actor: Actor,
        content_type: ContentType,
        item_id: int,
        changes: ContentChanges,
    ) -> ContentItem:
        item = await self._require(content_type, item_id)
        permissions.ensure_can_edit(actor, item)

        is_spoiler = item.is_spoiler if changes.is_spoiler is None else changes.is_spoiler
        chapter = changes.spoiler_chapter if changes.spoiler_chapter is not None else item.spoiler_chapter
        updated = dataclasses.replace(
            item,
            title=item.title if changes.title is None else _clean(changes.title),
            content=item.content if changes.content is None else _clean(changes.content),
            url=item.url if changes.url is None else (_clean(changes.url) or None),
            is_spoiler=is_spoiler,
            spoiler_chapter=gate.validate_spoiler_metadata(is_spoiler, chapter),
            updated_at=datetime.now(timezone.utc),
        )
        _check_fields(updated)
        changed = [
            name
            for name in ("title", "content", "url", "is_spoiler", "spoiler_chapter")
            if getattr(updated, name) != getattr(item, name)
        ]
        if not changed:
            return item

        stored = await self._content.update_fields(updated)
        await audit.log_contribution_event(
            "content.edit",
            {"item": stored.key, "actor_id": actor.id, "fields": ",".join(changed)},
        )
        return stored

    async def delete_content(self, actor: Actor, content_type: ContentType, item_id: int) -> None:
        item = await self._require(content_type, item_id)
        permissions.ensure_can_delete(actor, item)
        if not await self._content.delete(content_type, item_id):
            raise ContentNotFoundError()
        logger.info("contribution_deleted", extra={"item": item.key, "actor_id": actor.id})
        await audit.log_contribution_event("content.delete", {"item": item.key, "actor_id": actor.id})

    async def transition_status(
        self,
        actor: Actor,
        content_type: ContentType,
        item_id: int,
        target: ContentStatus,
        reason: Optional[str] = None,
    ) -> ContentItem:
        item = await self._require(content_type, item_id)
        try:
            planned = self._machine.plan(actor, item, target, reason=reason)
        except ContributionError as exc:
            obs_metrics.inc_transition_reject(content_type.value, exc.reason)
            logger.info(
                "contribution_transition_refused",
                extra={"item": item.key, "target": target.value, "refusal": exc.reason},
            )
            raise
        if planned is item:
            return item

        stored = await self._content.update_status(planned)
        obs_metrics.inc_transition(content_type.value, item.status.value, stored.status.value)
        logger.info(
            "contribution_transition",
            extra={
                "item": stored.key,
                "from_status": item.status.value,
                "to_status": stored.status.value,
                "actor_id": actor.id,
            },
        )
        await audit.log_contribution_event(
            "content.transition",
            {
                "item": stored.key,
                "actor_id": actor.id,
                "from": item.status.value,
                "to": stored.status.value,
                "reason": stored.rejection_reason,
            },
        )
        return stored

    async def toggle_like(self, actor: Actor, content_type: ContentType, item_id: int) -> LikeResult:
        item = await self._require(content_type, item_id)
        permissions.ensure_can_like(actor, item)
        result = await self._content.toggle_like(content_type, item_id, actor.id)  # type: ignore[arg-type]
        obs_metrics.inc_like_toggle(content_type.value, result.liked)
        await audit.log_contribution_event(
            "content.like" if result.liked else "content.unlike",
            {"item": item.key, "actor_id": actor.id},
        )
        return result

    async def record_entity_edit(
        self,
        actor: Actor,
        entity_type: EditEntityType,
        entity_id: int,
        action: EditAction = EditAction.UPDATE,
        changed_fields: Sequence[str] = (),
    ) -> EditLogEntry:
        if not actor.is_authenticated:
            raise ContentPermissionError()
        if entity_id <= 0:
            raise ContentValidationError("invalid_id", field="entity_id")
        if action is EditAction.UPDATE and not changed_fields:
            raise ContentValidationError("changed_fields_required", field="changed_fields")
        entry = await self._edit_log.append(entity_type, entity_id, action, actor.id, changed_fields)  # type: ignore[arg-type]
        await audit.log_contribution_event(
            "entity.edit",
            {"entity": f"{entity_type.value}:{entity_id}", "action": action.value, "actor_id": actor.id},
        )
        return entry

    # -- aggregates -------------------------------------------------------------

    async def get_user_contributions(self, viewer: Actor, user_id: int) -> ContributionSummary:
        return await self._aggregator.get_user_contributions(viewer, user_id)

    async def get_user_contribution_details(self, viewer: Actor, user_id: int) -> ContributionDetails:
        preferences = await self.get_preferences(viewer)
        return await self._aggregator.get_user_contribution_details(viewer, user_id, preferences=preferences)
