"""Moderation status transitions for submitted content.

One transition table serves every content type; only the initial status
differs per type (see ``ContentKind``). ``plan`` is pure: it returns the item
as it must be committed, or raises before anything is written. Callers persist
the planned item in a single write so status and metadata land together.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping, Optional

from codex.domain.contributions import permissions
from codex.domain.contributions.exceptions import (
    ContentPermissionError,
    ContentValidationError,
    InvalidTransition,
    MissingRejectionReason,
)
from codex.domain.contributions.models import Actor, ContentItem, ContentStatus, kind_for

REJECTION_REASON_MAX_LEN = 500


class Initiator(str, Enum):
    AUTHOR = "author"
    STAFF = "staff"


@dataclass(frozen=True, slots=True)
class TransitionRule:
    source: ContentStatus
    target: ContentStatus
    initiator: Initiator
    requires_reason: bool = False
    validates_content: bool = False


_RULES = (
    TransitionRule(ContentStatus.DRAFT, ContentStatus.PENDING, Initiator.AUTHOR, validates_content=True),
    TransitionRule(ContentStatus.PENDING, ContentStatus.APPROVED, Initiator.STAFF),
    TransitionRule(ContentStatus.PENDING, ContentStatus.REJECTED, Initiator.STAFF, requires_reason=True),
    TransitionRule(ContentStatus.APPROVED, ContentStatus.PENDING, Initiator.STAFF),
    TransitionRule(ContentStatus.REJECTED, ContentStatus.PENDING, Initiator.AUTHOR),
)

TRANSITIONS: Mapping[tuple[ContentStatus, ContentStatus], TransitionRule] = {
    (rule.source, rule.target): rule for rule in _RULES
}


def _normalise_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    text = reason.strip()
    return text or None


def missing_required_fields(item: ContentItem) -> list[str]:
    kind = kind_for(item.content_type)
    missing = []
    for name in kind.required_fields:
        value = getattr(item, name)
        if value is None or not str(value).strip():
            missing.append(name)
    return missing


class ModerationStateMachine:
    """Validates and plans status transitions."""

    def __init__(self, rules: Mapping[tuple[ContentStatus, ContentStatus], TransitionRule] = TRANSITIONS) -> None:
        self._rules = rules

    def rule_for(self, source: ContentStatus, target: ContentStatus) -> TransitionRule | None:
        return self._rules.get((source, target))

    def targets_for(self, actor: Actor, item: ContentItem) -> list[ContentStatus]:
        """Statuses the actor could move the item to from its current state."""
        targets = []
        for (source, target), rule in self._rules.items():
            if source is item.status and self._initiator_allowed(rule, actor, item):
                targets.append(target)
        return targets

    def plan(
        self,
        actor: Actor,
        item: ContentItem,
        target: ContentStatus,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ContentItem:
        if target is item.status:
            return item
        rule = self.rule_for(item.status, target)
        if rule is None:
            raise InvalidTransition()
        if not self._initiator_allowed(rule, actor, item):
            raise ContentPermissionError()

        cleaned_reason = _normalise_reason(reason)
        if rule.requires_reason:
            if cleaned_reason is None:
                raise MissingRejectionReason()
            if len(cleaned_reason) > REJECTION_REASON_MAX_LEN:
                raise ContentValidationError("rejection_reason_too_long", field="rejection_reason")
        if rule.validates_content:
            missing = missing_required_fields(item)
            if missing:
                raise ContentValidationError("required_field_missing", field=missing[0])

        return dataclasses.replace(
            item,
            status=target,
            rejection_reason=cleaned_reason if target is ContentStatus.REJECTED else None,
            updated_at=now or datetime.now(timezone.utc),
        )

    @staticmethod
    def _initiator_allowed(rule: TransitionRule, actor: Actor, item: ContentItem) -> bool:
        if rule.initiator is Initiator.STAFF:
            return permissions.can_moderate(actor)
        return permissions.is_owner(actor, item)
