"""Domain-level exceptions for contributions and moderation."""

from __future__ import annotations


class ContributionError(Exception):
    """Base class for contribution feature errors.

    ``kind`` is the stable category surfaced to clients; ``reason`` is the
    specific cause.
    """

    kind: str = "unknown"
    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class ContentValidationError(ContributionError):
    kind = "validation"
    reason = "invalid"

    def __init__(self, reason: str | None = None, *, field: str | None = None) -> None:
        super().__init__(reason)
        self.field = field


class ContentPermissionError(ContributionError):
    kind = "permission"
    reason = "not_allowed"


class ContentNotFoundError(ContributionError):
    kind = "not_found"
    reason = "not_found"


class TransientError(ContributionError):
    kind = "transient"
    reason = "unavailable"


class SelfLikeError(ContentValidationError):
    reason = "self_like"


class MissingRejectionReason(ContentValidationError):
    reason = "rejection_reason_required"

    def __init__(self) -> None:
        super().__init__(field="rejection_reason")


class InvalidTransition(ContentValidationError):
    reason = "invalid_transition"

    def __init__(self) -> None:
        super().__init__(field="status")


class MalformedSpoilerMetadata(ContentValidationError):
    reason = "invalid_spoiler_chapter"

    def __init__(self) -> None:
        super().__init__(field="spoiler_chapter")
