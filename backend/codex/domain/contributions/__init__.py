"""Contributions domain exports."""

from .exceptions import (  # noqa: F401
	ContentNotFoundError,
	ContentPermissionError,
	ContentValidationError,
	ContributionError,
	TransientError,
)
from .models import (  # noqa: F401
	UNRESTRICTED_PROGRESS,
	Actor,
	ContentItem,
	ContentStatus,
	ContentType,
	Role,
)
