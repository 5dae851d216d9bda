"""JSON logging with request-scoped context for the contributions API."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from codex.settings import settings

_LOGGER_NAME = "codex"

# Fields the middleware binds per request; emitted on every record while bound.
_CONTEXT: Mapping[str, ContextVar[Optional[str]]] = {
	"request_id": ContextVar("codex_request_id", default=None),
	"route": ContextVar("codex_route", default=None),
	"user_id": ContextVar("codex_user_id", default=None),
}

# Reader fingerprints and submitted text never reach log sinks.
_REDACTED_KEYS = (
	"token",
	"secret",
	"authorization",
	"password",
	"ip_address",
	"user_agent",
	"content",
	"title",
)

_MAX_STRING_LENGTH = 256
_MAX_ITEMS = 10

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
	"""Bind request fields (request_id, route, user_id) and return reset tokens."""
	tokens: Dict[str, Token] = {}
	for name, value in fields.items():
		if value is not None and name in _CONTEXT:
			tokens[name] = _CONTEXT[name].set(str(value))
	return tokens


def reset_context(tokens: Mapping[str, Token]) -> None:
	for name, token in tokens.items():
		_CONTEXT[name].reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT["request_id"].get()


def _clip(value: Any) -> Any:
	if value is None or isinstance(value, (bool, int, float)):
		return value
	if isinstance(value, str):
		return value if len(value) <= _MAX_STRING_LENGTH else value[:_MAX_STRING_LENGTH] + "..."
	if isinstance(value, Mapping):
		clipped = {str(key): _scrub(str(key), nested) for key, nested in list(value.items())[:_MAX_ITEMS]}
		if len(value) > _MAX_ITEMS:
			clipped["..."] = f"+{len(value) - _MAX_ITEMS} keys"
		return clipped
	if isinstance(value, (list, tuple, set, frozenset)):
		items = [_clip(item) for item in list(value)[:_MAX_ITEMS]]
		if len(value) > _MAX_ITEMS:
			items.append("...")
		return items
	return str(value)


def _scrub(key: str, value: Any) -> Any:
	lowered = key.lower()
	if any(lowered == marker or lowered.endswith("_" + marker) for marker in _REDACTED_KEYS):
		return "[redacted]"
	return _clip(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record; ``extra`` fields are scrubbed and merged in."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for name, var in _CONTEXT.items():
			value = var.get()
			if value:
				payload[name] = value
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key not in _RECORD_ATTRS and key not in payload:
				payload[key] = _scrub(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a sampled share of info records; everything else passes."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = min(1.0, max(0.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers.clear()
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
