"""HS256 access tokens for the contributions API.

Tokens carry the reader id in ``sub`` and an optional ``role`` claim; the
issuer and audience are pinned so tokens minted for other services are
rejected.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Mapping, Optional

import jwt
from jwt import InvalidTokenError

from codex.settings import settings

ISSUER = "codex-api"
AUDIENCE = "codex-web"
ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 3600
CLOCK_LEEWAY_SECONDS = 5


def encode_access(claims: Mapping[str, Any], *, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> str:
	now = int(time.time())
	body: Dict[str, Any] = {"iss": ISSUER, "aud": AUDIENCE, "iat": now, "exp": now + ttl_seconds}
	body.update(claims)
	return jwt.encode(body, settings.secret_key, algorithm=ALGORITHM)


def issue_for_user(user_id: int, role: Optional[str] = None, *, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> str:
	claims: Dict[str, Any] = {"sub": str(user_id)}
	if role:
		claims["role"] = role
	return encode_access(claims, ttl_seconds=ttl_seconds)


def decode_access(token: str) -> Dict[str, Any]:
	"""Validate signature, expiry, issuer and audience.

	Raises ``jwt.InvalidTokenError`` (or a subclass) on any failure,
	including a missing ``sub``.
	"""
	payload = jwt.decode(
		token,
		settings.secret_key,
		algorithms=[ALGORITHM],
		audience=AUDIENCE,
		issuer=ISSUER,
		leeway=CLOCK_LEEWAY_SECONDS,
		options={"require": ["exp", "iat", "iss", "aud", "sub"]},
	)
	if not str(payload.get("sub", "")).strip():
		raise InvalidTokenError("missing_claim:sub")
	return payload
