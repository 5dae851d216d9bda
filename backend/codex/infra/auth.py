"""Authentication helpers for FastAPI endpoints.

- Bearer JWT verification (HS256) using settings.secret_key.
- Dev headers (X-User-Id / X-User-Role) are only respected in development.
- Reads may be anonymous; writes depend on ``get_current_user``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError

from codex.infra import jwt as jwt_helper
from codex.settings import settings

KNOWN_ROLES = ("member", "moderator", "admin")


@dataclass(slots=True)
class AuthenticatedUser:
	id: int
	role: str = "member"


_bearer_scheme = HTTPBearer(auto_error=False)


def _parse_user_id(raw: object) -> int:
	try:
		user_id = int(str(raw).strip())
	except (TypeError, ValueError):
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from None
	if user_id <= 0:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	return user_id


def _parse_role(raw: object) -> str:
	role = str(raw or "member").strip().lower()
	return role if role in KNOWN_ROLES else "member"


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser."""
	try:
		payload = jwt_helper.decode_access(token)
	except InvalidTokenError:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from None

	return AuthenticatedUser(
		id=_parse_user_id(payload.get("sub")),
		role=_parse_role(payload.get("role")),
	)


async def get_optional_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[AuthenticatedUser]:
	"""Resolve the caller if credentials were presented, else None (anonymous)."""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)
	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=_parse_user_id(x_user_id), role=_parse_role(x_user_role))
	return None


async def get_current_user(
	user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AuthenticatedUser:
	if user is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	return user
