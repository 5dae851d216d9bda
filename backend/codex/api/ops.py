"""Liveness, readiness and Prometheus scrape endpoints."""

from __future__ import annotations

import secrets
from typing import Awaitable, Callable, Dict, Optional

import asyncpg
from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError

from codex.infra import postgres
from codex.infra.redis import redis_client
from codex.settings import settings

router = APIRouter(tags=["ops"])


def _presented_token(x_admin_token: Optional[str], authorization: Optional[str]) -> str:
	if x_admin_token:
		return x_admin_token
	scheme, _, credentials = (authorization or "").partition(" ")
	return credentials.strip() if scheme.lower() == "bearer" else ""


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if settings.obs_metrics_public:
		return
	expected = settings.obs_admin_token
	if not expected:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if not secrets.compare_digest(_presented_token(x_admin_token, authorization), expected):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


async def _redis_ready() -> bool:
	try:
		return bool(await redis_client.ping())
	except (RedisError, OSError):
		return False


async def _postgres_ready() -> bool:
	try:
		return await postgres.ping()
	except (OSError, RuntimeError, asyncpg.PostgresError, asyncpg.InterfaceError):
		return False


def _dependency_checks() -> Dict[str, Callable[[], Awaitable[bool]]]:
	checks: Dict[str, Callable[[], Awaitable[bool]]] = {"redis": _redis_ready}
	if settings.postgres_enabled:
		checks["postgres"] = _postgres_ready
	return checks


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok", "service": settings.service_name, "commit": settings.git_commit}


@router.get("/health/ready")
async def health_ready() -> Response:
	results = {name: "ok" if await probe() else "unavailable" for name, probe in _dependency_checks().items()}
	healthy = all(value == "ok" for value in results.values())
	return JSONResponse(
		content={"status": "ok" if healthy else "degraded", "checks": results},
		status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
	)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
