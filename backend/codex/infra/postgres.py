"""asyncpg pool lifecycle. When Postgres is disabled the app runs on in-memory repositories."""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg

from codex.settings import settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


async def init_pool() -> Optional[asyncpg.Pool]:
	global _pool
	if not settings.postgres_enabled:
		return None
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			command_timeout=settings.postgres_command_timeout_seconds,
		)
		logger.info("postgres_pool_ready", extra={"max_size": settings.postgres_max_pool_size})
	return _pool


async def get_pool() -> asyncpg.Pool:
	pool = _pool or await init_pool()
	if pool is None:
		raise RuntimeError("postgres_disabled")
	return pool


async def ping() -> bool:
	pool = await get_pool()
	async with pool.acquire() as conn:
		return await conn.fetchval("SELECT 1") == 1


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None
