"""Shared Redis handle used for view dedup, session view sets and the audit stream.

Modules import ``redis_client`` once; tests and startup code swap the client
behind it with ``set_redis_client`` so earlier imports keep working.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from codex.settings import settings


class RedisProxy:
	"""Forwards attribute access to the current client, created on first use."""

	def __init__(self, client: Optional[redis.Redis] = None) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		if self._client is None:
			self._client = redis.from_url(settings.redis_url, decode_responses=True)
		return self._client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	async def close(self) -> None:
		if self._client is not None:
			await self._client.aclose()
			self._client = None

	def __getattr__(self, item):
		return getattr(self.client, item)


redis_client = RedisProxy()


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)


async def close_redis() -> None:
	await redis_client.close()
