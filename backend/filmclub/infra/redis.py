"""Redis client used for rate limiting.

``redis_client`` is a stable proxy: modules import it once and the proxy
forwards to whichever client is current. The real client is created on first
use, so importing the app never opens a connection, and tests swap in
fakeredis with ``set_redis_client``.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from filmclub.settings import settings


class RedisProxy:
	def __init__(self, client: Optional[redis.Redis] = None) -> None:
		self._client: Optional[redis.Redis] = client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	def current(self) -> redis.Redis:
		if self._client is None:
			self._client = redis.from_url(settings.redis_url, decode_responses=True)
		return self._client

	def __getattr__(self, item):
		return getattr(self.current(), item)


redis_client: RedisProxy = RedisProxy()


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)


async def close_redis() -> None:
	client = redis_client._client
	if client is not None:
		redis_client.set_client(None)
		await client.aclose()
