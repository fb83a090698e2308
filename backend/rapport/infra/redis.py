"""Redis connection management.

Provides a stable proxy object so imports like `from rapport.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

import redis.asyncio as redis

from rapport.settings import settings

KEY_PREFIX = "rep"


class RedisProxy:
	"""Forwards attribute access to the current underlying client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def __getattr__(self, item):
		return getattr(self._client, item)


def key(*parts: str) -> str:
	"""Build a namespaced key, e.g. ``key("burst", user_id)`` -> ``rep:burst:<user_id>``."""
	return ":".join((KEY_PREFIX, *parts))


redis_client: RedisProxy = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
