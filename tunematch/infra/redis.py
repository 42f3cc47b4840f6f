"""Shared Redis client for the Redis store backend and readiness checks.

Modules import ``redis_client`` once; tests and the app swap the client behind
it (fakeredis, a different URL) through ``set_redis_client``.
"""

from __future__ import annotations

import redis.asyncio as redis

from tunematch.settings import settings


class RedisProxy:
	"""Stable handle forwarding every command to the current client."""

	def __init__(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	def __getattr__(self, name):
		return getattr(self._client, name)


# connections open lazily on first command
redis_client = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
