"""Redis client used for notification dedupe and readiness probes.

Modules hold on to ``redis_client``; tests swap the connection underneath it
with ``set_redis_client`` so those references keep working.
"""

from __future__ import annotations

import redis.asyncio as redis

from teentalk.settings import settings


class RedisProxy:
	"""Forwards commands to whichever client is currently installed."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	def __getattr__(self, item):
		return getattr(self._client, item)


redis_client = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
