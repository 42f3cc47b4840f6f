"""Process-wide asyncpg pool for the Postgres store backend."""

from __future__ import annotations

from typing import Optional

import asyncpg

from tunematch.settings import settings

_pool: Optional[asyncpg.Pool] = None


async def init_pool() -> asyncpg.Pool:
	"""Create the pool once; later calls return the same pool."""
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			command_timeout=settings.postgres_command_timeout_seconds,
			server_settings={"application_name": settings.service_name},
		)
	return _pool


def set_pool(pool: Optional[asyncpg.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.Pool:
	return _pool if _pool is not None else await init_pool()


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
