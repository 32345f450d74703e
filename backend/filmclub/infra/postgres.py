"""Process-wide asyncpg pool.

Connections decode ``json``/``jsonb`` columns into Python objects, so proposal
payloads are written and read as plain dicts.
"""

from __future__ import annotations

import json
from typing import Optional

import asyncpg

from filmclub.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None


async def _init_connection(conn: asyncpg.Connection) -> None:
	for type_name in ("json", "jsonb"):
		await conn.set_type_codec(type_name, encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			command_timeout=settings.postgres_command_timeout,
			ssl="require" if settings.postgres_ssl else "disable",
			init=_init_connection,
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	"""Install a pool built elsewhere, or clear it with ``None``. Tests use this for fakes."""
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	return _pool if _pool is not None else await init_pool()


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
