from __future__ import annotations

import asyncpg
from typing import Optional
from .settings import DatabaseSettings

_pool: Optional[asyncpg.Pool] = None


def encode_vector(vector) -> str:
    return '[' + ','.join(str(float(x)) for x in vector) + ']'


def decode_vector(text: str) -> list[float]:
    body = text.strip('[]')
    if not body:
        return []
    return [float(x) for x in body.split(',')]


async def register_vector_codec(conn: asyncpg.Connection) -> None:
    # pgvector ships no binary codec for asyncpg; round-trip through text
    await conn.set_type_codec(
        'vector',
        encoder=encode_vector,
        decoder=decode_vector,
        schema='public',
        format='text',
    )


def _connect_kwargs(settings: DatabaseSettings) -> dict:
    return dict(
        host=settings.host,
        port=settings.port,
        database=settings.database,
        user=settings.user,
        password=settings.password,
        ssl=settings.ssl_mode or "prefer",
    )


async def ensure_vector_extension(settings: DatabaseSettings) -> str | None:
    """Create the pgvector extension on a plain connection.

    Must run before init_pool: the pool registers the vector codec on
    every connection and fails if the type does not exist yet.
    Returns the installed extension version.
    """
    conn = await asyncpg.connect(**_connect_kwargs(settings))
    try:
        await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
        return await conn.fetchval("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
    finally:
        await conn.close()


async def init_pool(settings: DatabaseSettings) -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            **_connect_kwargs(settings),
            min_size=settings.min_pool_size,
            max_size=settings.max_pool_size,
            command_timeout=settings.command_timeout,
            init=register_vector_codec,
        )
    return _pool

async def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return _pool

async def close_pool() -> None:
    """Close the database connection pool."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
