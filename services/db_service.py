# services/db_service.py
from __future__ import annotations

from contextlib import asynccontextmanager
from time import monotonic
from typing import Any, AsyncIterator, Optional
from urllib.parse import urlparse

import asyncpg

APPLICATION_NAME = "newsfeed-ingest"
SLOW_QUERY_THRESHOLD_MS = 1_000


def normalize_database_url(raw_dsn: str) -> str:
    """
    Rewrite a SQLAlchemy-style scheme (postgresql+asyncpg://) to the plain one
    asyncpg understands. Nothing else in the DSN is touched.
    """
    raw_dsn = raw_dsn.strip()
    if raw_dsn.startswith("postgresql+asyncpg://"):
        raw_dsn = "postgresql://" + raw_dsn[len("postgresql+asyncpg://"):]
    return raw_dsn


async def create_pool(
    dsn: str,
    *,
    min_size: int,
    max_size: int,
    command_timeout: float,
    logger: Any,
) -> asyncpg.Pool:
    final_dsn = normalize_database_url(dsn)
    parsed = urlparse(final_dsn)
    logger.info(
        "db_pool_initializing",
        dsn_host=parsed.hostname,
        dsn_port=parsed.port,
        application_name=APPLICATION_NAME,
        min_size=min_size,
        max_size=max_size,
    )
    return await asyncpg.create_pool(
        dsn=final_dsn,
        min_size=min_size,
        max_size=max_size,
        command_timeout=command_timeout,
        timeout=command_timeout,
        server_settings={"application_name": APPLICATION_NAME},
    )


async def execute_with_timing(
    conn: Any,
    method: str,
    query: str,
    *args: Any,
    timeout: Optional[float],
    logger: Any,
) -> Any:
    """Run conn.<method>(query, *args) and warn when it is slow."""
    start_ms = monotonic() * 1000
    try:
        func = getattr(conn, method)
        return await func(query, *args, timeout=timeout)
    finally:
        duration_ms = (monotonic() * 1000) - start_ms
        if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                "db_slow_query",
                duration_ms=round(duration_ms, 2),
                method=method,
                arg_count=len(args),
                query_snippet=query.strip().split("\n")[0][:200],
            )


@asynccontextmanager
async def run_in_transaction(
    pool: Any,
    *,
    isolation: Optional[str] = None,
) -> AsyncIterator[Any]:
    async with pool.acquire() as conn:
        tx = conn.transaction(isolation=isolation)
        await tx.start()
        try:
            yield conn
        except Exception:
            await tx.rollback()
            raise
        else:
            await tx.commit()
