"""
Database schema for stored news entries.

Migrations are applied in id order inside one transaction; applied ids are
recorded in schema_migrations so a second run is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Sequence

import asyncpg

from services.db_service import run_in_transaction
from services.ingest_errors import StoreError


@dataclass(frozen=True)
class Migration:
    id: str
    up_sql: str


MIGRATIONS: Sequence[Migration] = (
    Migration(
        id="20231120120000_create_news_table",
        up_sql="""
            CREATE TABLE IF NOT EXISTS news (
                id SERIAL PRIMARY KEY,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                pub_date TIMESTAMPTZ NOT NULL,
                link TEXT UNIQUE NOT NULL
            )
        """,
    ),
    Migration(
        id="20231121090000_index_news_pub_date",
        up_sql="CREATE INDEX IF NOT EXISTS news_pub_date_idx ON news (pub_date DESC)",
    ),
)

_CREATE_MIGRATIONS_TABLE = "CREATE TABLE IF NOT EXISTS schema_migrations (id TEXT PRIMARY KEY)"


async def apply_migrations(
    pool: Any,
    *,
    logger: Any,
    migrations: Sequence[Migration] = MIGRATIONS,
) -> List[str]:
    """Apply pending migrations. Returns the ids applied by this call."""
    log = logger.bind(component="migrations")
    log.info("db_migrations_check_started")
    applied_now: List[str] = []
    try:
        async with run_in_transaction(pool) as conn:
            await conn.execute(_CREATE_MIGRATIONS_TABLE)
            rows = await conn.fetch("SELECT id FROM schema_migrations")
            already = {row["id"] for row in rows}
            for migration in sorted(migrations, key=lambda m: m.id):
                if migration.id in already:
                    continue
                log.info("db_migration_applying", migration_id=migration.id)
                await conn.execute(migration.up_sql)
                await conn.execute("INSERT INTO schema_migrations (id) VALUES ($1)", migration.id)
                applied_now.append(migration.id)
    except (asyncpg.PostgresError, OSError) as exc:
        log.error("db_migrations_failed", error=str(exc))
        raise StoreError(f"failed to apply migrations: {exc}") from exc

    if applied_now:
        log.info("db_migrations_applied", count=len(applied_now))
    else:
        log.info("db_migrations_up_to_date")
    return applied_now
