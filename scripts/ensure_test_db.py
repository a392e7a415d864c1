from __future__ import annotations

import asyncio
import re

import asyncpg
from sqlalchemy.engine import make_url

from campus_rewards.core.config import get_settings
from campus_rewards.core.integration_db_safety import assert_safe_integration_db

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


async def _create_database_if_missing(database_url: str) -> str:
    assert_safe_integration_db(database_url)
    parsed = make_url(database_url)
    db_name = (parsed.database or "").strip()
    if IDENTIFIER_RE.fullmatch(db_name) is None:
        raise RuntimeError(f"Unsupported database name '{db_name}'.")
    if parsed.username is None:
        raise RuntimeError("DATABASE_URL username is required.")

    conn = await asyncpg.connect(
        host=parsed.host or "localhost",
        port=int(parsed.port or 5432),
        user=parsed.username,
        password=parsed.password,
        database="postgres",
    )
    try:
        if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name):
            return "exists"
        await conn.execute(f'CREATE DATABASE "{db_name}"')
        return "created"
    finally:
        await conn.close()


def main() -> int:
    database_url = get_settings().database_url
    outcome = asyncio.run(_create_database_if_missing(database_url))
    print(f"ensure_test_db: {outcome} db={make_url(database_url).database}")  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
