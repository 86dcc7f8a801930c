"""Fail when the POSTTRR models and the migrated database schema disagree.

Usage:
    python scripts/check_migrations.py [--url DATABASE_URL]
"""

from __future__ import annotations

import argparse
import asyncio

from alembic.autogenerate import compare_metadata
from alembic.migration import MigrationContext
from sqlalchemy.ext.asyncio import create_async_engine

from posttrr import models  # noqa: F401  # Ensure models are registered
from posttrr.config import settings
from posttrr.database import Base


def _diff(connection) -> list[object]:
    context = MigrationContext.configure(connection, opts={"compare_type": True})
    return compare_metadata(context, Base.metadata)


async def check(url: str) -> list[object]:
    engine = create_async_engine(url)
    try:
        async with engine.connect() as conn:
            return await conn.run_sync(_diff)
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--url", default=settings.database_url, help="Async database URL")
    args = parser.parse_args()

    diffs = asyncio.run(check(args.url))
    if not diffs:
        print("Models and migrations are in sync.")
        return 0

    print(f"{len(diffs)} difference(s) between models and the migrated schema:")
    for diff in diffs:
        print(f"  {diff}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
