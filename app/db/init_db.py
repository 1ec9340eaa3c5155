"""Create the payment tables when they are missing. Safe to run on every startup."""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

# Register every model on Base.metadata before create_all.
import app.core.models  # noqa: F401
from app.db.session import Base, engine

logger = logging.getLogger(__name__)


async def ensure_tables(db_engine: AsyncEngine) -> None:
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured: %s", ", ".join(sorted(Base.metadata.tables)))


def main() -> None:
    asyncio.run(ensure_tables(engine))


if __name__ == "__main__":
    main()
