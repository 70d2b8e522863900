"""Create tables and seed a development database.

Usage:
    CONFIG=resources/config/local.yaml python -m tenanttrack_backend.bootstrap
"""

import asyncio

from .config import settings
from .core.logging import get_logger, setup_logging
from .database import AsyncSessionLocal, engine, init_db
from .modules.property_management.seed import seed_demo_portfolio

logger = get_logger("bootstrap")


async def main() -> None:
    setup_logging(
        log_to_file=False,
        log_level=settings.log_level,
        use_json_format=settings.log_format == "json",
    )
    await init_db()
    async with AsyncSessionLocal() as db:
        created = await seed_demo_portfolio(db)
        await db.commit()
    await engine.dispose()
    logger.info("Bootstrap finished", extra={"properties_created": created})


if __name__ == "__main__":
    asyncio.run(main())
