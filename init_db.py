# init_db.py
import asyncio
import logging

from carebook.core.logging_setup import setup_logging
from carebook.db.sql import engine
from carebook.db.base import Base

# IMPORTANT: import all models so that Base.metadata knows them
from carebook.modules.audit import models as audit_models  # noqa: F401
from carebook.modules.schedules import models as schedules_models  # noqa: F401
from carebook.modules.appointments import models as appointments_models  # noqa: F401

logger = logging.getLogger("init_db")


async def init_models():
    """Drop and recreate every table. Dev databases only."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()

    logger.info("Database schema recreated successfully")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_models())
