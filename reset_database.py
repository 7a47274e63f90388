# reset_database.py
import asyncio
import logging

from database import database, engine, Base
from config import DEFAULT_ADMIN_ID, DEFAULT_ADMIN_SECRET_CODE
from services.accounts import AccountService
from seed import create_sample_data
import models  # noqa: F401 - registers tables on Base.metadata

logger = logging.getLogger(__name__)

async def reset_database():
    logger.info("🧨 RESETTING DATABASE...")

    # Drop all tables and create them fresh
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.info("🔨 Tables recreated")

    await database.connect()
    try:
        await create_sample_data(database, AccountService(database))
        logger.info("🎉 DATABASE RESET COMPLETE!")
        logger.info(f"🔑 Admin id: {DEFAULT_ADMIN_ID} / secret code: {DEFAULT_ADMIN_SECRET_CODE}")
    finally:
        await database.disconnect()
        logger.info("✅ Database disconnected")

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    asyncio.run(reset_database())
