from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import OperationFailure
from dotenv import load_dotenv
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await create_indexes(self.db)
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db


async def create_indexes(db):
    """Create MongoDB indexes for usage quotas and delivery results."""
    # One usage row per (organization, period); the conditional increment relies on it
    try:
        await db.usage_quotas.create_index(
            [("organization_id", 1), ("period", 1)],
            unique=True
        )
    except OperationFailure as e:
        logger.warning(f"usage_quotas unique index note: {e}")
    # Reconcile sweep scans a whole period
    await db.usage_quotas.create_index("period")

    # Delivery results - append-only audit trail
    await db.notification_delivery_results.create_index([("user_id", 1), ("created_at", -1)])
    await db.notification_delivery_results.create_index([("notification_id", 1), ("created_at", -1)])
    logger.info("MongoDB indexes created/verified")

# Global database instance
database = Database()

@asynccontextmanager
async def get_db_context():
    """Context manager for standalone scripts to access the database.

    Usage in scripts:
        async with get_db_context() as db:
            # db is now connected and ready to use
            await db.usage_quotas.find_one(...)
    """
    client = None
    try:
        mongo_url = os.environ['MONGO_URL']
        db_name = os.environ['DB_NAME']
        client = AsyncIOMotorClient(mongo_url)
        db = client[db_name]
        # Verify connection
        await db.command("ping")
        logger.info(f"Script connected to MongoDB: {db_name}")
        yield db
    finally:
        if client:
            client.close()
            logger.info("Script MongoDB connection closed")
