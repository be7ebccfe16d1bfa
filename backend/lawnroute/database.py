"""
MongoDB Database Connection Management
Uses Motor for async MongoDB operations
"""

from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure
import logging

from lawnroute.config import get_settings

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager"""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect(cls) -> None:
        """Establish connection to MongoDB"""
        settings = get_settings()
        try:
            cls.client = AsyncIOMotorClient(
                settings.MONGO_URL,
                maxPoolSize=50,
                minPoolSize=10,
                serverSelectionTimeoutMS=5000,
                tz_aware=True
            )
            # Verify connection
            await cls.client.admin.command("ping")
            cls.db = cls.client[settings.DB_NAME]
            logger.info(f"Connected to MongoDB: {settings.DB_NAME}")

            await cls._create_indexes()

        except ConnectionFailure as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    @classmethod
    async def disconnect(cls) -> None:
        """Close MongoDB connection"""
        if cls.client:
            cls.client.close()
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def _create_indexes(cls) -> None:
        """Create database indexes for the routing queries"""
        if cls.db is None:
            return

        # Customers
        await cls.db.customers.create_index("customer_id", unique=True)
        await cls.db.customers.create_index([("business_id", 1), ("status", 1)])
        await cls.db.customers.create_index([("business_id", 1), ("zip_code", 1)])

        # Crews
        await cls.db.crews.create_index("crew_id", unique=True)
        await cls.db.crews.create_index([("business_id", 1), ("is_active", 1)])

        # Schedules
        await cls.db.schedules.create_index("schedule_id", unique=True)
        await cls.db.schedules.create_index([("business_id", 1), ("date", 1)])
        await cls.db.schedules.create_index([("crew_id", 1), ("date", 1)])

        # Routes
        await cls.db.routes.create_index("route_id", unique=True)
        await cls.db.routes.create_index("schedule_id")
        await cls.db.routes.create_index([("business_id", 1), ("date", 1)])
        await cls.db.routes.create_index([("crew_id", 1), ("date", 1)])

        # Progress state
        await cls.db.route_progress.create_index("route_id", unique=True)
        await cls.db.route_progress.create_index([("business_id", 1), ("date", 1)])
        await cls.db.crew_locations.create_index("crew_id", unique=True)
        await cls.db.crew_locations.create_index("business_id")

        logger.info("Database indexes created successfully")

    @classmethod
    def get_db(cls) -> AsyncIOMotorDatabase:
        """Get database instance"""
        if cls.db is None:
            raise RuntimeError("Database not connected. Call Database.connect() first.")
        return cls.db


def get_database() -> AsyncIOMotorDatabase:
    """Dependency injection for database access"""
    return Database.get_db()
