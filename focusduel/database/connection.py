"""
Database connection management for FocusDuel.
"""

from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError
import structlog

from ..config import get_config, get_db_config

logger = structlog.get_logger(__name__)


class DatabaseManager:
    """Database connection manager."""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.config = get_config()
        self.db_config = get_db_config()

    async def connect(self) -> bool:
        """Connect to MongoDB database."""
        try:
            self.client = AsyncIOMotorClient(
                self.config.mongodb_url,
                serverSelectionTimeoutMS=self.db_config.connection_timeout * 1000
            )

            # Test the connection
            await self.client.admin.command('ping')

            self.database = self.client[self.config.database_name]

            if self.db_config.enable_indexes:
                await self._create_indexes()

            logger.info("Connected to MongoDB", database=self.config.database_name)
            return True

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
        except PyMongoError as e:
            logger.error("Unexpected error connecting to MongoDB", error=str(e))

        # Release the client and its monitor threads
        self._close_client()
        return False

    async def disconnect(self):
        """Disconnect from MongoDB database."""
        if self.client is not None:
            self._close_client()
            logger.info("Disconnected from MongoDB")

    def _close_client(self):
        if self.client is not None:
            self.client.close()
        self.client = None
        self.database = None

    async def _create_indexes(self):
        """Create database indexes."""
        if self.database is None:
            return

        try:
            challenges_collection = self.database[self.db_config.challenges_collection]
            await challenges_collection.create_index("status")
            await challenges_collection.create_index("created_by")

            logger.info("Database indexes created successfully")

        except PyMongoError as e:
            logger.error("Failed to create database indexes", error=str(e))

    def get_database(self) -> Optional[AsyncIOMotorDatabase]:
        """Get the database instance."""
        return self.database


# Global database manager instance
_db_manager: Optional[DatabaseManager] = None


async def get_database_manager() -> DatabaseManager:
    """Get the global database manager instance."""
    global _db_manager

    if _db_manager is None:
        manager = DatabaseManager()
        if not await manager.connect():
            raise RuntimeError("Failed to connect to database")
        _db_manager = manager

    return _db_manager


async def get_database() -> AsyncIOMotorDatabase:
    """Get the database instance."""
    db_manager = await get_database_manager()
    db = db_manager.get_database()
    if db is None:
        raise RuntimeError("Database not connected")
    return db


async def close_database():
    """Close the database connection."""
    global _db_manager
    if _db_manager:
        await _db_manager.disconnect()
        _db_manager = None
