from typing import Iterable, Optional, Type
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase
from loguru import logger

from mediatags.core.base_system import BaseSystem


class MongoManager:
    def __init__(self):
        self.client: Optional[AsyncMongoClient] = None
        self.db: Optional[AsyncDatabase] = None

    def init(self, host: str = "localhost", port: int = 27017, database_name: str = "mediatags"):
        connection_url = f"mongodb://{host}:{port}"
        try:
            self.client = AsyncMongoClient(connection_url)
            self.db = self.client[database_name]
            logger.info(f"Connected to MongoDB (Async): {connection_url}/{database_name}")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client is not None:
            await self.client.close()
            logger.info("MongoDB client closed")
        self.client = None
        self.db = None

    def get_collection(self, collection_name: str):
        if self.db is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self.db[collection_name]


# Global instance shared by CollectionRecord classes
db_manager = MongoManager()


class DatabaseManager(BaseSystem):
    """
    System wrapper around the global MongoManager.

    Connects using `config.data.mongo` and creates the indexes declared by the
    engine's record classes.
    """

    async def initialize(self) -> None:
        from mediatags.library.models import File, FileCollection, FileImportBatch
        from mediatags.library.tags.models import Tag

        settings = self.config.data.mongo
        db_manager.init(settings.host, settings.port, settings.database_name)
        await self.ensure_indexes([Tag, File, FileCollection, FileImportBatch])
        await super().initialize()

    async def shutdown(self) -> None:
        await db_manager.close()
        await super().shutdown()

    async def ensure_indexes(self, record_classes: Iterable[Type]) -> None:
        for record_cls in record_classes:
            await record_cls.ensure_indexes()
