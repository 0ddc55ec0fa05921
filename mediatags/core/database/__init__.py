from .manager import MongoManager, DatabaseManager, db_manager
from .orm import CollectionRecord, Field, ListField

__all__ = ["MongoManager", "DatabaseManager", "db_manager", "CollectionRecord", "Field", "ListField"]
