"""
MediaTags - Tag Hierarchy Engine

Keeps a media library's tag DAG consistent: adjacency symmetry, materialized
ancestor/descendant closures, usage counts, thumbnails and the denormalized
ancestor sets on files, collections and import batches.
"""

# Core systems
from mediatags.core.base_system import BaseSystem
from mediatags.core.locator import ServiceLocator, sl
from mediatags.core.config import (
    ConfigManager,
    AppConfig,
    MongoSettings,
    GeneralSettings,
    TagSettings,
)
from mediatags.core.events import Signal, EventBus, Events
from mediatags.core.logging import setup_logging

# Database
from mediatags.core.database.manager import DatabaseManager, MongoManager, db_manager
from mediatags.core.database.orm import CollectionRecord, Field, ListField

# Library
from mediatags.library.tags.manager import TagManager
from mediatags.library.file_tags import FileTagService

__version__ = "0.1.0"

__all__ = [
    # Core
    "BaseSystem",
    "ServiceLocator",
    "sl",
    "ConfigManager",
    "AppConfig",
    "MongoSettings",
    "GeneralSettings",
    "TagSettings",
    "Signal",
    "EventBus",
    "Events",
    "setup_logging",

    # Database
    "DatabaseManager",
    "MongoManager",
    "db_manager",
    "CollectionRecord",
    "Field",
    "ListField",

    # Systems
    "TagManager",
    "FileTagService",
]
