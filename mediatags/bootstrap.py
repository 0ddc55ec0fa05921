"""
Bootstrap helpers for the tag engine.

Builds the service locator with the database, the notification bus and the
tag systems registered and started.
"""
from typing import List, Type

from loguru import logger

from .core.base_system import BaseSystem
from .core.database.manager import DatabaseManager
from .core.events import EventBus
from .core.locator import ServiceLocator, sl
from .core.logging import setup_logging
from .library.file_tags import FileTagService
from .library.tags.manager import TagManager


class ApplicationBuilder:
    """
    Fluent builder for a running tag engine.

    Example:
        locator = await (ApplicationBuilder("config.json")
                         .with_logging()
                         .build())
        tags = locator.get_system(TagManager)
    """

    DEFAULT_SYSTEMS: List[Type[BaseSystem]] = [DatabaseManager, EventBus, TagManager, FileTagService]

    def __init__(self, config_path: str = "config.json"):
        self.config_path = config_path
        self._systems: List[Type[BaseSystem]] = []
        self._use_default_systems = True
        self._logging_configured = False

    def with_default_systems(self, enable: bool = True) -> "ApplicationBuilder":
        self._use_default_systems = enable
        return self

    def add_system(self, system_cls: Type[BaseSystem]) -> "ApplicationBuilder":
        self._systems.append(system_cls)
        return self

    def with_logging(self, enable: bool = True) -> "ApplicationBuilder":
        """Configure loguru from the `general` config section on build."""
        self._logging_configured = enable
        return self

    async def build(self) -> ServiceLocator:
        """
        Initialize and start all systems.

        Returns:
            ServiceLocator with every registered system started
        """
        sl.init(self.config_path)

        if self._logging_configured:
            general = sl.config.data.general
            setup_logging(general.debug_mode, general.log_dir)

        systems = list(self.DEFAULT_SYSTEMS) if self._use_default_systems else []
        for system_cls in [*systems, *self._systems]:
            sl.register_system(system_cls)

        await sl.start_all()
        logger.info(f"Tag engine started with {len(systems) + len(self._systems)} systems")
        return sl
