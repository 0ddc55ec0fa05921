from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .locator import ServiceLocator
    from .config import ConfigManager


class BaseSystem(ABC):
    """
    Base for the long-lived services of the engine (DatabaseManager,
    EventBus, TagManager, FileTagService).

    The ServiceLocator constructs each system with itself and the shared
    ConfigManager, then starts them in `depends_on` order:

        class FileTagService(BaseSystem):
            depends_on = [TagManager]
    """
    depends_on: List[type] = []

    def __init__(self, locator: 'ServiceLocator', config: 'ConfigManager'):
        self.locator = locator
        self.config = config
        self._is_ready = False

    @abstractmethod
    async def initialize(self):
        """Connect, resolve collaborators from the locator, then mark ready."""
        self._is_ready = True

    @abstractmethod
    async def shutdown(self):
        """Release resources and mark not ready."""
        self._is_ready = False

    @property
    def is_ready(self) -> bool:
        return self._is_ready

    async def __aenter__(self):
        if not self._is_ready:
            await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._is_ready:
            await self.shutdown()
