"""
MediaTags Core - Application Infrastructure.

Provides the systems every engine component builds on:
- ServiceLocator: Dependency injection and system management
- BaseSystem: Abstract base for all systems
- ConfigManager: Configuration with persistence
- EventBus: Notification bus for tag/file change events

Usage:
    from mediatags.core import sl, EventBus

    sl.init("config.json")
    sl.register_system(EventBus)
    await sl.start_all()
"""
from .base_system import BaseSystem
from .locator import ServiceLocator, sl
from .config import (
    ConfigManager,
    AppConfig,
    MongoSettings,
    GeneralSettings,
    TagSettings,
)
from .events import Signal, EventBus, Events

__all__ = [
    # Core infrastructure
    "BaseSystem",
    "ServiceLocator",
    "sl",

    # Configuration
    "ConfigManager",
    "AppConfig",
    "MongoSettings",
    "GeneralSettings",
    "TagSettings",

    # Events
    "Signal",
    "EventBus",
    "Events",
]
