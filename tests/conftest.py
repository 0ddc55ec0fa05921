import pytest
from unittest.mock import MagicMock

from mediatags.core.config import ConfigManager
from mediatags.library.file_tags import FileTagService
from mediatags.library.tags.manager import TagManager
from tests.memory_stores import MemoryTagStore, RecordingEvents, make_dependents


@pytest.fixture
def tag_store():
    return MemoryTagStore()


@pytest.fixture
def dependents():
    return make_dependents()


@pytest.fixture
def files(dependents):
    return dependents["files"]


@pytest.fixture
def events():
    return RecordingEvents()


@pytest.fixture
def config(tmp_path):
    return ConfigManager(str(tmp_path / "config.json"))


@pytest.fixture
def manager(tag_store, dependents, events, config):
    """TagManager over in-memory stores."""
    return TagManager(MagicMock(), config, store=tag_store, dependents=dependents, events=events)


@pytest.fixture
def file_tags(manager, config):
    return FileTagService(MagicMock(), config, tag_manager=manager)
