from typing import Any
import json
import os
from pydantic import BaseModel, Field, ValidationError
from loguru import logger
from .events import Signal


# --- Settings Models ---
class MongoSettings(BaseModel):
    host: str = 'localhost'
    port: int = 27017
    database_name: str = "mediatags"


class GeneralSettings(BaseModel):
    debug_mode: bool = True
    log_dir: str = "logs"


class TagSettings(BaseModel):
    """Knobs for the hierarchy engine's recomputation passes."""
    recompute_attempts: int = Field(default=3, ge=1)
    recompute_concurrency: int = Field(default=16, ge=1)
    notify_on_create: bool = True


class AppConfig(BaseModel):
    general: GeneralSettings = Field(default_factory=GeneralSettings)
    mongo: MongoSettings = Field(default_factory=MongoSettings)
    tags: TagSettings = Field(default_factory=TagSettings)


# --- Manager ---
class ConfigManager:
    """
    Manages application configuration with persistence and reactivity.
    """
    def __init__(self, filepath: str = "config.json"):
        self.filepath = filepath
        self._data = AppConfig()
        self.on_changed = Signal("ConfigChanged")
        self._load()

    @property
    def data(self) -> AppConfig:
        return self._data

    def update(self, section: str, key: str, value: Any):
        """Update a setting, validate via Pydantic, autosave, and emit change event."""
        if not hasattr(self._data, section):
            raise ValueError(f"Invalid section: {section}")

        section_obj = getattr(self._data, section)
        if key not in type(section_obj).model_fields:
            raise ValueError(f"Invalid key: {key} in section {section}")

        try:
            validated = type(section_obj).model_validate({**section_obj.model_dump(), key: value})
        except ValidationError as e:
            raise ValueError(f"Invalid value for {section}.{key}: {value!r}") from e

        setattr(self._data, section, validated)
        self._save()
        self.on_changed.emit(section, key, getattr(validated, key))

    def get(self, section: str, key: str) -> Any:
        section_obj = getattr(self._data, section)
        return getattr(section_obj, key)

    def _load(self):
        """Load settings from JSON or TOML file if present; otherwise keep defaults."""
        if os.path.isfile(self.filepath):
            try:
                if self.filepath.endswith('.toml'):
                    import tomllib
                    with open(self.filepath, "rb") as f:
                        raw = tomllib.load(f)
                else:
                    with open(self.filepath, "r", encoding="utf-8") as f:
                        raw = json.load(f)
                self._data = AppConfig.model_validate(raw)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load config from {self.filepath}: {e}")
                self._save()
        else:
            self._save()

    def _save(self):
        """Persist current config to JSON file."""
        if self.filepath.endswith('.toml'):
            # TOML configs are hand-edited, never rewritten
            return
        try:
            dirname = os.path.dirname(self.filepath)
            if dirname:
                os.makedirs(dirname, exist_ok=True)
            with open(self.filepath, "w", encoding="utf-8") as f:
                json.dump(self._data.model_dump(), f, indent=4)
        except OSError as e:
            logger.error(f"Failed to save config to {self.filepath}: {e}")
