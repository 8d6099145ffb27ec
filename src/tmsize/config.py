"""User configuration for tmsize."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from tmsize.filesystem import expand_path

logger = logging.getLogger(__name__)

CONFIG_DIR = expand_path("~/.tmsize")
CONFIG_FILE = CONFIG_DIR / "config.json"


class Settings(BaseModel):
    """Runtime settings, read from ~/.tmsize/config.json."""

    cache_file: Path = Field(
        default_factory=lambda: CONFIG_DIR / "size_cache.json",
        description="Where computed sizes are persisted",
    )
    cache_ttl_hours: float = Field(24, gt=0, description="How long a cached size stays valid")
    max_workers: int = Field(4, ge=1, description="Concurrent size computations")
    du_command: str = Field("du", description="Directory usage utility")
    tmutil_command: str = Field("tmutil", description="Time Machine utility")
    command_timeout: float = Field(600, gt=0, description="Seconds before a command is abandoned")
    backup_interval_hours: float = Field(
        1, gt=0, description="Time Machine schedule, used to estimate the next backup"
    )

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Load settings from disk.

    A missing or invalid file yields the defaults.
    """
    config_file = Path(path) if path else CONFIG_FILE
    if not config_file.exists():
        return Settings()

    try:
        with open(config_file) as f:
            data = json.load(f)
        settings = Settings.model_validate(data)
    except (json.JSONDecodeError, OSError, ValidationError) as e:
        logger.warning("Ignoring invalid config %s: %s", config_file, e)
        return Settings()

    settings.cache_file = expand_path(str(settings.cache_file))
    return settings
