"""Per-user JSON config file (~/.gatorconfig.json)."""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, ValidationError

from ..errors import ConfigError
from .settings import settings

logger = structlog.get_logger()


class UserConfig(BaseModel):
    """Database URL and the name of the logged-in user."""

    db_url: Optional[str] = None
    current_user_name: Optional[str] = None

    @classmethod
    def read(cls, path: Path = None) -> "UserConfig":
        """Load the config file. A missing file yields an empty config."""
        path = Path(path) if path else settings.config_path
        if not path.exists():
            return cls()

        try:
            with open(path) as f:
                data = json.load(f)
            return cls.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(f"couldn't read config {path}: {e}") from e

    def set_user(self, name: str, path: Path = None) -> None:
        """Set the current user and write the file."""
        self.current_user_name = name
        self.write(path)

    def write(self, path: Path = None) -> None:
        """Save config atomically (write to temp, then rename)."""
        path = Path(path) if path else settings.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=path.parent, suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self.model_dump(), f, indent=2)
            os.replace(temp_path, path)
            logger.debug("user_config_saved", path=str(path))
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
