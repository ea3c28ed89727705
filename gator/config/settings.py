"""Application settings with environment variable support."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Compute base_dir at module level
_BASE_DIR = Path(__file__).parent.parent.parent.resolve()


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="GATOR_",  # GATOR_DATABASE_URL, GATOR_LOG_LEVEL, etc.
        extra="ignore",
    )

    # Paths
    base_dir: Path = _BASE_DIR
    data_dir: Path = _BASE_DIR / "data"
    config_path: Path = Path.home() / ".gatorconfig.json"

    # Database
    database_url: str = f"sqlite:///{_BASE_DIR / 'data' / 'gator.db'}"

    # Fetching
    fetch_timeout_seconds: float = 30.0
    fetch_max_retries: int = 3
    user_agent: str = "gator/0.1 (+https://github.com/gator-rss/gator)"

    # Polling
    poll_interval: str = "1m"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False


settings = Settings()
