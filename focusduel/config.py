"""
Configuration for FocusDuel.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Remote store
    mongodb_url: str = Field("mongodb://localhost:27017", description="MongoDB connection URL")
    database_name: str = Field("focusduel", description="Database name")

    # Logging
    log_level: str = Field("INFO", description="Log level")
    log_to_file: bool = Field(False, description="Write JSON logs to logs_path")
    logs_path: str = Field("logs", description="Directory for log files")

    # Local cache
    cache_path: str = Field(".focusduel", description="Directory for the local challenge cache")

    # Sync and monitoring
    poll_interval: float = Field(5.0, description="Fallback polling interval in seconds", gt=0)
    activity_grace_ms: int = Field(100, description="Grace window for hidden/blur signals", ge=0)
    min_participants: int = Field(2, description="Participants needed before the creator may start", ge=1)


class DatabaseConfig(BaseSettings):
    """Database collection and connection settings."""

    model_config = SettingsConfigDict(env_prefix="DB_", env_file=".env", extra="ignore")

    challenges_collection: str = Field("challenges", description="Challenges collection name")
    connection_timeout: int = Field(10, description="Server selection timeout in seconds", ge=1)
    enable_indexes: bool = Field(True, description="Create indexes on connect")


_config: Optional[Config] = None
_db_config: Optional[DatabaseConfig] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_db_config() -> DatabaseConfig:
    """Get the global database configuration instance."""
    global _db_config
    if _db_config is None:
        _db_config = DatabaseConfig()
    return _db_config


def reset_config():
    """Drop cached settings so the next accessor call re-reads the environment."""
    global _config, _db_config
    _config = None
    _db_config = None


def setup_directories():
    """Create the directories the application writes to."""
    config = get_config()
    Path(config.cache_path).mkdir(parents=True, exist_ok=True)
    if config.log_to_file:
        Path(config.logs_path).mkdir(parents=True, exist_ok=True)
