"""
Engine configuration settings
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(ValueError):
    """Raised when static configuration (weight tables, templates) is malformed"""


class Settings(BaseSettings):
    """Engine settings with environment variable support"""

    # App
    APP_NAME: str = "Pete Meta-Progression Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")  # development, staging, production
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Persistence
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "file")  # memory, file, redis
    STORAGE_DIR: str = os.getenv("STORAGE_DIR", "./data")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    STORAGE_KEY_PREFIX: str = "meta:"

    # Day boundaries (IANA name, empty = device local time)
    CHALLENGE_TIMEZONE: str = os.getenv("CHALLENGE_TIMEZONE", "")

    # External tables
    REWARD_TABLES_PATH: Optional[str] = os.getenv("REWARD_TABLES_PATH")
    MASTERY_THRESHOLDS_PATH: Optional[str] = os.getenv("MASTERY_THRESHOLDS_PATH")

    # Mystery rewards
    LEVEL_SCALING_FACTOR: float = 0.1  # 10% more value per level
    MIN_SPAWN_INTERVAL: int = 8
    AVERAGE_SPAWN_INTERVAL: int = 15
    MAX_SPAWN_INTERVAL: int = 25
    MYSTERY_BALLOON_MAX_AGE_SECONDS: float = 30.0

    # Battle pass
    SEASON_ID: str = "season_1"
    BASE_XP_PER_TIER: int = 100
    XP_SCALING_FACTOR: float = 1.1  # Each tier requires 10% more XP
    MAX_BATTLE_PASS_TIERS: int = 50
    LEVEL_COMPLETION_XP: int = 100
    XP_PER_NEW_STAR: int = 50

    # Daily challenges
    MAX_DAILY_CHALLENGES: int = 3
    STREAK_BONUS_PER_DAY: float = 0.1
    CHALLENGE_STREAK_BONUS_CAP: float = 1.5
    CHALLENGE_REFRESH_INTERVAL_SECONDS: float = 60.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


def load_json_table(path: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Load an optional JSON configuration table.

    A missing path means "use built-in defaults". A path that cannot be read
    or parsed is a startup-fatal configuration error.
    """
    if not path:
        return None

    table_path = Path(path)
    try:
        with table_path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not load configuration table {table_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration table {table_path} must be a JSON object")
    return data


settings = Settings()
