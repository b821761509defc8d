import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Streak walk
    STREAK_LOOKBACK_DAYS: int = 365

    # Lifetime progression
    XP_PER_LEVEL: int = 1000

    # Season scoring
    MAX_CHEERS_PER_DAY: int = 5
    GOAL_BONUS_RATE: float = 0.1

    # Storage retries (exponential backoff, seconds)
    STORAGE_RETRY_MAX_ATTEMPTS: int = 3
    STORAGE_RETRY_INITIAL_INTERVAL: float = 0.05
    STORAGE_RETRY_BACKOFF_COEFFICIENT: float = 2.0
    STORAGE_RETRY_MAX_INTERVAL: float = 1.0

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("scorekeeper")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []
    if cfg.ENV.lower() == "production" and not cfg.DATABASE_URL:
        problems.append("DATABASE_URL")
    if cfg.STREAK_LOOKBACK_DAYS < 1:
        problems.append("STREAK_LOOKBACK_DAYS")
    if cfg.XP_PER_LEVEL < 1:
        problems.append("XP_PER_LEVEL")
    if cfg.STORAGE_RETRY_MAX_ATTEMPTS < 1:
        problems.append("STORAGE_RETRY_MAX_ATTEMPTS")

    if problems:
        message = f"Missing or invalid configuration: {', '.join(problems)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
