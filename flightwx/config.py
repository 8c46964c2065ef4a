"""
Configuration management for the flight suitability service
"""

from pydantic_settings import BaseSettings
from typing import Optional, List
from functools import lru_cache
import logging
from logging.handlers import RotatingFileHandler
import sys


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    APP_NAME: str = "Flight Weather Suitability API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    DATABASE_URL: str = "sqlite:///./flightwx.db"

    OPENMETEO_BASE_URL: str = "https://api.open-meteo.com/v1"
    USE_EXTERNAL_PROVIDER: bool = True
    PROVIDER_TIMEOUT_SECONDS: float = 10.0

    # Stored observations younger than this are served without a refresh
    OBSERVATION_FRESHNESS_MINUTES: int = 60

    DEFAULT_AIRCRAFT_ID: str = "aircraft-1"
    DEFAULT_POINT_ID: str = "point-1"
    DEFAULT_BOUNDS: List[float] = [120.0, 36.0, 121.0, 37.0]

    HISTORY_QUERY_LIMIT: int = 200
    INDICATOR_QUERY_LIMIT: int = 50

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = "flightwx.log"

    CORS_ORIGINS: list = ["http://localhost:3000", "http://localhost:8080"]

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def setup_logging(settings: Settings):
    """Configure application logging"""

    logger = logging.getLogger("flightwx")
    logger.setLevel(getattr(logging, settings.LOG_LEVEL))

    # Repeated app startups (tests, reloads) must not stack handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_format = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    if settings.LOG_FILE:
        file_handler = RotatingFileHandler(
            settings.LOG_FILE,
            maxBytes=10485760,
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger


if __name__ == "__main__":
    settings = get_settings()
    print(f"Database URL: {settings.DATABASE_URL}")
    print(f"External provider enabled: {settings.USE_EXTERNAL_PROVIDER}")
    print(f"Log level: {settings.LOG_LEVEL}")
