from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Any, Dict, Literal
import logging
from dotenv import load_dotenv

# Explicitly load .env file to ensure environment variables are available
load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Engine configuration, read from the environment and an optional .env file"""

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level for the crs_transform loggers"
    )
    LOG_FORMAT: Literal["development", "json"] = Field(
        default="development",
        description="Human-readable output or structured JSON records"
    )
    SERVICE_NAME: str = Field(default="crs-transform", description="Service name stamped on JSON log records")

    # Projection behaviour
    ALWAYS_XY: bool = Field(
        default=True,
        description="Use (x, y) / (lon, lat) axis order regardless of the CRS axis definition"
    )
    ALLOW_BALLPARK: bool = Field(
        default=True,
        description="Allow ballpark transformations when no exact datum operation is known"
    )
    BBOX_EDGE_SAMPLES: int = Field(
        default=21,
        ge=2,
        description="Points sampled along each rectangle edge (corners included) for bounding box transforms"
    )

    # Caching
    TRANSFORM_CACHE_SIZE: int = Field(default=32, ge=1, description="Maximum number of cached CRS-pair transforms")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @field_validator("ALWAYS_XY", "ALLOW_BALLPARK", mode="before")
    @classmethod
    def parse_boolean(cls, v):
        """Handle string boolean values from environment variables."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on", "t", "y")
        return bool(v)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("LOG_FORMAT", mode="before")
    @classmethod
    def lower_log_format(cls, v):
        return v.lower() if isinstance(v, str) else v


def runtime_config_check(settings: Settings) -> Dict[str, Any]:
    """Summarise the effective configuration for diagnostics"""
    return {
        "log_level": settings.LOG_LEVEL,
        "log_format": settings.LOG_FORMAT,
        "always_xy": settings.ALWAYS_XY,
        "allow_ballpark": settings.ALLOW_BALLPARK,
        "bbox_edge_samples": settings.BBOX_EDGE_SAMPLES,
        "transform_cache_size": settings.TRANSFORM_CACHE_SIZE,
    }


def get_settings() -> Settings:
    """Build settings, converting validation problems into ConfigurationError."""
    from pydantic import ValidationError
    from .exceptions import ConfigurationError

    try:
        settings = Settings()
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "settings"
        raise ConfigurationError(field, first.get("msg", str(e))) from e

    if not settings.ALWAYS_XY:
        logger.warning("ALWAYS_XY disabled: geographic CRSs will use their authority axis order")

    logger.debug("Settings loaded", extra={"config": runtime_config_check(settings)})
    return settings
