from functools import lru_cache
from threading import Lock
from typing import Optional
import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from idlescan.shared.core.constants import AWS_SUPPORTED_REGIONS


@lru_cache
def get_settings() -> "Settings":
    """Process-wide settings, read once from the environment and `.env`."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """Drop the cached settings and read the environment again."""
    with _settings_reload_lock:
        get_settings.cache_clear()
        settings = get_settings()
    structlog.get_logger().info(
        "settings_reloaded",
        debug=settings.DEBUG,
        default_region=settings.AWS_DEFAULT_REGION,
    )
    return settings


class Settings(BaseSettings):
    """
    Runtime configuration for scans.

    Every field can be set from the environment or a `.env` file; empty
    variables are treated as unset.
    """

    DEBUG: bool = False

    # Storage
    DATABASE_URL: str = "sqlite+aiosqlite:///./idlescan.sqlite"
    DB_ECHO: bool = False

    # AWS
    AWS_DEFAULT_REGION: str = "us-east-1"
    AWS_ENDPOINT_URL: Optional[str] = None  # LocalStack / moto server
    AWS_SUPPORTED_REGIONS: list[str] = AWS_SUPPORTED_REGIONS
    # The Price List API is only served from a couple of regions.
    PRICING_REGION: str = "us-east-1"

    # Scan guardrails
    CLOUD_API_TIMEOUT_SECONDS: float = 30.0
    CLOUD_API_MAX_ATTEMPTS: int = 3
    SCAN_TIMEOUT_SECONDS: float = 600.0
    SCAN_MAX_CONCURRENT_DETECTORS: int = 4
    DETECTOR_MAX_CONCURRENCY: int = 8
    INVENTORY_MAX_PAGES: Optional[int] = None

    # Detection rules
    DETECTION_RULES_PATH: Optional[str] = None
    IAM_KEY_THRESHOLD_DAYS: int = 90
    IAM_KEY_OPERATOR: str = ">="

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        self._validate_scan_guardrails()
        self._validate_region_config()
        return self

    def _validate_scan_guardrails(self) -> None:
        if self.CLOUD_API_TIMEOUT_SECONDS <= 0:
            raise ValueError("CLOUD_API_TIMEOUT_SECONDS must be > 0")
        if self.SCAN_TIMEOUT_SECONDS <= 0:
            raise ValueError("SCAN_TIMEOUT_SECONDS must be > 0")
        if self.SCAN_MAX_CONCURRENT_DETECTORS < 1:
            raise ValueError("SCAN_MAX_CONCURRENT_DETECTORS must be >= 1")
        if self.DETECTOR_MAX_CONCURRENCY < 1:
            raise ValueError("DETECTOR_MAX_CONCURRENCY must be >= 1")
        if self.INVENTORY_MAX_PAGES is not None and self.INVENTORY_MAX_PAGES <= 0:
            raise ValueError("INVENTORY_MAX_PAGES must be > 0 when provided")
        if self.IAM_KEY_THRESHOLD_DAYS < 0:
            raise ValueError("IAM_KEY_THRESHOLD_DAYS must be >= 0")

    def _validate_region_config(self) -> None:
        if (
            self.AWS_SUPPORTED_REGIONS
            and self.AWS_DEFAULT_REGION not in self.AWS_SUPPORTED_REGIONS
        ):
            raise ValueError(
                f"AWS_DEFAULT_REGION '{self.AWS_DEFAULT_REGION}' is not a supported region"
            )

    # AWS credentials come from boto's default chain, not from here.
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")
