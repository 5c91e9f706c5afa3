import aioboto3
from typing import Any, Dict, Optional
from botocore.config import Config as BotoConfig
from idlescan.shared.core.config import get_settings


def get_boto_config() -> BotoConfig:
    """Standardized boto config with timeouts to prevent indefinite hangs."""
    settings = get_settings()
    timeout = settings.CLOUD_API_TIMEOUT_SECONDS
    return BotoConfig(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"max_attempts": settings.CLOUD_API_MAX_ATTEMPTS, "mode": "adaptive"},
    )


def get_boto_session() -> aioboto3.Session:
    """Returns a centralized aioboto3 session."""
    return aioboto3.Session()


def client_kwargs(region: str, config: Optional[BotoConfig] = None) -> Dict[str, Any]:
    """Keyword arguments for `session.client(...)`."""
    settings = get_settings()
    kwargs: Dict[str, Any] = {
        "region_name": region,
        "config": config or get_boto_config(),
    }
    if settings.AWS_ENDPOINT_URL:
        kwargs["endpoint_url"] = settings.AWS_ENDPOINT_URL
    return kwargs
