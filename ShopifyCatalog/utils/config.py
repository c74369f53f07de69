"""
Client Configuration

Settings for one shop connection, validated with pydantic. Values come from
keyword arguments, a .env file and SHOPIFY_* environment variables.
"""

import logging
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigurationError
from ..services.retry_policy import RetryConfig
from .env_credentials import get_shop_credentials_from_env

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-01"
SHOP_DOMAIN_SUFFIX = ".myshopify.com"


class ClientSettings(BaseModel):
    """Connection and tuning settings for one shop"""

    shop_domain: str = Field(..., min_length=1, description="Shop domain, e.g. my-shop.myshopify.com")
    access_token: Optional[str] = Field(default=None, description="Admin API access token")
    api_version: str = Field(default=DEFAULT_API_VERSION, pattern=r"^\d{4}-\d{2}$|^unstable$")
    request_timeout: float = Field(default=30.0, gt=0, description="Per-exchange timeout (seconds)")
    max_attempts: int = Field(default=5, ge=1, le=10, description="Total attempts per exchange")
    retry_base_delay: float = Field(default=0.5, gt=0)
    retry_max_delay: float = Field(default=30.0, gt=0)
    page_size: int = Field(default=50, ge=1, le=250, description="Records per page for list requests")
    min_request_interval: float = Field(default=0.5, ge=0, description="Spacing while the call budget is unknown")
    throttle_backoff_initial: float = Field(default=0.5, gt=0)
    throttle_backoff_max: float = Field(default=10.0, gt=0)
    throttle_probe_when_idle: bool = Field(
        default=False, description="Admit one probe request when an exhausted budget sees no responses"
    )

    @field_validator("shop_domain")
    @classmethod
    def normalize_shop_domain(cls, value: str) -> str:
        domain = value.strip().lower()
        for scheme in ("https://", "http://"):
            if domain.startswith(scheme):
                domain = domain[len(scheme):]
        domain = domain.split("/", 1)[0]
        if not domain:
            raise ValueError("shop_domain is empty")
        if "." not in domain:
            domain = f"{domain}{SHOP_DOMAIN_SUFFIX}"
        return domain

    @model_validator(mode="after")
    def check_delays(self) -> "ClientSettings":
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must not be lower than retry_base_delay")
        if self.throttle_backoff_max < self.throttle_backoff_initial:
            raise ValueError("throttle_backoff_max must not be lower than throttle_backoff_initial")
        return self

    @property
    def base_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}"

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )


def load_settings(env_file: Optional[str] = None, prefix: str = "SHOPIFY", **overrides: Any) -> ClientSettings:
    """
    Build ClientSettings from the environment.

    Keyword overrides win over environment variables; a .env file (the given
    path, or one found from the working directory) is loaded first without
    replacing variables that are already set.

    Raises:
        ConfigurationError: If the shop domain is missing or a value is invalid
    """
    load_dotenv(dotenv_path=env_file, override=False)

    values = get_shop_credentials_from_env(prefix) or {}
    values.update({key: value for key, value in overrides.items() if value is not None})

    if not values.get("shop_domain"):
        raise ConfigurationError(f"{prefix}_SHOP_DOMAIN is not set", config_field="shop_domain")

    try:
        settings = ClientSettings(**values)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(f"Invalid client settings: {first.get('msg')}", config_field=field)

    logger.info(f"Loaded client settings for {settings.shop_domain} (API {settings.api_version})")
    return settings
