"""
Environment Variable Credential Utility

Reads shop credentials and client tuning values from environment variables.
"""

import os
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# Setting name -> environment variable suffix
ENV_FIELDS = {
    "shop_domain": "SHOP_DOMAIN",
    "access_token": "ACCESS_TOKEN",
    "api_version": "API_VERSION",
    "request_timeout": "REQUEST_TIMEOUT",
    "max_attempts": "MAX_ATTEMPTS",
    "retry_base_delay": "RETRY_BASE_DELAY",
    "retry_max_delay": "RETRY_MAX_DELAY",
    "page_size": "PAGE_SIZE",
    "min_request_interval": "MIN_REQUEST_INTERVAL",
    "throttle_backoff_initial": "THROTTLE_BACKOFF_INITIAL",
    "throttle_backoff_max": "THROTTLE_BACKOFF_MAX",
    "throttle_probe_when_idle": "THROTTLE_PROBE_WHEN_IDLE",
}


def get_shop_credentials_from_env(prefix: str = "SHOPIFY") -> Optional[Dict[str, str]]:
    """
    Get shop credentials and settings from environment variables

    Environment variable naming convention:
    {PREFIX}_{SETTING}

    For example:
    - SHOPIFY_SHOP_DOMAIN
    - SHOPIFY_ACCESS_TOKEN
    - SHOPIFY_API_VERSION
    - SHOPIFY_PAGE_SIZE

    Args:
        prefix: Variable prefix, e.g. "SHOPIFY" or "STAGING_SHOPIFY"

    Returns:
        Dictionary keyed by setting name, or None if no variable is set
    """
    env_prefix = prefix.upper().replace("-", "_").replace(" ", "_")

    values = {}
    for setting, suffix in ENV_FIELDS.items():
        env_var_name = f"{env_prefix}_{suffix}"
        value = os.getenv(env_var_name)
        if value:
            values[setting] = value

    if values:
        # Never log the values themselves, they include the access token
        logger.debug(f"Found {len(values)} {env_prefix}_* settings in environment: {sorted(values)}")
        return values

    return None
