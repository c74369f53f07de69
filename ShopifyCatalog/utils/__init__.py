from .config import ClientSettings, load_settings
from .env_credentials import get_shop_credentials_from_env

__all__ = ["ClientSettings", "load_settings", "get_shop_credentials_from_env"]
