"""
Unit tests for client settings and environment credentials
"""

import pytest

from ShopifyCatalog.exceptions import ConfigurationError
from ShopifyCatalog.utils.config import ClientSettings, load_settings
from ShopifyCatalog.utils.env_credentials import get_shop_credentials_from_env


class TestClientSettings:
    """Test validation of ClientSettings"""

    @pytest.mark.parametrize("raw", ["my-shop", "my-shop.myshopify.com", "https://My-Shop.myshopify.com/admin"])
    def test_shop_domain_is_normalized(self, raw):
        assert ClientSettings(shop_domain=raw).shop_domain == "my-shop.myshopify.com"

    def test_base_url(self):
        settings = ClientSettings(shop_domain="my-shop", api_version="2024-04")

        assert settings.base_url == "https://my-shop.myshopify.com/admin/api/2024-04"

    def test_retry_config(self):
        config = ClientSettings(shop_domain="my-shop", max_attempts=3, retry_base_delay=0.2).retry_config()

        assert config.max_attempts == 3
        assert config.base_delay == 0.2

    def test_defaults(self):
        settings = ClientSettings(shop_domain="my-shop")

        assert settings.page_size == 50
        assert settings.max_attempts == 5
        assert settings.min_request_interval == 0.5
        assert settings.throttle_probe_when_idle is False


class TestLoadSettings:
    """Test loading settings from the environment"""

    def test_from_environment(self, clean_shopify_env, tmp_path):
        clean_shopify_env.setenv("SHOPIFY_SHOP_DOMAIN", "env-shop")
        clean_shopify_env.setenv("SHOPIFY_ACCESS_TOKEN", "shpat_from_env")
        clean_shopify_env.setenv("SHOPIFY_PAGE_SIZE", "100")

        settings = load_settings(env_file=str(tmp_path / "missing.env"))

        assert settings.shop_domain == "env-shop.myshopify.com"
        assert settings.access_token == "shpat_from_env"
        assert settings.page_size == 100

    def test_from_dotenv_file(self, clean_shopify_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("SHOPIFY_SHOP_DOMAIN=file-shop\nSHOPIFY_MAX_ATTEMPTS=2\n")

        settings = load_settings(env_file=str(env_file))

        assert settings.shop_domain == "file-shop.myshopify.com"
        assert settings.max_attempts == 2

    def test_probe_flag_from_environment(self, clean_shopify_env, tmp_path):
        clean_shopify_env.setenv("SHOPIFY_SHOP_DOMAIN", "env-shop")
        clean_shopify_env.setenv("SHOPIFY_THROTTLE_PROBE_WHEN_IDLE", "true")

        settings = load_settings(env_file=str(tmp_path / "missing.env"))

        assert settings.throttle_probe_when_idle is True

    def test_environment_wins_over_dotenv_file(self, clean_shopify_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("SHOPIFY_SHOP_DOMAIN=file-shop\n")
        clean_shopify_env.setenv("SHOPIFY_SHOP_DOMAIN", "env-shop")

        assert load_settings(env_file=str(env_file)).shop_domain == "env-shop.myshopify.com"

    def test_overrides_win(self, clean_shopify_env, tmp_path):
        clean_shopify_env.setenv("SHOPIFY_SHOP_DOMAIN", "env-shop")
        clean_shopify_env.setenv("SHOPIFY_PAGE_SIZE", "100")

        settings = load_settings(env_file=str(tmp_path / "missing.env"), page_size=25)

        assert settings.page_size == 25

    def test_missing_shop_domain(self, clean_shopify_env, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(env_file=str(tmp_path / "missing.env"))

        assert exc_info.value.config_field == "shop_domain"

    def test_invalid_value(self, clean_shopify_env, tmp_path):
        clean_shopify_env.setenv("SHOPIFY_SHOP_DOMAIN", "env-shop")
        clean_shopify_env.setenv("SHOPIFY_PAGE_SIZE", "500")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(env_file=str(tmp_path / "missing.env"))

        assert exc_info.value.config_field == "page_size"

    def test_inconsistent_delays(self, clean_shopify_env, tmp_path):
        with pytest.raises(ConfigurationError):
            load_settings(
                env_file=str(tmp_path / "missing.env"),
                shop_domain="my-shop",
                retry_base_delay=5.0,
                retry_max_delay=1.0,
            )


class TestEnvCredentials:
    """Test reading raw values from the environment"""

    def test_nothing_set(self, clean_shopify_env):
        assert get_shop_credentials_from_env() is None

    def test_custom_prefix(self, clean_shopify_env):
        clean_shopify_env.setenv("STAGING_SHOPIFY_SHOP_DOMAIN", "staging-shop")
        clean_shopify_env.setenv("STAGING_SHOPIFY_API_VERSION", "2024-07")

        assert get_shop_credentials_from_env("staging-shopify") == {
            "shop_domain": "staging-shop",
            "api_version": "2024-07",
        }
