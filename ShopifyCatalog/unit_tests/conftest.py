# Unit test configuration - no network access
# Everything here runs against in-memory objects only

import random

import pytest

from ShopifyCatalog.resources.registry import default_registry
from ShopifyCatalog.services.resource_codec import ResourceCodec
from ShopifyCatalog.utils.env_credentials import ENV_FIELDS


@pytest.fixture
def codec():
    """Codec over the built-in resource types"""
    return ResourceCodec()


@pytest.fixture
def isolated_registry():
    """Registry copy that tests may register throwaway types into"""
    return default_registry.copy()


@pytest.fixture
def seeded_random():
    return random.Random(1234)


@pytest.fixture
def product_document():
    """A product as the Admin API returns it"""
    return {
        "id": 632910392,
        "title": "IPod Nano - 8GB",
        "body_html": "<p>It's the small iPod with one very big idea.</p>",
        "vendor": "Apple",
        "product_type": "Cult Products",
        "handle": "ipod-nano",
        "status": "active",
        "tags": "Emotive, Flash Memory, MP3, Music",
        "published_at": None,
        "created_at": "2024-01-02T09:28:43-05:00",
        "updated_at": "2024-01-02T09:28:43-05:00",
        "variants": [
            {
                "id": 808950810,
                "product_id": 632910392,
                "title": "Pink",
                "price": "199.00",
                "sku": "IPOD2008PINK",
                "position": 1,
                "option1": "Pink",
                "inventory_quantity": 10,
            }
        ],
        "options": [{"id": 594680422, "product_id": 632910392, "name": "Color", "position": 1, "values": ["Pink"]}],
        "admin_graphql_api_id": "gid://shopify/Product/632910392",
        "has_variants_that_requires_components": False,
    }


@pytest.fixture
def clean_shopify_env(monkeypatch):
    """Remove SHOPIFY_* variables; anything set during the test is undone afterwards"""
    for suffix in ENV_FIELDS.values():
        monkeypatch.delenv(f"SHOPIFY_{suffix}", raising=False)
        monkeypatch.delenv(f"STAGING_SHOPIFY_{suffix}", raising=False)
    return monkeypatch
