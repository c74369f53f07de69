"""
Client Test Configuration - Scripted HTTP

End-to-end tests run the real ResourceClient and RESTClient against an
httpx.MockTransport that replays a scripted sequence of responses.
"""

import httpx
import pytest

from ShopifyCatalog.clients.resource_client import ResourceClient
from ShopifyCatalog.clients.rest_client import RESTClient
from ShopifyCatalog.services.rate_limit_service import RateLimitGovernor

from scripted_http import ACCESS_TOKEN, BASE_URL, SHOP_DOMAIN, ScriptedHandler, fast_retry_policy


@pytest.fixture
def make_client():
    """Factory returning (ResourceClient, ScriptedHandler) for a scripted exchange sequence"""

    def factory(*steps, retry_policy=None, governor=None, page_size=50):
        handler = ScriptedHandler(steps)
        http_client = RESTClient(BASE_URL, access_token=ACCESS_TOKEN, transport=httpx.MockTransport(handler))
        client = ResourceClient(
            http_client,
            governor=governor or RateLimitGovernor(SHOP_DOMAIN, min_request_interval=0),
            retry_policy=retry_policy or fast_retry_policy(),
            page_size=page_size,
        )
        return client, handler

    return factory


@pytest.fixture
def product_body():
    return {
        "id": 632910392,
        "title": "IPod Nano - 8GB",
        "vendor": "Apple",
        "product_type": "Cult Products",
        "tags": "Emotive, Flash Memory",
        "published_at": "2024-01-02T09:28:43-05:00",
        "variants": [{"id": 808950810, "product_id": 632910392, "price": "199.00", "sku": "IPOD2008PINK"}],
    }
