"""
API Client Layer for ShopifyCatalog

The HTTP boundary (BaseAPIClient/RESTClient) performs single exchanges; the
ResourceClient on top of it adds rate limiting, retries, decoding and
pagination.
"""

from .base_client import BaseAPIClient, APIResponse, HTTPMethod, RequestDescriptor
from .rest_client import RESTClient, raise_for_status
from .resource_client import ResourceClient

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "HTTPMethod",
    "RequestDescriptor",
    "RESTClient",
    "raise_for_status",
    "ResourceClient",
]
