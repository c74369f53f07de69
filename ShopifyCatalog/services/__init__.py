# Services package initialization

from .cancellation import CancellationToken
from .pagination_service import Page, PageWalker
from .rate_limit_service import RateLimitGovernor, RateLimitState
from .resource_codec import ResourceCodec
from .retry_policy import RetryConfig, RetryDecision, RetryPolicy
from .product_service import ProductService

__all__ = [
    "CancellationToken",
    "Page",
    "PageWalker",
    "RateLimitGovernor",
    "RateLimitState",
    "ResourceCodec",
    "RetryConfig",
    "RetryDecision",
    "RetryPolicy",
    "ProductService",
]
