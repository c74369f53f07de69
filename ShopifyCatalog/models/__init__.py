"""
Record models for Admin API resources.

Importing this package registers the built-in resource types.
"""

from .base_model import ABSENT, FieldState, ShopifyObject
from .product_models import (
    ShopifyMetaField,
    ShopifyProduct,
    ShopifyProductImage,
    ShopifyProductOption,
    ShopifyProductVariant,
)

__all__ = [
    "ABSENT",
    "FieldState",
    "ShopifyObject",
    "ShopifyProduct",
    "ShopifyProductVariant",
    "ShopifyProductOption",
    "ShopifyProductImage",
    "ShopifyMetaField",
]
