"""
Product Catalog Records

Data contracts for the product resource and the records nested in it.
Field names follow the Admin API wire format.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import Field

from .base_model import ShopifyObject
from ..resources.registry import register_resource


@register_resource(
    "variant",
    plural_key="variants",
    collection_path="products/{product_id}/variants",
    member_path="variants/{id}",
)
class ShopifyProductVariant(ShopifyObject):
    """A purchasable version of a product, e.g. "small black"."""

    product_id: Optional[int] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    position: Optional[int] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    grams: Optional[int] = None
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    inventory_item_id: Optional[int] = None
    inventory_quantity: Optional[int] = None
    inventory_policy: Optional[str] = None
    inventory_management: Optional[str] = None
    fulfillment_service: Optional[str] = None
    taxable: Optional[bool] = None
    requires_shipping: Optional[bool] = None
    image_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ShopifyProductOption(ShopifyObject):
    """A custom product property such as "Size" or "Color"; at most three per product."""

    product_id: Optional[int] = None
    name: Optional[str] = None
    position: Optional[int] = None
    values: Optional[List[str]] = None


@register_resource(
    "image",
    plural_key="images",
    collection_path="products/{product_id}/images",
)
class ShopifyProductImage(ShopifyObject):
    product_id: Optional[int] = None
    position: Optional[int] = None
    src: Optional[str] = None
    alt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    variant_ids: Optional[List[int]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@register_resource("metafield", plural_key="metafields")
class ShopifyMetaField(ShopifyObject):
    """Additional information attached to a shop resource."""

    namespace: Optional[str] = None
    key: Optional[str] = None
    value: Optional[Any] = None
    type: Optional[str] = None
    description: Optional[str] = None
    owner_id: Optional[int] = None
    owner_resource: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@register_resource("product", plural_key="products")
class ShopifyProduct(ShopifyObject):
    """
    A catalog product.

    `published_at` being absent (never sent) differs from it being null
    (sent, but the product is unpublished); use field_state() to tell them
    apart. `tags` is a single comma-separated string on the wire.
    """

    title: Optional[str] = None
    body_html: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    handle: Optional[str] = None
    status: Optional[str] = None
    template_suffix: Optional[str] = None
    published_scope: Optional[str] = None
    published: Optional[bool] = None
    tags: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    variants: Optional[List[ShopifyProductVariant]] = None
    options: Optional[List[ShopifyProductOption]] = None
    images: Optional[List[ShopifyProductImage]] = None
    image: Optional[ShopifyProductImage] = None
    metafields: Optional[List[ShopifyMetaField]] = Field(default=None)

    @property
    def tag_list(self) -> List[str]:
        if not self.tags:
            return []
        return [tag.strip() for tag in self.tags.split(",") if tag.strip()]
