"""
Product Service

Convenience operations over the `product` resource type, built on a
ResourceClient. Publishing is expressed through the product's `published`
attribute, so publish/unpublish are ordinary partial updates.
"""

import logging
from typing import Any, AsyncIterator, Dict, Iterable, Mapping, Optional, Union

from ..models.product_models import ShopifyProduct
from ..services.cancellation import CancellationToken
from ..services.pagination_service import Page, PageWalker

logger = logging.getLogger(__name__)

ProductInput = Union[ShopifyProduct, Mapping[str, Any]]


class ProductService:
    """Product operations for one shop"""

    RESOURCE_TYPE = "product"

    def __init__(self, client):
        """
        Args:
            client: ResourceClient bound to the shop
        """
        self.client = client
        self.logger = logging.getLogger(self.__class__.__name__)

    def _payload(self, product: ProductInput) -> Dict[str, Any]:
        if isinstance(product, ShopifyProduct):
            return self.client.codec.to_payload(product, self.RESOURCE_TYPE)
        data = dict(product)
        if self.RESOURCE_TYPE in data:
            return {self.RESOURCE_TYPE: dict(data[self.RESOURCE_TYPE])}
        return {self.RESOURCE_TYPE: data}

    async def count(self, filters: Optional[Mapping[str, Any]] = None,
                    cancellation: Optional[CancellationToken] = None) -> int:
        """Number of products matching `filters` (e.g. vendor, product_type, published_status)"""
        return await self.client.count(self.RESOURCE_TYPE, filters=filters, cancellation=cancellation)

    async def list(self,
                   filters: Optional[Mapping[str, Any]] = None,
                   cursor: Optional[str] = None,
                   limit: Optional[int] = None,
                   fields: Optional[Union[str, Iterable[str]]] = None,
                   cancellation: Optional[CancellationToken] = None) -> Page:
        """One page of products; pass page.next_cursor back to continue"""
        filters = dict(filters or {})
        if fields is not None:
            filters["fields"] = fields
        return await self.client.fetch_page(
            self.RESOURCE_TYPE,
            filters=filters,
            cursor=cursor,
            limit=limit,
            cancellation=cancellation,
        )

    def list_all(self,
                 filters: Optional[Mapping[str, Any]] = None,
                 limit: Optional[int] = None,
                 cancellation: Optional[CancellationToken] = None,
                 timeout: Optional[float] = None) -> AsyncIterator[ShopifyProduct]:
        """Stream every product matching `filters`"""
        return self.client.fetch_all(self.RESOURCE_TYPE, filters=filters, limit=limit, cancellation=cancellation,
                                     timeout=timeout)

    def pages(self,
              filters: Optional[Mapping[str, Any]] = None,
              limit: Optional[int] = None,
              cancellation: Optional[CancellationToken] = None) -> PageWalker:
        return self.client.walk_pages(self.RESOURCE_TYPE, filters=filters, limit=limit, cancellation=cancellation)

    async def get(self, product_id: int,
                  fields: Optional[Union[str, Iterable[str]]] = None,
                  cancellation: Optional[CancellationToken] = None) -> ShopifyProduct:
        return await self.client.fetch_one(self.RESOURCE_TYPE, product_id, fields=fields, cancellation=cancellation)

    async def create(self, product: ProductInput,
                     published: Optional[bool] = None,
                     idempotency_key: Optional[str] = None,
                     cancellation: Optional[CancellationToken] = None) -> ShopifyProduct:
        """
        Create a product

        Args:
            product: Product record or plain field mapping
            published: Publish immediately (True) or create hidden (False);
                None leaves the shop's default
            idempotency_key: Makes the create safe to retry on any transient failure
            cancellation: Token that aborts the request

        Returns:
            The created product as returned by the shop
        """
        payload = self._payload(product)
        if published is not None:
            payload[self.RESOURCE_TYPE]["published"] = published

        created = await self.client.create(
            self.RESOURCE_TYPE,
            payload,
            idempotency_key=idempotency_key,
            cancellation=cancellation,
        )
        self.logger.info(f"Created product {created.id} ({created.title!r})")
        return created

    async def update(self, product_id: int, changes: ProductInput,
                     idempotency_key: Optional[str] = None,
                     cancellation: Optional[CancellationToken] = None) -> ShopifyProduct:
        """Update a product; only the fields present in `changes` are sent"""
        return await self.client.update(
            self.RESOURCE_TYPE,
            product_id,
            self._payload(changes),
            idempotency_key=idempotency_key,
            cancellation=cancellation,
        )

    async def delete(self, product_id: int,
                     idempotency_key: Optional[str] = None,
                     cancellation: Optional[CancellationToken] = None) -> None:
        await self.client.delete(
            self.RESOURCE_TYPE,
            product_id,
            idempotency_key=idempotency_key,
            cancellation=cancellation,
        )
        self.logger.info(f"Deleted product {product_id}")

    async def publish(self, product_id: int,
                      cancellation: Optional[CancellationToken] = None) -> ShopifyProduct:
        return await self.update(
            product_id,
            {"published": True},
            cancellation=cancellation,
        )

    async def unpublish(self, product_id: int,
                        cancellation: Optional[CancellationToken] = None) -> ShopifyProduct:
        return await self.update(
            product_id,
            {"published": False},
            cancellation=cancellation,
        )
