"""
Resource Client

Typed access to Admin API resources. Every logical request goes through the
same loop: wait for the shop's rate-limit governor, perform one HTTP
exchange, reconcile the governor with the response headers, classify the
outcome, and on failure ask the retry policy whether (and when) to try again.
Successful bodies are decoded by the resource codec; decoding failures are
never retried.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Iterable, Mapping, Optional, Set, Union
from urllib.parse import urlsplit

from .base_client import APIResponse, BaseAPIClient, HTTPMethod, RequestDescriptor
from .rest_client import RESTClient, raise_for_status
from ..exceptions import (
    ClientError,
    CodecError,
    RateLimitRejected,
    RequestCancelledError,
    RequestError,
    RequestTimeoutError,
    RetriesExhausted,
    ServerError,
    TransportError,
    ValidationError,
    log_exception,
)
from ..models.base_model import ShopifyObject
from ..resources.registry import ResourceRegistry, default_registry
from ..services.cancellation import CancellationToken, cancellable_sleep
from ..services.pagination_service import Page, PageWalker, build_page_params, cursors_from_link_header
from ..services.rate_limit_service import RateLimitGovernor
from ..services.resource_codec import ResourceCodec
from ..services.retry_policy import AttemptRecord, RetryPolicy

logger = logging.getLogger(__name__)

IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"

RecordInput = Union[ShopifyObject, Mapping[str, Any]]


def _fields_param(fields: Optional[Union[str, Iterable[str]]]) -> Optional[str]:
    if fields is None:
        return None
    if isinstance(fields, str):
        return fields
    return ",".join(fields)


class ResourceClient:
    """
    Client for registered Admin API resource types.

    The governor must belong to the shop the HTTP client talks to; pass the
    same governor to every ResourceClient of that shop.
    """

    def __init__(
        self,
        http_client: BaseAPIClient,
        governor: Optional[RateLimitGovernor] = None,
        retry_policy: Optional[RetryPolicy] = None,
        codec: Optional[ResourceCodec] = None,
        registry: Optional[ResourceRegistry] = None,
        page_size: int = 50,
    ):
        self.http_client = http_client
        self.governor = governor or RateLimitGovernor(urlsplit(http_client.base_url).hostname or "default")
        self.retry_policy = retry_policy or RetryPolicy()
        self.registry = registry or (codec.registry if codec is not None else default_registry)
        self.codec = codec or ResourceCodec(self.registry)
        self.page_size = page_size

        # Reconciliations of exchanges whose caller was cancelled mid-flight
        self._background: Set[asyncio.Task] = set()

        self.logger = logging.getLogger(f"{__name__}.ResourceClient")

    @classmethod
    def from_settings(
        cls,
        settings,
        transport=None,
        governor: Optional[RateLimitGovernor] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "ResourceClient":
        """
        Build a client from ClientSettings

        Args:
            settings: ClientSettings for the shop
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests
            governor: Governor to share with other clients of the same shop
            retry_policy: Overrides the policy derived from the settings
        """
        http_client = RESTClient(
            base_url=settings.base_url,
            access_token=settings.access_token,
            timeout=settings.request_timeout,
            transport=transport,
        )
        governor = governor or RateLimitGovernor(
            shop_domain=settings.shop_domain,
            min_request_interval=settings.min_request_interval,
            backoff_initial=settings.throttle_backoff_initial,
            backoff_max=settings.throttle_backoff_max,
            probe_when_idle=settings.throttle_probe_when_idle,
        )
        return cls(
            http_client,
            governor=governor,
            retry_policy=retry_policy or RetryPolicy(settings.retry_config()),
            page_size=settings.page_size,
        )

    # ========== Reads ==========

    async def fetch_one(
        self,
        resource_type: str,
        resource_id: Any,
        fields: Optional[Union[str, Iterable[str]]] = None,
        path_params: Optional[Mapping[str, Any]] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ShopifyObject:
        """
        Fetch a single record by id

        Raises:
            ResourceNotFoundError: If the record does not exist
            MalformedPayloadError: If the body does not match the schema
            RetriesExhausted: If every allowed attempt failed transiently
        """
        definition = self.registry.get(resource_type)
        fields_value = _fields_param(fields)
        request = RequestDescriptor(
            resource_type=definition.name,
            method=HTTPMethod.GET,
            endpoint=definition.member_endpoint(resource_id, path_params),
            params={"fields": fields_value} if fields_value else None,
        )
        response = await self.execute(request, cancellation=cancellation, timeout=timeout)
        return self._decode(request, response, lambda body: self.codec.decode(body, definition.name))

    async def fetch_page(
        self,
        resource_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        path_params: Optional[Mapping[str, Any]] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> Page:
        """Fetch one page of a list; pass the previous page's next_cursor to continue"""
        definition = self.registry.get(resource_type)
        filters = dict(filters or {})
        if "fields" in filters:
            filters["fields"] = _fields_param(filters["fields"])

        request = RequestDescriptor(
            resource_type=definition.name,
            method=HTTPMethod.GET,
            endpoint=definition.collection_endpoint(path_params),
            params=build_page_params(filters, cursor, limit or self.page_size),
            cursor=cursor,
        )
        response = await self.execute(request, cancellation=cancellation, timeout=timeout)
        items = self._decode(request, response, lambda body: self.codec.decode_many(body, definition.name))

        cursors = cursors_from_link_header(response.header("Link"))
        return Page(
            resource_type=definition.name,
            items=items,
            next_cursor=cursors["next"],
            previous_cursor=cursors["previous"],
        )

    def walk_pages(
        self,
        resource_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        path_params: Optional[Mapping[str, Any]] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> PageWalker:
        """Lazy walk over every page; `timeout` applies to each page request"""
        self.registry.get(resource_type)
        return PageWalker(
            self,
            resource_type,
            filters=filters,
            limit=limit,
            path_params=path_params,
            cancellation=cancellation,
            timeout=timeout,
        )

    def fetch_all(
        self,
        resource_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        path_params: Optional[Mapping[str, Any]] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[ShopifyObject]:
        """Stream every record of a list, page by page; `timeout` applies to each page request"""
        return self.walk_pages(
            resource_type,
            filters=filters,
            limit=limit,
            path_params=path_params,
            cancellation=cancellation,
            timeout=timeout,
        ).records()

    async def count(
        self,
        resource_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        path_params: Optional[Mapping[str, Any]] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> int:
        definition = self.registry.get(resource_type)
        if not definition.countable:
            raise ValidationError(f"Resource type '{definition.name}' does not support counting")

        request = RequestDescriptor(
            resource_type=definition.name,
            method=HTTPMethod.GET,
            endpoint=definition.count_endpoint(path_params),
            params={key: value for key, value in (filters or {}).items() if value is not None} or None,
        )
        response = await self.execute(request, cancellation=cancellation, timeout=timeout)
        return self._decode(request, response, lambda body: self.codec.decode_count(body, definition.name))

    # ========== Writes ==========

    def _body(self, resource_type: str, record: RecordInput) -> Dict[str, Any]:
        definition = self.registry.get(resource_type)
        if isinstance(record, ShopifyObject):
            return self.codec.to_payload(record, definition.name)
        body = dict(record)
        if definition.singular_key in body:
            return {definition.singular_key: dict(body[definition.singular_key])}
        return {definition.singular_key: body}

    async def create(
        self,
        resource_type: str,
        record: RecordInput,
        path_params: Optional[Mapping[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ShopifyObject:
        """
        Create a record

        Without an idempotency key a create is only retried when the server
        cannot have applied it twice (transport and 5xx failures).
        """
        definition = self.registry.get(resource_type)
        request = RequestDescriptor(
            resource_type=definition.name,
            method=HTTPMethod.POST,
            endpoint=definition.collection_endpoint(path_params),
            body=self._body(definition.name, record),
            idempotency_key=idempotency_key,
        )
        response = await self.execute(request, cancellation=cancellation, timeout=timeout)
        return self._decode(request, response, lambda body: self.codec.decode(body, definition.name))

    async def update(
        self,
        resource_type: str,
        resource_id: Any,
        record: RecordInput,
        path_params: Optional[Mapping[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ShopifyObject:
        """Update a record; only fields set on `record` are sent"""
        definition = self.registry.get(resource_type)
        body = self._body(definition.name, record)
        body[definition.singular_key].setdefault("id", resource_id)

        request = RequestDescriptor(
            resource_type=definition.name,
            method=HTTPMethod.PUT,
            endpoint=definition.member_endpoint(resource_id, path_params),
            body=body,
            idempotency_key=idempotency_key,
        )
        response = await self.execute(request, cancellation=cancellation, timeout=timeout)
        return self._decode(request, response, lambda body: self.codec.decode(body, definition.name))

    async def delete(
        self,
        resource_type: str,
        resource_id: Any,
        path_params: Optional[Mapping[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> None:
        definition = self.registry.get(resource_type)
        request = RequestDescriptor(
            resource_type=definition.name,
            method=HTTPMethod.DELETE,
            endpoint=definition.member_endpoint(resource_id, path_params),
            idempotency_key=idempotency_key,
        )
        await self.execute(request, cancellation=cancellation, timeout=timeout)

    # ========== Request execution ==========

    def _decode(self, request: RequestDescriptor, response: APIResponse, decoder):
        try:
            return decoder(response.raw_content)
        except CodecError as e:
            e.attach_context(request, response.attempts)
            log_exception(e, context=f"decoding {request.method.value} {request.endpoint}")
            raise

    async def execute(
        self,
        request: RequestDescriptor,
        cancellation: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> APIResponse:
        """
        Run one logical request through the governor and retry policy

        Args:
            request: What to send
            cancellation: Token that aborts the request
            timeout: Deadline in seconds for the whole logical request

        Returns:
            The successful (2xx) response

        Raises:
            RequestError: Terminal failure, with request and attempt count attached
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        record = AttemptRecord()
        last_error: Optional[RequestError] = None

        while True:
            exchange_timeout = self.http_client.timeout
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise self._deadline_exceeded(request, record.attempt, last_error, timeout)
                exchange_timeout = min(exchange_timeout, remaining)

            record.attempt += 1
            try:
                await self._acquire(cancellation, deadline, loop)
                response = await self._exchange(request, exchange_timeout, cancellation)
                response.attempts = record.attempt
                if record.attempt > 1:
                    self.logger.info(
                        f"{request.method.value} {request.endpoint} succeeded on attempt {record.attempt}"
                    )
                return response
            except RequestCancelledError as e:
                e.attach_context(request, record.attempt)
                self.logger.info(f"{request.method.value} {request.endpoint} cancelled: {e.reason or 'no reason'}")
                raise
            except _DeadlineReached:
                raise self._deadline_exceeded(request, record.attempt - 1, last_error, timeout)
            except (TransportError, RateLimitRejected, ServerError, ClientError) as e:
                error = e

            error.attach_context(request, record.attempt)
            record.last_error_kind = error.kind
            decision = self.retry_policy.decide(
                record.attempt,
                error.kind,
                retry_after=getattr(error, "retry_after", None),
                idempotent=request.retry_safe,
                throttle_delay=getattr(error, "throttle_delay", None),
            )

            if not decision.retry:
                if decision.exhausted:
                    exhausted = RetriesExhausted(error, record.attempt, decision.reason)
                    exhausted.attach_context(request, record.attempt)
                    log_exception(exhausted, context=f"{request.method.value} {request.endpoint}")
                    raise exhausted from error
                log_exception(error, context=f"{request.method.value} {request.endpoint}")
                raise error

            if deadline is not None and loop.time() + decision.delay >= deadline:
                exhausted = RetriesExhausted(error, record.attempt, "deadline would be exceeded")
                exhausted.attach_context(request, record.attempt)
                log_exception(exhausted, context=f"{request.method.value} {request.endpoint}")
                raise exhausted from error

            record.delay = decision.delay
            last_error = error
            self.logger.warning(
                f"{request.method.value} {request.endpoint} failed ({error.kind.value}: {error.message}), "
                f"retrying in {decision.delay:.2f}s (attempt {record.attempt}/{self.retry_policy.config.max_attempts})"
            )
            try:
                await cancellable_sleep(decision.delay, cancellation)
            except RequestCancelledError as e:
                e.attach_context(request, record.attempt)
                raise

    def _deadline_exceeded(
        self,
        request: RequestDescriptor,
        attempts: int,
        last_error: Optional[RequestError],
        timeout: Optional[float],
    ) -> RetriesExhausted:
        error = last_error or RequestTimeoutError(
            f"Logical request deadline of {timeout} seconds exceeded",
            timeout_duration=timeout,
        ).attach_context(request, attempts)
        exhausted = RetriesExhausted(error, attempts, "deadline exceeded")
        exhausted.attach_context(request, attempts)
        log_exception(exhausted, context=f"{request.method.value} {request.endpoint}")
        return exhausted

    async def _acquire(self, cancellation: Optional[CancellationToken], deadline: Optional[float], loop) -> None:
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        if deadline is None:
            await self.governor.acquire(cancellation)
            return
        try:
            await asyncio.wait_for(self.governor.acquire(cancellation), timeout=max(0.0, deadline - loop.time()))
        except asyncio.TimeoutError:
            raise _DeadlineReached()

    async def _exchange(
        self,
        request: RequestDescriptor,
        timeout: float,
        cancellation: Optional[CancellationToken],
    ) -> APIResponse:
        """One HTTP exchange under an already-acquired governor reservation"""
        headers = {IDEMPOTENCY_KEY_HEADER: request.idempotency_key} if request.idempotency_key else None
        exchange = asyncio.ensure_future(
            self.http_client.request(
                request.method,
                request.endpoint,
                params=request.params,
                data=request.body,
                headers=headers,
                timeout=timeout,
            )
        )

        try:
            response = await asyncio.shield(exchange)
        except asyncio.CancelledError:
            # Let the exchange finish; its headers still belong to the governor
            task = asyncio.ensure_future(self._settle_abandoned_exchange(exchange))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            raise
        except Exception:
            await self.governor.release()
            raise

        await self.governor.reconcile(response.headers)

        if cancellation is not None and cancellation.cancelled:
            self.logger.debug(f"Discarding response for cancelled {request.method.value} {request.endpoint}")
            cancellation.raise_if_cancelled()

        try:
            raise_for_status(response)
        except RateLimitRejected as e:
            delay = await self.governor.note_rejected(e.retry_after)
            if e.retry_after is None:
                e.throttle_delay = delay
            raise
        return response

    async def _settle_abandoned_exchange(self, exchange: asyncio.Future) -> None:
        response = None
        try:
            response = await exchange
        except Exception as e:
            self.logger.debug(f"Exchange abandoned by a cancelled caller failed: {e}")
        finally:
            if response is None:
                await self.governor.release()
            else:
                await self.governor.reconcile(response.headers)

    # ========== Lifecycle ==========

    async def aclose(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


class _DeadlineReached(Exception):
    """The logical deadline passed while waiting for the governor"""
