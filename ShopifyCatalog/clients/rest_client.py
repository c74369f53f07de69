"""
REST API Client Implementation

httpx-based implementation of BaseAPIClient for the Admin REST API, plus the
mapping from HTTP status codes onto the exception hierarchy.
"""

import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional
import httpx
import logging

from .base_client import BaseAPIClient, APIResponse, HTTPMethod
from ..exceptions import (
    AuthenticationError,
    ClientError,
    ConfigurationError,
    RateLimitRejected,
    RequestTimeoutError,
    ResourceNotFoundError,
    ServerError,
    TransportError,
)

logger = logging.getLogger(__name__)

ACCESS_TOKEN_HEADER = "X-Shopify-Access-Token"


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After as seconds; accepts delta-seconds (possibly fractional) or an HTTP date"""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable Retry-After header: {value!r}")
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def raise_for_status(response: APIResponse) -> APIResponse:
    """
    Map a non-2xx response onto the exception hierarchy

    Raises:
        RateLimitRejected: 429
        AuthenticationError: 401/403
        ResourceNotFoundError: 404
        ClientError: other 4xx
        ServerError: 5xx and unexpected statuses
    """
    status = response.status_code
    if 200 <= status < 300:
        return response

    message = response.error_message()
    data = response.json()
    response_data = data if isinstance(data, dict) else {}

    if status == 429:
        raise RateLimitRejected(
            f"Rate limit exceeded: {message}",
            retry_after=parse_retry_after(response.header("Retry-After")),
            response_data=response_data,
        )
    elif status in (401, 403):
        raise AuthenticationError(
            f"Authentication failed: {message}",
            status_code=status,
            response_data=response_data,
        )
    elif status == 404:
        raise ResourceNotFoundError(
            f"Resource not found: {message}",
            response_data=response_data,
        )
    elif 400 <= status < 500:
        raise ClientError(
            f"Client error: {message}",
            status_code=status,
            response_data=response_data,
        )
    else:
        raise ServerError(
            f"Server error: {message}",
            status_code=status,
            response_data=response_data,
        )


class RESTClient(BaseAPIClient):
    """
    REST API client performing single HTTP exchanges over httpx
    """

    def __init__(self,
                 base_url: str,
                 access_token: Optional[str] = None,
                 auth_header_name: str = ACCESS_TOKEN_HEADER,
                 timeout: float = 30,
                 custom_headers: Optional[Dict[str, str]] = None,
                 verify_ssl: bool = True,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize REST API client

        Args:
            base_url: Base URL for the API
            access_token: Admin API access token
            auth_header_name: Name of authentication header
            timeout: Per-exchange timeout in seconds
            custom_headers: Additional headers to include in requests
            verify_ssl: Whether to verify SSL certificates
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        """
        super().__init__(
            base_url=base_url,
            access_token=access_token,
            timeout=timeout,
            custom_headers=custom_headers
        )

        self.auth_header_name = auth_header_name
        self.verify_ssl = verify_ssl
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.logger = logging.getLogger(f"{__name__}.RESTClient")

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared httpx client"""
        if self._client is None or self._client.is_closed:
            client_config: Dict[str, Any] = {
                "timeout": httpx.Timeout(self.timeout),
                "verify": self.verify_ssl,
                "follow_redirects": True,
            }
            if self.transport is not None:
                client_config["transport"] = self.transport
            self._client = httpx.AsyncClient(**client_config)
        return self._client

    async def request(self,
                      method: HTTPMethod,
                      endpoint: str,
                      params: Optional[Mapping[str, Any]] = None,
                      data: Optional[Mapping[str, Any]] = None,
                      headers: Optional[Dict[str, str]] = None,
                      timeout: Optional[float] = None) -> APIResponse:
        """
        Make one HTTP request; transport failures raise, every status returns
        """
        url = self._build_url(endpoint)
        merged_headers = self._merge_headers(headers)
        effective_timeout = timeout if timeout is not None else self.timeout

        json_data = None
        if data is not None:
            json_data = dict(data)
            merged_headers.setdefault("Content-Type", "application/json")

        self.logger.debug(f"Making {method.value} request to {url}")
        start_time = time.perf_counter()

        try:
            response = await self._get_client().request(
                method=method.value,
                url=url,
                params=dict(params) if params else None,
                json=json_data,
                headers=merged_headers,
                timeout=httpx.Timeout(effective_timeout),
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"Request timeout after {effective_timeout} seconds: {type(e).__name__}",
                timeout_duration=effective_timeout
            )
        except httpx.TransportError as e:
            raise TransportError(f"Network error: {str(e) or type(e).__name__}")

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        self.logger.debug(f"{method.value} {url} -> {response.status_code} in {duration_ms}ms")

        return APIResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            raw_content=response.content,
            url=str(response.url),
            duration_ms=duration_ms,
        )

    async def test_connection(self) -> bool:
        """
        Test API connection by fetching the shop resource
        """
        try:
            self.logger.info("Testing API connection...")
            response = await self.get("shop.json")
            if response.success:
                self.logger.info("Connection test successful")
                return True
            self.logger.warning(f"Connection test returned HTTP {response.status_code}")
            return False
        except TransportError as e:
            self.logger.warning(f"Connection test failed: {e}")
            return False

    def get_authentication_headers(self) -> Dict[str, str]:
        """
        Get authentication headers for requests
        """
        headers = {}

        if self.access_token:
            headers[self.auth_header_name] = self.access_token

        return headers

    def validate_configuration(self) -> None:
        """
        Validate client configuration

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.base_url:
            raise ConfigurationError("Base URL is required", config_field="base_url")

        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError("Base URL must start with http:// or https://", config_field="base_url")

        if self.timeout <= 0:
            raise ConfigurationError("Timeout must be positive", config_field="timeout")

    async def aclose(self) -> None:
        """Close the shared httpx client"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self.logger.debug("Closed HTTP client")
        self._client = None

    async def __aenter__(self):
        """Async context manager entry with configuration validation"""
        self.validate_configuration()
        return await super().__aenter__()
