"""
Base API Client Interface

Abstract base class defining the contract for the HTTP layer underneath the
resource client. One call to request() is exactly one HTTP exchange; retries
and throttling are the resource client's job.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional
import logging

logger = logging.getLogger(__name__)


class HTTPMethod(Enum):
    """Supported HTTP methods"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"

    @property
    def idempotent(self) -> bool:
        return self is HTTPMethod.GET


@dataclass
class APIResponse:
    """Standardized API response container"""
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    raw_content: bytes = b""
    url: str = ""
    duration_ms: int = 0
    attempts: int = 1

    def __post_init__(self):
        # Header names are case-insensitive; store them lower-cased
        self.headers = {str(k).lower(): v for k, v in (self.headers or {}).items()}

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    def json(self) -> Any:
        """Parse the body; returns None when it is empty or not JSON"""
        if not self.raw_content:
            return None
        try:
            return json.loads(self.raw_content)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None

    def error_message(self) -> str:
        """Best-effort human readable error text from an error body"""
        data = self.json()
        if isinstance(data, dict):
            errors = data.get("errors") or data.get("error")
            if errors:
                return errors if isinstance(errors, str) else json.dumps(errors)
        text = self.raw_content.decode("utf-8", errors="replace").strip()
        return text[:200] if text else f"HTTP {self.status_code}"


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything needed to issue one logical request"""
    resource_type: str
    method: HTTPMethod
    endpoint: str
    params: Optional[Mapping[str, Any]] = None
    body: Optional[Mapping[str, Any]] = None
    cursor: Optional[str] = None
    idempotency_key: Optional[str] = None

    @property
    def retry_safe(self) -> bool:
        """Whether repeating the request cannot apply a mutation twice"""
        return self.method.idempotent or self.idempotency_key is not None


class BaseAPIClient(ABC):
    """
    Abstract base class for HTTP clients.

    Defines the contract the resource client relies on, so tests and
    alternative transports can be swapped in.
    """

    def __init__(self,
                 base_url: str,
                 access_token: Optional[str] = None,
                 timeout: float = 30,
                 custom_headers: Optional[Dict[str, str]] = None):
        """
        Initialize base API client

        Args:
            base_url: Base URL for the API
            access_token: Credential sent with every request
            timeout: Per-exchange timeout in seconds
            custom_headers: Additional headers to include in requests
        """
        self.base_url = base_url.rstrip('/')
        self.access_token = access_token
        self.timeout = timeout
        self.custom_headers = custom_headers or {}

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def request(self,
                      method: HTTPMethod,
                      endpoint: str,
                      params: Optional[Mapping[str, Any]] = None,
                      data: Optional[Mapping[str, Any]] = None,
                      headers: Optional[Dict[str, str]] = None,
                      timeout: Optional[float] = None) -> APIResponse:
        """
        Perform one HTTP exchange

        Args:
            method: HTTP method to use
            endpoint: API endpoint (relative to base_url)
            params: Query parameters
            data: JSON request body
            headers: Additional headers
            timeout: Deadline for this exchange, overriding the client default

        Returns:
            APIResponse for any status code

        Raises:
            TransportError: If no response was received
        """
        pass

    @abstractmethod
    def get_authentication_headers(self) -> Dict[str, str]:
        """
        Get headers required for API authentication

        Returns:
            Dictionary of authentication headers
        """
        pass

    async def get(self, endpoint: str, params: Optional[Mapping[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> APIResponse:
        """Convenience method for GET requests"""
        return await self.request(HTTPMethod.GET, endpoint, params=params, headers=headers)

    async def post(self, endpoint: str, data: Optional[Mapping[str, Any]] = None,
                   params: Optional[Mapping[str, Any]] = None,
                   headers: Optional[Dict[str, str]] = None) -> APIResponse:
        """Convenience method for POST requests"""
        return await self.request(HTTPMethod.POST, endpoint, params=params,
                                  data=data, headers=headers)

    async def put(self, endpoint: str, data: Optional[Mapping[str, Any]] = None,
                  params: Optional[Mapping[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> APIResponse:
        """Convenience method for PUT requests"""
        return await self.request(HTTPMethod.PUT, endpoint, params=params,
                                  data=data, headers=headers)

    async def delete(self, endpoint: str, params: Optional[Mapping[str, Any]] = None,
                     headers: Optional[Dict[str, str]] = None) -> APIResponse:
        """Convenience method for DELETE requests"""
        return await self.request(HTTPMethod.DELETE, endpoint, params=params, headers=headers)

    def _build_url(self, endpoint: str) -> str:
        """Build full URL from endpoint"""
        endpoint = endpoint.lstrip('/')
        return f"{self.base_url}/{endpoint}"

    def _merge_headers(self, additional_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Merge authentication, custom, and additional headers"""
        headers = {"Accept": "application/json"}

        headers.update(self.get_authentication_headers())
        headers.update(self.custom_headers)

        if additional_headers:
            headers.update(additional_headers)

        return headers

    async def aclose(self) -> None:
        """Release network resources; the default client holds none"""
        return None

    async def __aenter__(self):
        """Async context manager entry"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.aclose()
