"""
Cursor Pagination

List endpoints return at most one page of records plus a Link header whose
rel="next" URL carries an opaque page_info cursor. The walker follows that
chain one page at a time until a page arrives without a next cursor.

Cursors are never built or interpreted locally; they are copied out of the
Link header and sent back unchanged. The collection can change between page
fetches (records may be skipped or repeated); callers that need a snapshot
must take one themselves.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional
from urllib.parse import parse_qs, urlsplit

from ..exceptions import ShopifyCatalogException
from ..models.base_model import ShopifyObject

logger = logging.getLogger(__name__)

LINK_HEADER = "Link"
CURSOR_PARAM = "page_info"
# Only these parameters may accompany a cursor
CURSOR_COMPATIBLE_PARAMS = ("limit", "fields")

_LINK_PATTERN = re.compile(r'<([^>]*)>\s*((?:;\s*[^,;]+)*)')
_REL_PATTERN = re.compile(r'rel\s*=\s*"?([^";]+)"?', re.IGNORECASE)


@dataclass(frozen=True)
class Page:
    """One page of a list response"""

    resource_type: str
    items: List[ShopifyObject] = field(default_factory=list)
    next_cursor: Optional[str] = None
    previous_cursor: Optional[str] = None

    @property
    def has_next(self) -> bool:
        return self.next_cursor is not None

    def __len__(self) -> int:
        return len(self.items)


def parse_link_header(value: Optional[str]) -> Dict[str, str]:
    """
    Parse an RFC 8288 Link header into {rel: url}.

    Example:
        '<https://x/products.json?page_info=abc>; rel="next"'
        -> {"next": "https://x/products.json?page_info=abc"}
    """
    links: Dict[str, str] = {}
    if not value:
        return links

    for match in _LINK_PATTERN.finditer(value):
        url, params = match.group(1).strip(), match.group(2)
        rel_match = _REL_PATTERN.search(params or "")
        if not rel_match:
            continue
        for rel in rel_match.group(1).split():
            links.setdefault(rel.lower(), url)
    return links


def cursor_from_url(url: Optional[str]) -> Optional[str]:
    """Return the page_info value of a pagination URL, untouched"""
    if not url:
        return None
    values = parse_qs(urlsplit(url).query, keep_blank_values=False).get(CURSOR_PARAM)
    return values[0] if values else None


def cursors_from_link_header(value: Optional[str]) -> Dict[str, Optional[str]]:
    links = parse_link_header(value)
    return {
        "next": cursor_from_url(links.get("next")),
        "previous": cursor_from_url(links.get("previous")),
    }


def build_page_params(
    filters: Optional[Mapping[str, Any]] = None,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Query parameters for one page request.

    The first page carries the caller's filters. Continuation pages carry
    only the cursor plus limit/fields, since the cursor already encodes the
    original query.
    """
    filters = dict(filters or {})
    if limit is not None:
        filters["limit"] = limit

    if cursor is None:
        filters.pop(CURSOR_PARAM, None)
        return {key: value for key, value in filters.items() if value is not None}

    params = {key: filters[key] for key in CURSOR_COMPATIBLE_PARAMS if filters.get(key) is not None}
    params[CURSOR_PARAM] = cursor
    return params


class PageWalker:
    """
    Lazy, forward-only walk over every page of a list request.

    Iterating the walker issues one request per page, each through the
    client's rate-limit governor and retry policy. Iterating it again starts
    over from the original request. A failure on page N is raised after
    pages 1..N-1 have been yielded.
    """

    def __init__(
        self,
        client,
        resource_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        path_params: Optional[Mapping[str, Any]] = None,
        cancellation=None,
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.resource_type = resource_type
        self.filters = dict(filters or {})
        self.limit = limit
        self.path_params = dict(path_params or {})
        self.cancellation = cancellation
        self.timeout = timeout
        self.pages_fetched = 0

    def __aiter__(self) -> AsyncIterator[Page]:
        return self._walk()

    async def _walk(self) -> AsyncIterator[Page]:
        self.pages_fetched = 0
        cursor: Optional[str] = None

        while True:
            page_number = self.pages_fetched + 1
            try:
                page = await self.client.fetch_page(
                    self.resource_type,
                    filters=self.filters,
                    cursor=cursor,
                    limit=self.limit,
                    path_params=self.path_params,
                    cancellation=self.cancellation,
                    timeout=self.timeout,
                )
            except ShopifyCatalogException as e:
                e.details.update({"page_number": page_number})
                logger.warning(f"Pagination of {self.resource_type} failed on page {page_number}: {e.message}")
                raise

            self.pages_fetched = page_number
            logger.debug(
                f"Fetched {self.resource_type} page {page_number} with {len(page.items)} item(s), "
                f"next cursor {'present' if page.has_next else 'absent'}"
            )
            yield page

            if not page.has_next:
                return
            cursor = page.next_cursor

    async def records(self) -> AsyncIterator[ShopifyObject]:
        """Flatten the walk into one stream of records"""
        async for page in self:
            for item in page.items:
                yield item

    async def collect(self) -> List[ShopifyObject]:
        return [record async for record in self.records()]
