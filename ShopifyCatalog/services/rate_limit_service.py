"""
Rate Limiting Service

Tracks the call budget the Admin API reports for one shop and throttles
outgoing requests so the shop never exceeds it.

The platform reports usage on every response in the
X-Shopify-Shop-Api-Call-Limit header ("used/limit"). The governor keeps the
latest reported pair, reserves one unit per request it admits, and releases
the reservation when the response (or the failure) comes back. Server state
is authoritative: a reported pair always replaces the local view.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple

from .cancellation import CancellationToken, wait_for_event

logger = logging.getLogger(__name__)

CALL_LIMIT_HEADER = "X-Shopify-Shop-Api-Call-Limit"

# The platform's bucket leaks two calls per second
DEFAULT_MIN_REQUEST_INTERVAL = 0.5
DEFAULT_BACKOFF_INITIAL = 0.5
DEFAULT_BACKOFF_MAX = 10.0


@dataclass(frozen=True)
class RateLimitState:
    """Call budget reported by the server; used may transiently exceed limit"""

    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit


def get_header(headers: Optional[Mapping[str, Any]], name: str) -> Optional[str]:
    """Case-insensitive header lookup over any mapping"""
    if not headers:
        return None
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return str(value) if value is not None else None


def parse_call_limit_header(value: Optional[str]) -> Optional[RateLimitState]:
    """Parse "used/limit"; returns None when the header is absent or unreadable"""
    if not value:
        return None

    used, sep, limit = value.strip().partition("/")
    if not sep:
        logger.warning(f"Ignoring call limit header without separator: {value!r}")
        return None

    try:
        state = RateLimitState(used=int(used), limit=int(limit))
    except ValueError:
        logger.warning(f"Ignoring unparseable call limit header: {value!r}")
        return None

    if state.limit <= 0:
        logger.warning(f"Ignoring call limit header with non-positive limit: {value!r}")
        return None
    return state


class RateLimitGovernor:
    """
    Per-shop request throttle.

    One governor belongs to one shop/account context. Share an instance
    between clients talking to the same shop; never share it across shops.

    Admission rules, checked under a single lock:
    - while a 429 block is in effect, nobody is admitted
    - with no reported budget yet, requests are spaced by min_request_interval
    - otherwise a request is admitted while used + pending < limit
    - once a 429 block expires, one request is admitted even if the last
      reported budget is full, since the server asked for a retry at that time
    - when exhausted, waiters back off exponentially (backoff_initial doubling
      up to backoff_max and holding there) and wake early on any reconciled
      response; the backoff is shared by the shop context and only resets
      once the server reports spare budget
    - with probe_when_idle set, once a backoff_max wait passes with no
      response and nothing in flight, one probe request is admitted to
      re-learn the server state; without it, waiters hold until a response
      arrives
    """

    def __init__(
        self,
        shop_domain: str = "default",
        min_request_interval: float = DEFAULT_MIN_REQUEST_INTERVAL,
        backoff_initial: float = DEFAULT_BACKOFF_INITIAL,
        backoff_max: float = DEFAULT_BACKOFF_MAX,
        probe_when_idle: bool = False,
        clock: Optional[Callable[[], float]] = None,
    ):
        if backoff_initial <= 0 or backoff_max < backoff_initial:
            raise ValueError("backoff_initial must be positive and not exceed backoff_max")

        self.shop_domain = shop_domain
        self.min_request_interval = min_request_interval
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.probe_when_idle = probe_when_idle
        self._clock = clock or time.monotonic

        self._lock = asyncio.Lock()
        self._changed = asyncio.Event()
        self._state: Optional[RateLimitState] = None
        self._pending = 0
        self._last_grant: Optional[float] = None
        self._blocked_until = 0.0
        self._throttle_backoff = backoff_initial
        self._exhausted_backoff = backoff_initial
        self._retry_permit = False

        logger.info(f"RateLimitGovernor initialized for shop: {shop_domain}")

    @property
    def state(self) -> Optional[RateLimitState]:
        return self._state

    @property
    def pending(self) -> int:
        return self._pending

    def backoff_hint(self) -> float:
        """Delay to use for a 429 that carried no Retry-After header"""
        return self._throttle_backoff

    @property
    def exhausted_backoff(self) -> float:
        """Current wait between admission checks while the budget is exhausted"""
        return self._exhausted_backoff

    # ========== Admission ==========

    def _admission_delay(self, probe_due: bool) -> Tuple[Optional[float], bool]:
        """Return (seconds to wait or None to admit now, whether the budget is exhausted)"""
        now = self._clock()

        if now < self._blocked_until:
            return self._blocked_until - now, False

        if self._state is None:
            if self._last_grant is None:
                return None, False
            gap = self._last_grant + self.min_request_interval - now
            return (gap, False) if gap > 0 else (None, False)

        if self._state.used + self._pending < self._state.limit:
            return None, False

        if self._retry_permit and self._pending == 0:
            self._retry_permit = False
            logger.debug(f"Admitting retry for {self.shop_domain} after throttling")
            return None, False

        if probe_due and self._pending == 0:
            logger.debug(
                f"Admitting probe request for {self.shop_domain} after {self._exhausted_backoff:.2f}s without updates"
            )
            return None, False

        return self._exhausted_backoff, True

    def _note_quiet_wait(self, waited: float) -> bool:
        """
        Record an exhausted wait that ended without any response.

        Returns:
            True if a probe request is now due
        """
        if waited >= self.backoff_max:
            return self.probe_when_idle
        # Concurrent waiters may have doubled it already
        if self._exhausted_backoff <= waited:
            self._exhausted_backoff = min(waited * 2, self.backoff_max)
        return False

    def _reserve(self) -> None:
        self._pending += 1
        self._last_grant = self._clock()

    def _signal_changed(self) -> None:
        self._changed.set()
        self._changed = asyncio.Event()

    async def acquire(self, cancellation: Optional[CancellationToken] = None) -> None:
        """
        Wait until a request may be sent, then reserve one unit of budget.

        Raises:
            RequestCancelledError: If the cancellation token fires while waiting
        """
        probe_due = False

        while True:
            async with self._lock:
                delay, exhausted = self._admission_delay(probe_due)
                if delay is None:
                    self._reserve()
                    return
                changed = self._changed

            if exhausted:
                logger.debug(
                    f"Call budget exhausted for {self.shop_domain} ({self._state.used}/{self._state.limit}, "
                    f"{self._pending} pending), backing off {delay:.2f}s"
                )
            fired = await wait_for_event(changed, delay, cancellation)

            probe_due = False
            if exhausted and not fired:
                async with self._lock:
                    probe_due = self._note_quiet_wait(delay)

    # ========== Reconciliation ==========

    def _apply_response(self, headers: Optional[Mapping[str, Any]]) -> Optional[RateLimitState]:
        self._pending = max(0, self._pending - 1)

        state = parse_call_limit_header(get_header(headers, CALL_LIMIT_HEADER))
        if state is not None:
            if state.used > state.limit:
                logger.debug(f"Server reported used above limit for {self.shop_domain}: {state.used}/{state.limit}")
            self._state = state
            if not state.exhausted:
                self._throttle_backoff = self.backoff_initial
                self._exhausted_backoff = self.backoff_initial
                self._retry_permit = False

        self._signal_changed()
        return state

    async def reconcile(self, headers: Optional[Mapping[str, Any]]) -> Optional[RateLimitState]:
        """
        Release one reservation and adopt the budget reported in `headers`.

        A response without the call limit header leaves the known state as it
        was (or unknown, if nothing was ever reported).
        """
        async with self._lock:
            return self._apply_response(headers)

    async def release(self) -> None:
        """Release a reservation whose exchange produced no response"""
        async with self._lock:
            self._pending = max(0, self._pending - 1)
            self._signal_changed()

    async def note_rejected(self, retry_after: Optional[float] = None) -> float:
        """
        Block the shop context after a 429.

        Returns:
            The number of seconds new requests are held back
        """
        async with self._lock:
            if retry_after is not None:
                delay = max(0.0, retry_after)
            else:
                delay = self._throttle_backoff
                self._throttle_backoff = min(self._throttle_backoff * 2, self.backoff_max)
            self._blocked_until = max(self._blocked_until, self._clock() + delay)
            self._retry_permit = True
            logger.warning(f"Shop {self.shop_domain} throttled by server, holding requests for {delay:.2f}s")
            return delay
