"""
Cancellation Tokens

A CancellationToken is handed to a logical request so the caller can abort
it. Waits (rate-limit throttling, retry backoff) watch the token and stop as
soon as it is cancelled, before any further HTTP exchange is issued.
"""

import asyncio
import logging
from typing import Optional

from ..exceptions import RequestCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation signal for one or more logical requests"""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.debug(f"Cancellation requested: {reason or 'no reason given'}")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelledError(reason=self.reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """Sleep for `delay` seconds unless cancelled first."""
        self.raise_if_cancelled()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

    async def wait_for_event(self, event: asyncio.Event, timeout: Optional[float]) -> bool:
        """
        Wait until `event` is set, `timeout` elapses or the token is cancelled.

        Returns:
            True if the event fired, False on timeout

        Raises:
            RequestCancelledError: If the token was cancelled while waiting
        """
        self.raise_if_cancelled()
        event_waiter = asyncio.ensure_future(event.wait())
        cancel_waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {event_waiter, cancel_waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            event_waiter.cancel()
            cancel_waiter.cancel()
        self.raise_if_cancelled()
        return event.is_set()


async def wait_for_event(event: asyncio.Event, timeout: Optional[float],
                         cancellation: Optional[CancellationToken] = None) -> bool:
    """Wait on an event with an optional timeout and cancellation token"""
    if cancellation is not None:
        return await cancellation.wait_for_event(event, timeout)
    try:
        await asyncio.wait_for(event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        return False
    return True


async def cancellable_sleep(delay: float, cancellation: Optional[CancellationToken] = None) -> None:
    if cancellation is not None:
        await cancellation.sleep(delay)
    elif delay > 0:
        await asyncio.sleep(delay)
