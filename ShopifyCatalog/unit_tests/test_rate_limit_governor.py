"""
Unit tests for the per-shop rate-limit governor

Timing-sensitive tests use generous margins; the governor never sleeps
longer than the configured backoff.
"""

import asyncio

import pytest

from ShopifyCatalog.exceptions import RequestCancelledError
from ShopifyCatalog.services.cancellation import CancellationToken
from ShopifyCatalog.services.rate_limit_service import (
    CALL_LIMIT_HEADER,
    RateLimitGovernor,
    RateLimitState,
    get_header,
    parse_call_limit_header,
)


def call_limit(value):
    return {CALL_LIMIT_HEADER: value}


async def learn_state(governor, value):
    """Run one request through the governor that reports `value`"""
    await governor.acquire()
    await governor.reconcile(call_limit(value))


class TestCallLimitHeader:
    """Test parsing of the call limit header"""

    def test_parse(self):
        assert parse_call_limit_header("39/40") == RateLimitState(used=39, limit=40)
        assert parse_call_limit_header(" 2/80 ") == RateLimitState(used=2, limit=80)

    @pytest.mark.parametrize("value", [None, "", "40", "a/b", "3/0"])
    def test_unreadable_values(self, value):
        assert parse_call_limit_header(value) is None

    def test_used_may_exceed_limit(self):
        state = parse_call_limit_header("41/40")

        assert state.exhausted
        assert state.remaining == 0

    def test_header_lookup_is_case_insensitive(self):
        headers = {"x-shopify-shop-api-call-limit": "1/40"}

        assert get_header(headers, CALL_LIMIT_HEADER) == "1/40"
        assert get_header(None, CALL_LIMIT_HEADER) is None


@pytest.mark.asyncio
class TestRateLimitGovernor:
    """Test admission, reconciliation and throttling"""

    async def test_first_request_is_admitted_immediately(self):
        governor = RateLimitGovernor(min_request_interval=0)

        await asyncio.wait_for(governor.acquire(), timeout=0.5)

        assert governor.pending == 1
        assert governor.state is None

    async def test_reconcile_adopts_server_state(self):
        governor = RateLimitGovernor(min_request_interval=0)
        await governor.acquire()

        state = await governor.reconcile(call_limit("12/40"))

        assert state == RateLimitState(used=12, limit=40)
        assert governor.state == state
        assert governor.pending == 0

    async def test_response_without_header_keeps_known_state(self):
        governor = RateLimitGovernor(min_request_interval=0)
        await learn_state(governor, "12/40")
        await governor.acquire()

        assert await governor.reconcile({}) is None
        assert governor.state == RateLimitState(used=12, limit=40)
        assert governor.pending == 0

    async def test_latest_response_overwrites_state(self):
        governor = RateLimitGovernor(min_request_interval=0)
        await learn_state(governor, "30/40")
        await learn_state(governor, "4/40")

        assert governor.state == RateLimitState(used=4, limit=40)

    async def test_exhausted_budget_suspends_until_usage_drops(self):
        governor = RateLimitGovernor(min_request_interval=0)
        await learn_state(governor, "39/40")

        # One request fits and reports the bucket as full
        await asyncio.wait_for(governor.acquire(), timeout=0.5)
        await governor.reconcile(call_limit("40/40"))

        waiter = asyncio.ensure_future(governor.acquire())
        await asyncio.sleep(0.1)
        assert not waiter.done()

        # A response observed by another client sharing this governor
        await governor.reconcile(call_limit("39/40"))
        await asyncio.wait_for(waiter, timeout=0.5)

        assert governor.pending == 1

    async def test_in_flight_requests_count_against_budget(self):
        governor = RateLimitGovernor(min_request_interval=0)
        await learn_state(governor, "38/40")

        await governor.acquire()
        await governor.acquire()
        waiter = asyncio.ensure_future(governor.acquire())
        await asyncio.sleep(0.1)
        assert not waiter.done()

        await governor.release()
        await asyncio.wait_for(waiter, timeout=0.5)
        assert governor.pending == 2

    async def test_exhausted_budget_admits_nothing_without_a_response(self):
        governor = RateLimitGovernor()
        await learn_state(governor, "39/40")

        # The last unit of budget
        await asyncio.wait_for(governor.acquire(), timeout=0.5)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(governor.acquire(), timeout=1.8)
        assert governor.pending == 1

    async def test_exhausted_backoff_grows_and_holds_at_ceiling(self):
        governor = RateLimitGovernor(min_request_interval=0, backoff_initial=0.02, backoff_max=0.08)
        await learn_state(governor, "40/40")

        waiter = asyncio.ensure_future(governor.acquire())
        await asyncio.sleep(0.3)
        assert not waiter.done()
        assert governor.exhausted_backoff == pytest.approx(0.08)

        # A response that still reports a full bucket keeps the backoff
        await governor.reconcile(call_limit("40/40"))
        await asyncio.sleep(0.05)
        assert not waiter.done()
        assert governor.exhausted_backoff == pytest.approx(0.08)

        await governor.reconcile(call_limit("20/40"))
        await asyncio.wait_for(waiter, timeout=0.5)
        assert governor.exhausted_backoff == pytest.approx(0.02)

    async def test_probe_admitted_once_backoff_reaches_ceiling(self):
        governor = RateLimitGovernor(
            min_request_interval=0, backoff_initial=0.02, backoff_max=0.08, probe_when_idle=True
        )
        await learn_state(governor, "40/40")
        loop = asyncio.get_running_loop()

        start = loop.time()
        await asyncio.wait_for(governor.acquire(), timeout=1.0)
        # 0.02 + 0.04 + 0.08 before the first probe
        assert loop.time() - start >= 0.12
        assert governor.pending == 1

        # Only one probe at a time
        waiter = asyncio.ensure_future(governor.acquire())
        await asyncio.sleep(0.3)
        assert not waiter.done()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert governor.pending == 1

    async def test_backoff_persists_across_acquisitions_while_exhausted(self):
        governor = RateLimitGovernor(
            min_request_interval=0, backoff_initial=0.02, backoff_max=0.08, probe_when_idle=True
        )
        await learn_state(governor, "40/40")
        loop = asyncio.get_running_loop()

        waits = []
        for _ in range(3):
            start = loop.time()
            await asyncio.wait_for(governor.acquire(), timeout=1.0)
            waits.append(loop.time() - start)
            await governor.reconcile(call_limit("40/40"))

        # Later probes wait a full ceiling interval instead of restarting at 0.02
        assert waits[1] >= 0.07
        assert waits[2] >= 0.07
        assert governor.exhausted_backoff == pytest.approx(0.08)

    async def test_unknown_budget_spaces_requests(self):
        governor = RateLimitGovernor(min_request_interval=0.2)
        loop = asyncio.get_running_loop()

        start = loop.time()
        await governor.acquire()
        await governor.acquire()

        assert loop.time() - start >= 0.18

    async def test_rejection_holds_new_requests(self):
        governor = RateLimitGovernor(min_request_interval=0)
        loop = asyncio.get_running_loop()

        assert await governor.note_rejected(retry_after=0.2) == 0.2

        start = loop.time()
        await governor.acquire()
        assert loop.time() - start >= 0.15

    async def test_rejection_without_retry_after_backs_off_exponentially(self):
        governor = RateLimitGovernor(min_request_interval=0, backoff_initial=0.1, backoff_max=0.4)

        delays = [await governor.note_rejected() for _ in range(4)]
        assert delays == pytest.approx([0.1, 0.2, 0.4, 0.4])

        # A response with spare budget resets the backoff
        await governor.reconcile(call_limit("1/40"))
        assert governor.backoff_hint() == pytest.approx(0.1)

    async def test_one_request_admitted_after_rejection_expires(self):
        governor = RateLimitGovernor(min_request_interval=0, backoff_initial=5.0, backoff_max=5.0)
        await learn_state(governor, "40/40")
        loop = asyncio.get_running_loop()

        await governor.note_rejected(retry_after=0.1)

        start = loop.time()
        await asyncio.wait_for(governor.acquire(), timeout=0.5)
        assert loop.time() - start >= 0.08

        # The bucket is still reported full, so nobody else gets in
        waiter = asyncio.ensure_future(governor.acquire())
        await asyncio.sleep(0.2)
        assert not waiter.done()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert governor.pending == 1

    async def test_cancellation_aborts_wait(self):
        governor = RateLimitGovernor(min_request_interval=0, backoff_initial=5.0, backoff_max=5.0)
        await learn_state(governor, "40/40")
        token = CancellationToken()

        waiter = asyncio.ensure_future(governor.acquire(token))
        await asyncio.sleep(0.05)
        token.cancel("shutting down")

        with pytest.raises(RequestCancelledError) as exc_info:
            await asyncio.wait_for(waiter, timeout=0.5)

        assert exc_info.value.reason == "shutting down"
        assert governor.pending == 0

    async def test_budget_never_exceeded_by_concurrent_requests(self):
        governor = RateLimitGovernor(min_request_interval=0, backoff_initial=1.0, backoff_max=1.0)
        await learn_state(governor, "0/5")
        in_flight = 0
        peak = 0

        async def worker():
            nonlocal in_flight, peak
            await governor.acquire()
            in_flight += 1
            peak = max(peak, in_flight)
            assert governor.state.used + governor.pending <= governor.state.limit
            await asyncio.sleep(0.01)
            in_flight -= 1
            await governor.reconcile(call_limit("0/5"))

        await asyncio.wait_for(asyncio.gather(*(worker() for _ in range(20))), timeout=5.0)

        assert peak <= 5
        assert governor.pending == 0

    async def test_governors_are_independent_per_shop(self):
        first = RateLimitGovernor("first.myshopify.com", min_request_interval=0, backoff_initial=5.0, backoff_max=5.0)
        second = RateLimitGovernor("second.myshopify.com", min_request_interval=0)
        await learn_state(first, "40/40")

        await asyncio.wait_for(second.acquire(), timeout=0.5)
        assert second.pending == 1
