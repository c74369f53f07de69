"""
Unit tests for the retry policy
"""

import random

import pytest

from ShopifyCatalog.exceptions import ErrorKind
from ShopifyCatalog.services.retry_policy import RetryConfig, RetryDecision, RetryPolicy

RETRYABLE = [ErrorKind.TRANSPORT, ErrorKind.RATE_LIMITED, ErrorKind.SERVER]
TERMINAL = [ErrorKind.CLIENT, ErrorKind.MALFORMED, ErrorKind.CANCELLED]


def attempts_until_give_up(policy, kind, idempotent=True):
    attempt = 1
    while True:
        decision = policy.decide(attempt, kind, idempotent=idempotent)
        if not decision.retry:
            return attempt, decision
        attempt += 1


class TestRetryConfig:
    """Test configuration validation"""

    def test_defaults(self):
        config = RetryConfig()

        assert config.max_attempts == 5
        assert ErrorKind.RATE_LIMITED in config.retry_on
        assert ErrorKind.RATE_LIMITED not in config.retry_non_idempotent_on

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"jitter": 1.5}])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)


class TestRetryPolicy:
    """Test retry decisions"""

    @pytest.mark.parametrize("kind", RETRYABLE)
    @pytest.mark.parametrize("max_attempts", [1, 3, 5])
    def test_retryable_kinds_respect_attempt_cap(self, kind, max_attempts):
        policy = RetryPolicy(RetryConfig(max_attempts=max_attempts))

        attempts, decision = attempts_until_give_up(policy, kind)

        assert attempts == max_attempts
        assert decision.exhausted

    @pytest.mark.parametrize("kind", TERMINAL)
    def test_terminal_kinds_get_exactly_one_attempt(self, kind):
        attempts, decision = attempts_until_give_up(RetryPolicy(), kind)

        assert attempts == 1
        assert not decision.exhausted

    def test_non_idempotent_requests_not_retried_after_rate_limit(self):
        policy = RetryPolicy()

        assert not policy.decide(1, ErrorKind.RATE_LIMITED, idempotent=False).retry
        assert policy.decide(1, ErrorKind.TRANSPORT, idempotent=False).retry
        assert policy.decide(1, ErrorKind.SERVER, idempotent=False).retry

    def test_backoff_grows_and_is_capped(self):
        policy = RetryPolicy(RetryConfig(base_delay=0.5, max_delay=3.0, jitter=0.0))

        delays = [policy.backoff_delay(attempt) for attempt in range(1, 6)]

        assert delays == [0.5, 1.0, 2.0, 3.0, 3.0]

    def test_jitter_stays_within_bounds(self, seeded_random):
        policy = RetryPolicy(RetryConfig(base_delay=1.0, jitter=0.5), random_source=seeded_random)

        for _ in range(100):
            assert 0.5 <= policy.backoff_delay(1) <= 1.0

    def test_seeded_random_source_is_deterministic(self):
        first = RetryPolicy(random_source=random.Random(7))
        second = RetryPolicy(random_source=random.Random(7))

        assert [first.backoff_delay(n) for n in range(1, 5)] == [second.backoff_delay(n) for n in range(1, 5)]

    def test_retry_after_overrides_backoff(self):
        decision = RetryPolicy().decide(1, ErrorKind.RATE_LIMITED, retry_after=2.5)

        assert decision == RetryDecision(retry=True, delay=2.5, reason="server Retry-After")

    def test_throttle_delay_used_without_retry_after(self):
        decision = RetryPolicy().decide(2, ErrorKind.RATE_LIMITED, throttle_delay=1.25)

        assert decision.retry
        assert decision.delay == 1.25

    def test_retry_after_ignored_for_other_kinds(self):
        policy = RetryPolicy(RetryConfig(base_delay=0.1, jitter=0.0))

        assert policy.decide(1, ErrorKind.SERVER, retry_after=60).delay == 0.1
