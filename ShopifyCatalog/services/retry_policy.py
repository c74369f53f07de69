"""
Retry Policy

Decides, for each failed attempt of a logical request, whether to try again
and how long to wait first. The policy performs no I/O; its only state is the
random source used for jitter, which tests can seed.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from ..exceptions import ErrorKind

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""

    max_attempts: int = 5  # Total attempts, including the first
    base_delay: float = 0.5  # Initial delay in seconds
    max_delay: float = 30.0  # Maximum delay in seconds
    backoff_factor: float = 2.0  # Exponential backoff multiplier
    jitter: float = 0.5  # Fraction of each delay that is randomized
    retry_on: FrozenSet[ErrorKind] = field(
        default_factory=lambda: frozenset({ErrorKind.TRANSPORT, ErrorKind.RATE_LIMITED, ErrorKind.SERVER})
    )
    # Kinds safe to retry when the server may have applied a mutation
    retry_non_idempotent_on: FrozenSet[ErrorKind] = field(
        default_factory=lambda: frozenset({ErrorKind.TRANSPORT, ErrorKind.SERVER})
    )

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be between 0 and 1")


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of RetryPolicy.decide()"""

    retry: bool
    delay: float = 0.0
    exhausted: bool = False
    reason: str = ""

    @classmethod
    def retry_after(cls, delay: float, reason: str) -> "RetryDecision":
        return cls(retry=True, delay=max(0.0, delay), reason=reason)

    @classmethod
    def give_up(cls, reason: str, exhausted: bool = False) -> "RetryDecision":
        return cls(retry=False, exhausted=exhausted, reason=reason)


@dataclass
class AttemptRecord:
    """Bookkeeping for one logical request's retry loop"""

    attempt: int = 0
    last_error_kind: Optional[ErrorKind] = None
    delay: float = 0.0


class RetryPolicy:
    """Exponential backoff with jitter over a capped number of attempts."""

    def __init__(self, config: Optional[RetryConfig] = None, random_source: Optional[random.Random] = None):
        self.config = config or RetryConfig()
        self._random = random_source or random.Random()

    def backoff_delay(self, attempt_number: int) -> float:
        """Jittered delay before the attempt following `attempt_number`"""
        cfg = self.config
        delay = min(cfg.max_delay, cfg.base_delay * (cfg.backoff_factor ** max(0, attempt_number - 1)))
        if cfg.jitter:
            delay = self._random.uniform(delay * (1.0 - cfg.jitter), delay)
        return delay

    def decide(
        self,
        attempt_number: int,
        error_kind: ErrorKind,
        retry_after: Optional[float] = None,
        idempotent: bool = True,
        throttle_delay: Optional[float] = None,
    ) -> RetryDecision:
        """
        Decide whether a failed attempt should be retried.

        Args:
            attempt_number: 1-based number of the attempt that just failed
            error_kind: Category of the failure
            retry_after: Server-provided Retry-After, in seconds
            idempotent: Whether repeating the request cannot duplicate a mutation
            throttle_delay: Governor backoff, used for 429s without Retry-After

        Returns:
            RetryDecision; `exhausted` is set when only the attempt cap stopped a retry
        """
        allowed = self.config.retry_on if idempotent else self.config.retry_non_idempotent_on
        if error_kind not in allowed:
            return RetryDecision.give_up(f"{error_kind.value} errors are not retried")

        if attempt_number >= self.config.max_attempts:
            return RetryDecision.give_up(f"max attempts ({self.config.max_attempts}) reached", exhausted=True)

        if error_kind is ErrorKind.RATE_LIMITED:
            if retry_after is not None:
                return RetryDecision.retry_after(retry_after, "server Retry-After")
            if throttle_delay is not None:
                return RetryDecision.retry_after(throttle_delay, "rate limit backoff")

        return RetryDecision.retry_after(self.backoff_delay(attempt_number), f"{error_kind.value} backoff")
