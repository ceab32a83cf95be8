from __future__ import annotations

"""
Retry Policy.

Classifies the error of a single attempt into a RetryDecision. Only the
transient server conditions (rate limiting and conflicts) are retried, with
a fixed delay and a fixed attempt ceiling. The policy holds no mutable
state and is safe to share between worker threads.
"""

from dataclasses import dataclass
from typing import FrozenSet

from pcli2.domain.constants import MAX_ATTEMPTS, RETRY_DELAY_SECONDS, RETRYABLE_STATUS_CODES
from pcli2.domain.errors import RemoteError
from pcli2.domain.models import Fatal, RetryAfter, RetryDecision

_FATAL = Fatal()


@dataclass(frozen=True)
class RetryPolicy:
    """
    Fixed-delay retry policy.

    Attributes:
        max_attempts: Total attempts allowed per work item (first call included).
        delay: Seconds to wait between attempts.
        retryable_statuses: HTTP statuses considered transient.
    """
    max_attempts: int = MAX_ATTEMPTS
    delay: float = RETRY_DELAY_SECONDS
    retryable_statuses: FrozenSet[int] = RETRYABLE_STATUS_CODES

    def classify(self, error: BaseException) -> RetryDecision:
        """
        Decide whether the failed attempt may be repeated.

        Args:
            error: The exception raised by the attempt.

        Returns:
            RetryDecision: RetryAfter(delay) for transient remote errors,
                           Fatal() for everything else.
        """
        status = getattr(error, "status_code", None)
        if isinstance(error, RemoteError) and status in self.retryable_statuses:
            return RetryAfter(self.delay)
        return _FATAL

    def should_retry(self, decision: RetryDecision, attempt: int) -> bool:
        """Whether another attempt is allowed after `attempt` attempts."""
        return isinstance(decision, RetryAfter) and attempt < self.max_attempts


DEFAULT_RETRY_POLICY = RetryPolicy()


def classify(error: BaseException) -> RetryDecision:
    """Classify an error with the default policy."""
    return DEFAULT_RETRY_POLICY.classify(error)
