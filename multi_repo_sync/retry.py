"""Bounded retry with a fixed delay."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional, TypeVar

from .errors import RetryExhaustedError, TransientReason, TransientRemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _transient_because(reason: TransientReason) -> Callable[[BaseException], bool]:
    def predicate(error: BaseException) -> bool:
        return isinstance(error, TransientRemoteError) and error.reason is reason

    return predicate


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    delay: float
    is_retryable: Callable[[BaseException], bool]
    delay_before_first: bool = False


# A freshly created branch may not be visible to the commit mutation yet.
COMMIT_POLICY = RetryPolicy(
    max_attempts=10,
    delay=1.0,
    is_retryable=_transient_because(TransientReason.CONSISTENCY_LAG),
)

# Pull request creation is throttled; every attempt waits first.
PULL_REQUEST_POLICY = RetryPolicy(
    max_attempts=5,
    delay=5.0,
    is_retryable=_transient_because(TransientReason.RATE_LIMITED),
    delay_before_first=True,
)


def execute_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    sleep_fn: Any = None,
    label: str = "operation",
) -> T:
    """Run an operation under a retry policy.

    Errors the policy does not consider retryable propagate unchanged on
    the first occurrence.

    Args:
        operation: Zero-argument callable performing one attempt
        policy: Attempt budget, delay and retryable-error predicate
        sleep_fn: Replacement for time.sleep, used by tests
        label: Name used in log lines and the exhaustion error

    Returns:
        The operation's result

    Raises:
        RetryExhaustedError: If every attempt failed with a retryable error
    """
    _sleep = sleep_fn if sleep_fn is not None else time.sleep
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        if policy.delay_before_first or attempt > 1:
            logger.info(f"Waiting {policy.delay:g}s before {label}")
            _sleep(policy.delay)
        logger.info(f"{label} attempt {attempt}/{policy.max_attempts}")
        try:
            return operation()
        except Exception as e:
            if not policy.is_retryable(e):
                raise
            last_error = e
            logger.info(f"{label} attempt {attempt} failed with a transient error: {e}")

    raise RetryExhaustedError(label, policy.max_attempts) from last_error
