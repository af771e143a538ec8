"""Retry delay calculation."""

import math
import random

from symphony.models import BackoffStrategy, RetryPolicy

JITTER_RATIO = 0.15


def calculate_backoff(attempt_index: int, policy: RetryPolicy) -> int:
    """Delay in milliseconds before retry *attempt_index* (0-based).

    ``fixed`` always waits ``initial_delay_ms``; ``exponential`` doubles per
    attempt up to ``max_delay_ms``; ``exponential-jitter`` adds up to
    +/-15% uniform noise to the exponential value and is clamped so it
    never exceeds ``max_delay_ms``.
    """
    if policy.backoff_strategy == BackoffStrategy.FIXED:
        return policy.initial_delay_ms

    base = min(policy.initial_delay_ms * (2 ** attempt_index),
               policy.max_delay_ms)
    if policy.backoff_strategy == BackoffStrategy.EXPONENTIAL:
        return int(base)

    jitter = (random.random() - 0.5) * 2 * JITTER_RATIO * base
    return min(int(math.floor(base + jitter)), policy.max_delay_ms)
