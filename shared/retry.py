"""
Backoff helpers for callers that wait on shared state.

The store adapter never retries on its own; callers that want to poll
(for example a waiter on a distributed lock) build their delays here.
"""

import random
from typing import Iterator


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 backoff_strategy: str = "exponential"):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay before retry attempt ``attempt`` (1-based)."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    elif config.backoff_strategy == "fixed":
        delay = config.base_delay
    else:
        delay = config.base_delay

    # Apply max delay cap
    delay = min(delay, config.max_delay)

    # Add jitter if enabled
    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        jitter = random.uniform(-jitter_amount, jitter_amount)
        delay += jitter

    return max(0.0, delay)


def backoff_delays(config: RetryConfig) -> Iterator[float]:
    """Yield one delay per attempt, ``config.max_attempts`` in total."""
    for attempt in range(1, config.max_attempts + 1):
        yield calculate_delay(attempt, config)
