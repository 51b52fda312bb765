from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, TypeVar

from .errors import RateLimitError

if TYPE_CHECKING:
    from .config_schema import RetryPolicyConfig

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Exponential backoff retry policy.

    - max_attempts counts the initial attempt (max_attempts=3 => 1 try + 2 retries).
    - base_delay_seconds is the first delay after the first failure.
    - multiplier scales each following delay (delay_n = base * multiplier**(n-1)).
    - max_delay_seconds caps a single delay (None disables the cap).
    - jitter_ratio adds multiplicative jitter in [1-jitter, 1+jitter].
    """

    max_attempts: int = 6
    base_delay_seconds: float = 0.5
    multiplier: float = 2.0
    max_delay_seconds: float | None = 20.0
    jitter_ratio: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if self.multiplier < 0:
            raise ValueError("multiplier must be >= 0")
        if self.max_delay_seconds is not None:
            if self.max_delay_seconds < 0:
                raise ValueError("max_delay_seconds must be >= 0")
            if self.max_delay_seconds < self.base_delay_seconds:
                raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0 and 1")


@dataclass(frozen=True)
class RetryEvent:
    operation: str
    failure_attempt: int
    next_attempt: int
    max_attempts: int

    delay_seconds: float
    reason: str | None

    error_type: str
    error_message: str


IsRetryableFn = Callable[[BaseException], tuple[bool, str | None]]
OnRetryFn = Callable[[RetryEvent], None]
SleepFn = Callable[[float], None]


def compute_backoff_seconds(failure_attempt: int, cfg: RetryConfig) -> float:
    # failure_attempt=1 => base delay.
    exponent = max(0, int(failure_attempt) - 1)
    delay = max(0.0, float(cfg.base_delay_seconds * (cfg.multiplier**exponent)))
    if cfg.max_delay_seconds is not None:
        delay = min(float(cfg.max_delay_seconds), delay)
    return delay


def _apply_jitter(delay: float, cfg: RetryConfig) -> float:
    d = max(0.0, float(delay))
    if d == 0.0 or cfg.jitter_ratio <= 0:
        return d
    factor = random.uniform(1.0 - cfg.jitter_ratio, 1.0 + cfg.jitter_ratio)
    return max(0.0, d * factor)


def call_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig,
    is_retryable: IsRetryableFn,
    operation: str,
    on_retry: OnRetryFn | None = None,
    on_exhausted: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
) -> T:
    """
    Call fn() with retries on retryable failures.

    Non-retryable failures propagate immediately. After max_attempts retryable
    failures the last one propagates.
    """
    op = (operation or "").strip() or "operation"
    sleeper = sleep_fn or time.sleep

    for attempt in range(1, int(cfg.max_attempts) + 1):
        try:
            return fn()
        except Exception as exc:
            retryable, reason = is_retryable(exc)
            if not retryable:
                raise

            delay = 0.0
            if attempt < int(cfg.max_attempts):
                delay = _apply_jitter(compute_backoff_seconds(attempt, cfg), cfg)

            event = RetryEvent(
                operation=op,
                failure_attempt=int(attempt),
                next_attempt=int(attempt) + 1,
                max_attempts=int(cfg.max_attempts),
                delay_seconds=float(delay),
                reason=reason,
                error_type=type(exc).__name__,
                error_message=(str(exc) or "").strip(),
            )

            if attempt >= int(cfg.max_attempts):
                if on_exhausted is not None:
                    on_exhausted(event)
                raise

            if on_retry is not None:
                on_retry(event)

            if delay > 0:
                sleeper(float(delay))

    # Unreachable, but keeps typing happy.
    raise RuntimeError(f"Retry loop exited unexpectedly for operation={op}")


def is_rate_limited(exc: BaseException) -> tuple[bool, str | None]:
    if isinstance(exc, RateLimitError):
        return True, "rate_limited"
    return False, None


def rate_limit_retry_config(policy: "RetryPolicyConfig") -> RetryConfig:
    """
    Translate the millisecond policy into a RetryConfig.

    max_retries counts retries, so the operation runs at most max_retries + 1 times.
    Defaults give delays of 5s, 10s, 20s.
    """
    return RetryConfig(
        max_attempts=int(policy.max_retries) + 1,
        base_delay_seconds=float(policy.backoff_delay_ms) / 1000.0,
        multiplier=float(policy.backoff_multiplier),
        max_delay_seconds=None,
        jitter_ratio=0.0,
    )


def with_retry(
    fn: Callable[[], T],
    policy: "RetryPolicyConfig",
    *,
    operation: str,
    on_retry: OnRetryFn | None = None,
    on_exhausted: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
) -> T:
    """Run fn(), retrying only RateLimitError with exponential backoff."""
    return call_with_retries(
        fn,
        cfg=rate_limit_retry_config(policy),
        is_retryable=is_rate_limited,
        operation=operation,
        on_retry=on_retry,
        on_exhausted=on_exhausted,
        sleep_fn=sleep_fn,
    )


def apply_request_delay(policy: "RetryPolicyConfig", *, sleep_fn: SleepFn | None = None) -> float:
    seconds = max(0.0, float(policy.request_delay_ms) / 1000.0)
    if seconds > 0:
        (sleep_fn or time.sleep)(seconds)
    return seconds
