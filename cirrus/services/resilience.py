"""Resilience utilities — retry with backoff, resubmit while a dependency is not ready."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional

from ..errors import NotReadyExhausted, TransientNotReady

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Retry with backoff
# ---------------------------------------------------------------------------


def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable:
    """Decorator: retry a function with backoff.

    Args:
        max_attempts: Total attempts (including first try).
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay cap in seconds.
        backoff_factor: Multiplier applied to delay each retry; 1.0 keeps it fixed.
        jitter: Add random jitter (±25%) to each delay.
        retryable_exceptions: Exception types that trigger retry.
        sleep: Called with each delay.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    def decorator(func: Callable) -> Callable:
        label = getattr(func, "__name__", repr(func))

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = base_delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    if attempt == max_attempts:
                        logger.error("%s failed after %d attempts: %s", label, max_attempts, e)
                        raise

                    actual_delay = delay
                    if jitter:
                        actual_delay *= 0.75 + random.random() * 0.5

                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %.1fs",
                        label, attempt, max_attempts, e, actual_delay,
                    )
                    sleep(actual_delay)
                    delay = min(delay * backoff_factor, max_delay)
        return wrapper
    return decorator


# ---------------------------------------------------------------------------
# Outer resubmit on "not ready"
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NotReadyPolicy:
    """Resubmit budget for a mutation that can fail while a dependency initialises.

    The poller's own timeout is the inner level; this is the outer one, which
    re-issues the original call. ``dependency_field`` names the declared field
    holding the dependency and the policy only applies when it is set. Unset
    ``attempts`` and ``delay`` fall back to the context's values.
    """

    dependency_field: str = ""
    attempts: Optional[int] = None
    delay: Optional[float] = None

    def applies(self, model: Any) -> bool:
        if not self.dependency_field:
            return True
        value = model.value_of(self.dependency_field)
        return value is not None and value != [] and value != ""

    def dependency(self, model: Any) -> str:
        if not self.dependency_field:
            return ""
        return f"{self.dependency_field} '{model.value_of(self.dependency_field)}'"


def resubmit_while_not_ready(
    fn: Callable[[], Any],
    attempts: int,
    delay: float,
    dependency: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Re-run ``fn`` after a fixed delay while it raises ``TransientNotReady``."""
    if attempts < 1:
        raise ValueError(f"not-ready attempts must be at least 1, got {attempts}")

    @retry(
        max_attempts=attempts,
        base_delay=delay,
        max_delay=delay,
        backoff_factor=1.0,
        jitter=False,
        retryable_exceptions=(TransientNotReady,),
        sleep=sleep,
    )
    def resubmit():
        return fn()

    try:
        return resubmit()
    except TransientNotReady as exc:
        raise NotReadyExhausted(dependency or exc.dependency or "dependency", attempts, exc) from exc
