"""
Retry helpers with exponential backoff and full jitter.

Each wait is drawn from U(0, cap) with cap = min(base * 2**(attempt-1),
max_delay). Only an async variant is provided; every network path in the SDK
is async.

Example
-------
from cw_sdk.utils.retry import aretry_call

result = await aretry_call(
    transport.request, "status", {},
    retries=3, base=0.2, max_delay=2.0,
    exceptions=RpcError, retry_if=lambda e: e.transient,
)

Notes
-----
- Only exceptions matching `exceptions` (and `retry_if`, when given) are
  retried. Cancellation is a BaseException and is never caught here.
- `on_retry` receives (attempt_index, exception, sleep_seconds).
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import (Any, Awaitable, Callable, Optional, Sequence, Tuple, Type,
                    TypeVar, Union)

__all__ = [
    "RetryError",
    "backoff_delay",
    "aretry_call",
]

log = logging.getLogger(__name__)

T = TypeVar("T")


class RetryError(RuntimeError):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, last_exception: BaseException, attempts: int) -> None:
        super().__init__(f"exhausted after {attempts} attempts: {last_exception!r}")
        self.last_exception = last_exception
        self.attempts = attempts


def backoff_delay(attempt: int, *, base: float, max_delay: float) -> float:
    """
    Backoff delay (in seconds) for the given attempt (1-based).

    - base: initial backoff (seconds), e.g. 0.1
    - max_delay: maximum per-attempt delay (cap)
    """
    attempt = max(attempt, 1)
    cap = min(base * (2 ** (attempt - 1)), max_delay)
    return max(0.0, random.uniform(0.0, cap))


def _should_retry(
    exc: Exception,
    exceptions: Tuple[Type[Exception], ...],
    retry_if: Optional[Callable[[Exception], bool]],
) -> bool:
    if not isinstance(exc, exceptions):
        return False
    if retry_if is None:
        return True
    return bool(retry_if(exc))


async def aretry_call(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    retries: int = 3,
    base: float = 0.2,
    max_delay: float = 3.0,
    exceptions: Union[Type[Exception], Sequence[Type[Exception]]] = Exception,
    retry_if: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    **kwargs: Any,
) -> T:
    """
    Await `fn(*args, **kwargs)`, retrying up to `retries` times.

    `retries=N` means at most N+1 attempts. Raises RetryError (chained to the
    last exception) once attempts are exhausted; exceptions that are not
    retryable propagate unchanged.
    """
    if isinstance(exceptions, type):
        exc_types: Tuple[Type[Exception], ...] = (exceptions,)
    else:
        exc_types = tuple(exceptions)

    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn(*args, **kwargs)
        except Exception as exc:  # noqa: BLE001
            if not _should_retry(exc, exc_types, retry_if):
                raise
            if attempt > retries:
                raise RetryError(exc, attempts=attempt) from exc

            sleep_s = backoff_delay(attempt, base=base, max_delay=max_delay)
            log.debug("retry %d/%d in %.3fs after %r", attempt, retries, sleep_s, exc)
            if on_retry is not None:
                on_retry(attempt, exc, sleep_s)

            await asyncio.sleep(sleep_s)
