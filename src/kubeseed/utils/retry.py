# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import time
import functools
import logging
from typing import Callable, Optional, TypeVar

from kubeseed.errors import RetryError

log = logging.getLogger("kubeseed")

T = TypeVar("T")


def retry(
    *,
    retries: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
):
    """
    Retry decorator for idempotent operations.

    retries: number of attempts
    delay: seconds between attempts
    retry_on: exception types to retry
    on_retry: callback(attempt, exception)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    time.sleep(delay)
            raise RetryError(f"{fn.__name__} failed after {retries} retries") from last_exc
        return wrapper
    return decorator


def with_retry(
    attempts: int,
    body: Callable[[], T],
    reset: Optional[Callable[[int, Exception], None]] = None,
    *,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    delay: float = 0.0,
    label: str = "operation",
) -> T:
    """
    Run ``body`` up to ``attempts`` times.

    ``reset(attempt, exc)`` runs between a failed attempt and the next one,
    never before the first attempt and never after the last. Exceptions not
    listed in ``retry_on`` abort immediately. When the attempts are exhausted
    the last exception is re-raised unchanged so callers can tell a mismatch
    from a transport error.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            return body()
        except retry_on as exc:
            if attempt == attempts:
                log.debug("%s failed on final attempt %d/%d", label, attempt, attempts)
                raise
            log.warning("%s failed (attempt %d/%d): %s", label, attempt, attempts, exc)
            if reset is not None:
                reset(attempt, exc)
            if delay:
                time.sleep(delay)

    raise AssertionError("unreachable")
