"""
Timeout and Retry Helpers.

``run_with_timeout`` races a blocking call against a deadline:
first-settled-wins.  When the deadline wins, the call keeps running on
its own daemon thread but nobody is waiting for it any more; its
eventual result is only logged, never returned.

``retry_operation`` re-runs a callable a bounded number of times with a
fixed pause, skipping the retries for failures that are not transient.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, Optional, TypeVar

from contact_groups.errors import (
    AccessDeniedError,
    InputValidationError,
    OperationTimeoutError,
)
from contact_groups.logger import StructuredLogger

__all__ = [
    "NON_RETRYABLE_ERRORS",
    "RetryAborted",
    "is_retryable",
    "retry_operation",
    "run_with_timeout",
]

T = TypeVar("T")

# Policy denial and bad input will fail identically on every attempt.
NON_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    AccessDeniedError,
    InputValidationError,
)


class RetryAborted(Exception):
    """The retry pause was interrupted (owner is shutting down)."""


def is_retryable(exc: BaseException) -> bool:
    """``True`` unless *exc* is one of :data:`NON_RETRYABLE_ERRORS`."""
    return not isinstance(exc, NON_RETRYABLE_ERRORS)


def run_with_timeout(
    operation: Callable[[], T],
    timeout_s: float,
    *,
    operation_name: str,
    logger: Optional[StructuredLogger] = None,
    timeout_error: type[OperationTimeoutError] = OperationTimeoutError,
) -> T:
    """Run *operation* on a fresh daemon thread and wait at most *timeout_s* seconds.

    Each call gets its own thread, so an abandoned call that never
    returns holds only that thread and cannot delay later calls.

    Raises
    ------
    OperationTimeoutError
        (or *timeout_error*) when the deadline elapses first.  The
        abandoned call's late outcome is logged at debug level.
    Exception
        Whatever *operation* raised, if it settled in time.
    """
    future: Future[T] = Future()
    future.set_running_or_notify_cancel()

    def _run() -> None:
        try:
            result = operation()
        except BaseException as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)

    threading.Thread(target=_run, name=f"timed-{operation_name}", daemon=True).start()
    try:
        return future.result(timeout=timeout_s)
    except FutureTimeout:
        if logger is not None:
            future.add_done_callback(
                lambda done: _log_abandoned(done, operation_name, logger)
            )
        raise timeout_error(
            f"{operation_name} did not complete within {timeout_s:g}s"
        ) from None


def _log_abandoned(future: Future[object], operation_name: str, logger: StructuredLogger) -> None:
    exc = future.exception()
    logger.debug(
        "Abandoned %s settled after its deadline (%s); result discarded.",
        operation_name,
        f"error: {exc}" if exc is not None else "success",
    )


def retry_operation(
    operation: Callable[[], T],
    *,
    attempts: int,
    delay_s: float,
    operation_name: str,
    logger: Optional[StructuredLogger] = None,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    wait: Optional[Callable[[float], bool]] = None,
) -> T:
    """Call *operation* up to *attempts* times with *delay_s* between tries.

    Parameters
    ----------
    attempts:
        Total number of calls, including the first (minimum 1).
    should_retry:
        Predicate deciding whether a failure is worth another attempt;
        a ``False`` re-raises immediately.
    wait:
        Pause implementation.  Receives the delay and returns ``True``
        when the wait was interrupted, in which case :class:`RetryAborted`
        is raised.  Defaults to ``time.sleep``.

    Raises
    ------
    Exception
        The last failure once attempts are exhausted, or the first
        non-retryable one.
    RetryAborted
        When *wait* reports an interruption.
    """
    total = max(1, attempts)
    for attempt in range(1, total + 1):
        try:
            return operation()
        except Exception as exc:
            if not should_retry(exc) or attempt == total:
                raise
            if logger is not None:
                logger.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %gs.",
                    operation_name,
                    attempt,
                    total,
                    exc,
                    delay_s,
                )
            if wait is None:
                time.sleep(delay_s)
            elif wait(delay_s):
                raise RetryAborted(f"{operation_name} retry cancelled") from exc

    raise AssertionError("unreachable")  # pragma: no cover
