"""Tests for the timeout race and the retry policy."""

import threading
from unittest.mock import MagicMock

import pytest

from contact_groups.errors import (
    AccessDeniedError,
    ConnectivityError,
    InputValidationError,
    OperationTimeoutError,
    RequestTimedOutError,
)
from contact_groups.utils.concurrency import RetryAborted, retry_operation, run_with_timeout


class TestRunWithTimeout:
    def test_returns_result_when_settled_first(self):
        assert run_with_timeout(lambda: 42, 1.0, operation_name="answer") == 42

    def test_propagates_operation_error(self):
        def _fail():
            raise ConnectivityError("down")

        with pytest.raises(ConnectivityError):
            run_with_timeout(_fail, 1.0, operation_name="fail")

    def test_deadline_wins(self, logger):
        release = threading.Event()
        try:
            with pytest.raises(OperationTimeoutError, match="slow call did not complete"):
                run_with_timeout(
                    lambda: release.wait(5), 0.05, operation_name="slow call", logger=logger,
                )
        finally:
            release.set()

    def test_custom_timeout_error(self):
        release = threading.Event()
        try:
            with pytest.raises(RequestTimedOutError):
                run_with_timeout(
                    lambda: release.wait(5), 0.05,
                    operation_name="sign up", timeout_error=RequestTimedOutError,
                )
        finally:
            release.set()

    def test_abandoned_calls_do_not_delay_later_ones(self):
        release = threading.Event()
        try:
            for _ in range(3):
                with pytest.raises(OperationTimeoutError):
                    run_with_timeout(lambda: release.wait(5), 0.05, operation_name="hung call")

            assert run_with_timeout(lambda: "ok", 1.0, operation_name="healthy call") == "ok"
        finally:
            release.set()


class TestRetryOperation:
    def test_retries_transient_failure(self):
        operation = MagicMock(side_effect=[ConnectivityError("blip"), "ok"])
        pauses = []

        result = retry_operation(
            operation, attempts=2, delay_s=1.0, operation_name="op",
            wait=lambda delay: pauses.append(delay) or False,
        )

        assert result == "ok"
        assert operation.call_count == 2
        assert pauses == [1.0]

    def test_retries_timeouts(self):
        operation = MagicMock(side_effect=[OperationTimeoutError("late"), "ok"])
        assert retry_operation(operation, attempts=2, delay_s=0, operation_name="op") == "ok"

    @pytest.mark.parametrize("error", [AccessDeniedError("denied"), InputValidationError("bad")])
    def test_never_retries_policy_or_validation_failures(self, error):
        operation = MagicMock(side_effect=error)
        with pytest.raises(type(error)):
            retry_operation(operation, attempts=3, delay_s=0, operation_name="op")
        assert operation.call_count == 1

    def test_raises_last_error_when_exhausted(self):
        operation = MagicMock(side_effect=[ConnectivityError("one"), ConnectivityError("two")])
        with pytest.raises(ConnectivityError, match="two"):
            retry_operation(operation, attempts=2, delay_s=0, operation_name="op")

    def test_interrupted_wait_aborts(self):
        operation = MagicMock(side_effect=ConnectivityError("blip"))
        with pytest.raises(RetryAborted):
            retry_operation(
                operation, attempts=3, delay_s=10, operation_name="op", wait=lambda delay: True,
            )
        assert operation.call_count == 1
