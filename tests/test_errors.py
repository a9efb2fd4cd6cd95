"""Tests for backend error classification."""

import httpx

from conftest import api_error
from contact_groups.errors import (
    AccessDeniedError,
    ConnectivityError,
    InputValidationError,
    NotFoundError,
    OperationTimeoutError,
    classify_backend_error,
)
from contact_groups.models.enums import ErrorKind


def test_not_found_code():
    error = classify_backend_error(api_error("PGRST116"), "fetch profile")
    assert isinstance(error, NotFoundError)
    assert error.kind == ErrorKind.NOT_FOUND
    assert error.message.startswith("fetch profile: ")


def test_access_denied_is_never_masked_as_not_found():
    for code in ("42501", "PGRST301"):
        error = classify_backend_error(api_error(code, "permission denied"))
        assert isinstance(error, AccessDeniedError)


def test_unknown_api_code_is_connectivity():
    assert isinstance(classify_backend_error(api_error("XX000")), ConnectivityError)


def test_transport_timeout():
    error = classify_backend_error(httpx.ReadTimeout("slow"))
    assert isinstance(error, OperationTimeoutError)


def test_transport_failure():
    error = classify_backend_error(httpx.ConnectError("refused"))
    assert isinstance(error, ConnectivityError)


def test_auth_api_rejection_uses_status():
    class FakeAuthError(Exception):
        def __init__(self, message, status):
            super().__init__(message)
            self.message = message
            self.status = status

    rejected = classify_backend_error(FakeAuthError("User already registered", 422))
    assert isinstance(rejected, InputValidationError)
    assert rejected.message == "User already registered"
    assert isinstance(classify_backend_error(FakeAuthError("nope", 403)), AccessDeniedError)


def test_classified_errors_pass_through():
    original = NotFoundError("gone")
    assert classify_backend_error(original) is original
