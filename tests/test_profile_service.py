"""Tests for ProfileService: fetch-or-create, retry/timeout, update."""

import threading
from types import SimpleNamespace

import pytest

from conftest import PROFILE_COLUMNS, api_error, make_auth_user
from contact_groups.errors import (
    AccessDeniedError,
    ConnectivityError,
    InputValidationError,
    OperationTimeoutError,
    UpdateFailedError,
)
from contact_groups.models.profile import ProfileUpdate
from contact_groups.repositories.profile_repository import ProfileRepository
from contact_groups.services.profile_service import ProfileService

EXISTING = {
    "id": "user-a",
    "email": "a@example.com",
    "first_name": "Ada",
    "last_name": "Lovelace",
    "phone": "+14155551234",
    "phone_verified": True,
    "two_factor_enabled": False,
    "sms_notifications_enabled": True,
}


@pytest.fixture
def service(fake_supabase, db, config, logger):
    fake_supabase.create_table("profiles", PROFILE_COLUMNS)
    profile_service = ProfileService(
        repo=ProfileRepository(db=db, logger=logger), db=db, config=config, logger=logger,
    )
    return profile_service


def _signed_in_as(fake_supabase, user):
    fake_supabase.auth.get_user.return_value = SimpleNamespace(user=user)


class TestFetchProfile:
    def test_returns_existing_row(self, service, fake_supabase):
        fake_supabase.tables["profiles"].append(dict(EXISTING))

        profile = service.fetch_profile("user-a")

        assert profile.first_name == "Ada"
        assert profile.phone_verified is True
        assert fake_supabase.count_calls("profiles", "insert") == 0

    def test_creates_missing_row_from_signup_metadata(self, service, fake_supabase):
        _signed_in_as(
            fake_supabase,
            make_auth_user("user-a", "a@example.com", first_name="Ada", last_name="Lovelace",
                           phone="+14155551234"),
        )

        profile = service.fetch_profile("user-a")

        assert (profile.first_name, profile.last_name) == ("Ada", "Lovelace")
        assert profile.phone == "+14155551234"
        assert profile.phone_verified is False
        assert profile.two_factor_enabled is False
        stored = fake_supabase.tables["profiles"]
        assert len(stored) == 1 and stored[0]["email"] == "a@example.com"

    def test_splits_legacy_full_name_metadata(self, service, fake_supabase):
        _signed_in_as(fake_supabase, make_auth_user("user-a", full_name="Mary Jane Smith"))

        profile = service.fetch_profile("user-a")

        assert (profile.first_name, profile.last_name) == ("Mary", "Jane Smith")

    def test_access_denied_is_surfaced_not_created(self, service, fake_supabase):
        def _deny(_payload):
            raise api_error("42501", "permission denied for table profiles")

        fake_supabase.hooks[("profiles", "select")] = _deny

        with pytest.raises(AccessDeniedError):
            service.fetch_profile_with_retry("user-a")
        assert fake_supabase.count_calls("profiles", "select") == 1
        assert fake_supabase.count_calls("profiles", "insert") == 0

    def test_retries_transient_failure_then_succeeds(self, service, fake_supabase):
        fake_supabase.tables["profiles"].append(dict(EXISTING))
        failures = [api_error("XX000", "connection reset")]

        def _flaky(_payload):
            if failures:
                raise failures.pop()

        fake_supabase.hooks[("profiles", "select")] = _flaky

        profile = service.fetch_profile_with_retry("user-a")

        assert profile.id == "user-a"
        assert fake_supabase.count_calls("profiles", "select") == 2

    def test_gives_up_after_configured_attempts(self, service, fake_supabase):
        def _down(_payload):
            raise api_error("XX000", "connection reset")

        fake_supabase.hooks[("profiles", "select")] = _down

        with pytest.raises(ConnectivityError):
            service.fetch_profile_with_retry("user-a", attempts=2, delay_s=0)
        assert fake_supabase.count_calls("profiles", "select") == 2

    def test_attempt_times_out(self, service, fake_supabase, config):
        release = threading.Event()
        config.PROFILE_FETCH_TIMEOUT_S = 0.05
        fake_supabase.hooks[("profiles", "select")] = lambda _payload: release.wait(5)
        try:
            with pytest.raises(OperationTimeoutError):
                service.fetch_profile("user-a")
        finally:
            release.set()

    def test_hung_attempts_do_not_block_recovered_backend(self, service, fake_supabase, config):
        fake_supabase.tables["profiles"].append(dict(EXISTING))
        release = threading.Event()
        hung = [True, True]

        def _hang_twice(_payload):
            if hung:
                hung.pop()
                release.wait(5)

        config.PROFILE_FETCH_TIMEOUT_S = 0.3
        fake_supabase.hooks[("profiles", "select")] = _hang_twice
        try:
            for _ in range(2):
                with pytest.raises(OperationTimeoutError):
                    service.fetch_profile("user-a")

            assert service.fetch_profile("user-a").id == "user-a"
        finally:
            release.set()


class TestUpdateProfile:
    def test_writes_supplied_fields_and_returns_row(self, service, fake_supabase):
        fake_supabase.tables["profiles"].append(dict(EXISTING))

        updated = service.update_profile("user-a", ProfileUpdate(last_name="King"))

        assert updated.last_name == "King"
        assert updated.first_name == "Ada"
        assert fake_supabase.tables["profiles"][0]["phone"] == "+14155551234"

    def test_unknown_id_fails_with_update_failed(self, service, fake_supabase):
        with pytest.raises(UpdateFailedError):
            service.update_profile("missing", {"first_name": "Ghost"})

    def test_invalid_phone_rejected_before_any_request(self, service, fake_supabase):
        with pytest.raises(InputValidationError, match="Invalid phone number format"):
            service.update_profile("user-a", {"phone": "415-555-1234"})
        assert fake_supabase.calls == []

    def test_backend_rejection_is_update_failed(self, service, fake_supabase):
        fake_supabase.tables["profiles"].append(dict(EXISTING))

        def _reject(_payload):
            raise api_error("23514", "new row violates check constraint")

        fake_supabase.hooks[("profiles", "update")] = _reject

        with pytest.raises(UpdateFailedError):
            service.update_profile("user-a", {"first_name": "Ada"})

    def test_empty_update_for_unknown_id_is_update_failed(self, service, fake_supabase):
        with pytest.raises(UpdateFailedError):
            service.update_profile("missing", {})
        assert fake_supabase.count_calls("profiles", "update") == 0
