"""Tests for DatabaseManager client construction."""

from unittest.mock import MagicMock

import pytest

from contact_groups import database
from contact_groups.database import DatabaseManager


@pytest.fixture
def create_client(monkeypatch):
    factory = MagicMock(name="create_client")
    monkeypatch.setattr(database, "create_client", factory)
    return factory


def test_http_timeout_is_passed_to_postgrest(create_client, logger):
    db = DatabaseManager(
        supabase_url="https://example.supabase.co",
        supabase_key="anon-key",
        logger=logger,
        http_timeout_s=12.5,
    )

    assert db.is_online
    options = create_client.call_args.kwargs["options"]
    assert options.postgrest_client_timeout == 12.5


def test_missing_credentials_stay_offline(create_client, logger):
    db = DatabaseManager(supabase_url="", supabase_key="", logger=logger)

    assert db.is_online is False
    create_client.assert_not_called()
    with pytest.raises(RuntimeError):
        _ = db.supabase
