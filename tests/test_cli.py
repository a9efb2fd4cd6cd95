"""Tests for the migration console entry point."""

import io
import logging

import pytest

from conftest import MEMBERSHIP_COLUMNS, PROFILE_COLUMNS
from contact_groups.config import reset_config
from contact_groups.migrations.cli import CONFIRM_TOKEN, build_controller, main


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
    reset_config()


@pytest.fixture
def populated(fake_supabase):
    fake_supabase.create_table(
        "group_memberships", MEMBERSHIP_COLUMNS, [{"id": "m01", "group_id": "g1", "full_name": "Mary Smith"}],
    )
    fake_supabase.create_table(
        "profiles", PROFILE_COLUMNS, [{"id": "p01", "email": "ada@example.com", "full_name": "Ada Lovelace"}],
    )
    return fake_supabase


@pytest.fixture
def run(credentials, populated, db):
    def _run(*argv, prompt=None):
        out = io.StringIO()

        def _no_prompt(_question):
            raise AssertionError("unexpected prompt")

        code = main(
            list(argv),
            controller_factory=lambda config, logger: build_controller(db, config, logger),
            out=out,
            prompt=prompt or _no_prompt,
        )
        return code, out.getvalue()

    return _run


def test_missing_configuration_is_fatal(capsys):
    assert main(["verify"]) == 1

    err = capsys.readouterr().err
    assert "FATAL: Missing required environment variables: SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY" in err


@pytest.mark.parametrize("argv", [[], ["bogus"]])
def test_missing_configuration_reported_before_usage_errors(capsys, argv):
    assert main(argv) == 1

    err = capsys.readouterr().err
    assert err.startswith("FATAL: Missing required environment variables")
    assert "usage:" not in err


def test_verify_fails_before_backfill(run):
    code, output = run("verify")

    assert code == 1
    assert "Verification FAILED:" in output
    assert logging.getLogger("migration").handlers == []


def test_migrate_runs_forward_phases(run, populated):
    code, output = run("migrate")

    assert code == 0
    assert "Verification PASSED." in output
    assert "ADD COLUMN IF NOT EXISTS" in output
    assert populated.tables["profiles"][0]["first_name"] == "Ada"


def test_backfill_dry_run_prints_sql(run, populated):
    code, output = run("backfill", "--dry-run", "--sql")

    assert code == 0
    assert "[dry run] profiles: scanned=1 attempted=1" in output
    assert "UPDATE profiles" in output
    assert populated.tables["profiles"][0]["first_name"] is None


def test_status_always_succeeds(run):
    code, output = run("status")

    assert code == 0
    assert "profiles: first_name=yes last_name=yes full_name=yes" in output


def test_cleanup_refuses_unverified_migration(run):
    code, output = run("cleanup", "--confirm", CONFIRM_TOKEN)

    assert code == 1
    assert "Complete the migration before cleanup." in output
    assert "DROP COLUMN" not in output


def test_cleanup_with_token_prints_drop(run):
    run("backfill")

    code, output = run("cleanup", "--confirm", CONFIRM_TOKEN)

    assert code == 0
    assert "ALTER TABLE profiles DROP COLUMN IF EXISTS full_name;" in output
    assert "FINAL WARNING" in output


def test_cleanup_wrong_token_aborts(run):
    run("backfill")

    code, output = run("cleanup", "--confirm", "yes")

    assert code == 1
    assert "Cleanup aborted" in output
    assert "DROP COLUMN" not in output


@pytest.mark.parametrize("answer, expected", [(CONFIRM_TOKEN, 0), ("no", 1)])
def test_cleanup_prompts_without_token(run, answer, expected):
    run("backfill")
    questions = []

    def _prompt(question):
        questions.append(question)
        return answer

    code, _ = run("cleanup", prompt=_prompt)

    assert code == expected
    assert questions == [f"Type '{CONFIRM_TOKEN}' to continue: "]
