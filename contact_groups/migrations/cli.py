"""
Migration Console.

Guided operator tool for the ``full_name`` split.  SQL is printed for
the Supabase SQL editor; only the backfill writes rows itself.

Usage::

    python main.py migrate              # phases 1-3
    python main.py add-columns
    python main.py backfill [--dry-run] [--sql]
    python main.py verify
    python main.py status
    python main.py cleanup [--confirm drop-full-name]

Configuration is checked before the arguments are parsed, so missing
credentials are reported even for a mistyped command.

Exit codes:
    0: phase completed (verification passed, where applicable)
    1: configuration error, failed verification, failed rows, or
       declined cleanup

Environment Variables:
    SUPABASE_URL: Project URL (required)
    SUPABASE_SERVICE_ROLE_KEY: Service-role key (required)
"""

from __future__ import annotations

import argparse
import sys
from typing import Callable, Optional, Sequence, TextIO

from contact_groups.config import AppConfig, get_config
from contact_groups.database import DatabaseManager
from contact_groups.errors import ContactGroupsError, MigrationVerificationFailed
from contact_groups.logger import StructuredLogger
from contact_groups.migrations.controller import MigrationController
from contact_groups.models.migration_models import (
    BackfillSummary,
    ColumnStatus,
    MigrationStep,
    VerificationReport,
)
from contact_groups.repositories.legacy_name_repository import (
    GroupMembershipRepository,
    ProfileNameRepository,
)

CONFIRM_TOKEN = "drop-full-name"
_RULE = "=" * 72


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contact-groups-migrate",
        description="Split full_name into first_name / last_name on profiles and group_memberships.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("migrate", help="Run the forward phases: add columns, backfill, verify.")
    commands.add_parser("add-columns", help="Print the ADD COLUMN SQL and current column status.")

    backfill = commands.add_parser("backfill", help="Split full_name for every unmigrated row.")
    backfill.add_argument("--dry-run", action="store_true", help="Count rows without writing.")
    backfill.add_argument("--sql", action="store_true", help="Also print the set-based SQL.")

    commands.add_parser("verify", help="Check that the backfill is complete.")
    commands.add_parser("status", help="Show column presence and migration counts.")

    cleanup = commands.add_parser(
        "cleanup", help="Re-verify, then print the irreversible DROP COLUMN full_name SQL.",
    )
    cleanup.add_argument(
        "--confirm",
        metavar="TOKEN",
        help=f"Skip the prompt by passing '{CONFIRM_TOKEN}'.",
    )
    return parser


def build_controller(db: DatabaseManager, config: AppConfig, logger: StructuredLogger) -> MigrationController:
    """Controller over both target tables, on a service-role connection."""
    return MigrationController(
        repositories=[
            GroupMembershipRepository(db=db, logger=logger),
            ProfileNameRepository(db=db, logger=logger),
        ],
        config=config,
        logger=logger,
    )


def main(
    argv: Optional[Sequence[str]] = None,
    controller_factory: Optional[Callable[[AppConfig, StructuredLogger], MigrationController]] = None,
    out: Optional[TextIO] = None,
    prompt: Callable[[str], str] = input,
) -> int:
    """Entry point; returns the process exit code."""
    out = out or sys.stdout

    config = get_config()
    try:
        config.validate_migration_config()
    except ValueError as exc:
        _print_fatal(str(exc))
        return 1

    args = build_parser().parse_args(argv)

    logger = StructuredLogger(name="migration", stream=sys.stderr)
    try:
        return _dispatch(args, config, logger, controller_factory, out, prompt)
    finally:
        logger.close()


def _dispatch(
    args: argparse.Namespace,
    config: AppConfig,
    logger: StructuredLogger,
    controller_factory: Optional[Callable[[AppConfig, StructuredLogger], MigrationController]],
    out: TextIO,
    prompt: Callable[[str], str],
) -> int:
    if controller_factory is not None:
        controller = controller_factory(config, logger)
    else:
        db = DatabaseManager(
            supabase_url=config.SUPABASE_URL,
            supabase_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
            logger=logger,
            http_timeout_s=config.BACKEND_HTTP_TIMEOUT_S,
        )
        if not db.is_online:
            _print_fatal("Could not create the Supabase client; check SUPABASE_URL and the key.")
            return 1
        controller = build_controller(db, config, logger)

    console = _Console(out)
    handlers: dict[str, Callable[[], int]] = {
        "migrate": lambda: _run_migrate(controller, console),
        "add-columns": lambda: _run_add_columns(controller, console),
        "backfill": lambda: _run_backfill(controller, console, args.dry_run, args.sql),
        "verify": lambda: _run_verify(controller, console),
        "status": lambda: _run_status(controller, console),
        "cleanup": lambda: _run_cleanup(controller, console, args.confirm, prompt),
    }

    try:
        return handlers[args.command]()
    except ContactGroupsError as exc:
        logger.error("Migration command %s failed: %s", args.command, exc)
        console.line(f"ERROR: {exc.message}")
        return 1


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _run_migrate(controller: MigrationController, console: "_Console") -> int:
    console.heading("Phase 1: add columns")
    console.step(controller.add_columns())

    console.heading("Phase 2: backfill")
    summaries = controller.backfill()
    console.backfill(summaries)

    console.heading("Phase 3: verify")
    report = controller.verify()
    console.report(report)
    console.step(controller.verification_step())

    if any(summary.error for summary in summaries):
        console.line("Apply the SQL printed above, then re-run 'migrate'.")
        return 1
    if not report.passed:
        return 1
    console.line("Forward phases complete. Test the application, then run 'cleanup'.")
    return 0


def _run_add_columns(controller: MigrationController, console: "_Console") -> int:
    console.step(controller.add_columns())
    return 0


def _run_backfill(controller: MigrationController, console: "_Console", dry_run: bool, show_sql: bool) -> int:
    summaries = controller.backfill(dry_run=dry_run)
    console.backfill(summaries)
    if show_sql:
        console.step(controller.backfill_step())
    if any(summary.error or summary.failed for summary in summaries):
        console.line("Some rows were not migrated. Re-run 'backfill' to retry them.")
        return 1
    return 0


def _run_verify(controller: MigrationController, console: "_Console") -> int:
    report = controller.verify()
    console.report(report)
    return 0 if report.passed else 1


def _run_status(controller: MigrationController, console: "_Console") -> int:
    console.columns(controller.column_status())
    console.report(controller.verify())
    return 0


def _run_cleanup(
    controller: MigrationController,
    console: "_Console",
    token: Optional[str],
    prompt: Callable[[str], str],
) -> int:
    def _confirm(report: VerificationReport) -> bool:
        console.report(report)
        console.line("")
        console.line("FINAL WARNING: dropping full_name is permanent.")
        console.line("Make sure the application has been tested against first_name/last_name.")
        if token is not None:
            return token == CONFIRM_TOKEN
        try:
            answer = prompt(f"Type '{CONFIRM_TOKEN}' to continue: ")
        except EOFError:
            return False
        return answer.strip() == CONFIRM_TOKEN

    try:
        step = controller.drop_legacy_columns(_confirm)
    except MigrationVerificationFailed as exc:
        if isinstance(exc.report, VerificationReport):
            console.report(exc.report)
        console.line("Migration verification failed. Complete the migration before cleanup.")
        return 1

    if step is None:
        console.line("Cleanup aborted; nothing was emitted.")
        return 1
    console.step(step)
    return 0


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _print_fatal(message: str) -> None:
    print(f"FATAL: {message}", file=sys.stderr)
    print("Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY and try again.", file=sys.stderr)


class _Console:
    """Plain-text rendering of controller results."""

    def __init__(self, out: TextIO) -> None:
        self._out = out

    def line(self, text: str) -> None:
        print(text, file=self._out)

    def heading(self, title: str) -> None:
        self.line("")
        self.line(title)
        self.line("-" * len(title))

    def step(self, step: MigrationStep) -> None:
        if step.statements:
            self.line(f"SQL to execute ({step.title}):")
            self.line(_RULE)
            for statement in step.statements:
                self.line(statement)
                self.line("")
            self.line(_RULE)
            self.line("Run it in the Supabase dashboard: SQL Editor, paste, execute.")
        if step.verification_queries:
            self.line("Verification queries:")
            for query in step.verification_queries:
                self.line(query)
                self.line("")
        for note in step.notes:
            self.line(note)

    def columns(self, statuses: Sequence[ColumnStatus]) -> None:
        for status in statuses:
            self.line(
                f"{status.table}: first_name={_yes(status.has_first_name)} "
                f"last_name={_yes(status.has_last_name)} full_name={_yes(status.has_full_name)}"
            )

    def backfill(self, summaries: Sequence[BackfillSummary]) -> None:
        for summary in summaries:
            prefix = "[dry run] " if summary.dry_run else ""
            self.line(
                f"{prefix}{summary.table}: scanned={summary.scanned} "
                f"attempted={summary.attempted} succeeded={summary.succeeded} "
                f"failed={summary.failed} skipped={summary.skipped} "
                f"already_migrated={summary.already_migrated}"
            )
            if summary.failed_ids:
                self.line(f"  failed ids: {', '.join(summary.failed_ids)}")
            if summary.error:
                self.line(f"  error: {summary.error}")

    def report(self, report: VerificationReport) -> None:
        for table in report.tables:
            if table.error:
                self.line(f"{table.table}: ERROR {table.error}")
                continue
            legacy = "present" if table.legacy_column_present else "dropped"
            self.line(
                f"{table.table}: total={table.total_rows} migrated={table.migrated_rows} "
                f"unmigrated={table.unmigrated_rows} full_name={legacy}"
            )
        if report.passed:
            self.line("Verification PASSED.")
        else:
            self.line("Verification FAILED:")
            for reason in report.reasons:
                self.line(f"  - {reason}")


def _yes(flag: bool) -> str:
    return "yes" if flag else "no"


if __name__ == "__main__":
    sys.exit(main())
