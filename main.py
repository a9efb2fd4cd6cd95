"""
Contact Groups Migration Console Entry Point.

Runs the operator console for the ``full_name`` split.  Everything is
wired inside ``contact_groups.migrations.cli.main`` through constructor
injection; no module-level globals.

Usage::

    python main.py migrate
    python main.py cleanup
"""

from __future__ import annotations

import sys
import traceback

from contact_groups.migrations.cli import main


def _show_fatal_error(exc: BaseException) -> None:
    """Report an unexpected crash on stderr with its traceback."""
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as exc:
        _show_fatal_error(exc)
        sys.exit(1)
