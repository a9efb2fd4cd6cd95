"""
Name Helpers.

``split_full_name`` is the one rule for turning a legacy single-field
display name into ``first_name`` / ``last_name``.  The migration backfill,
the sign-up metadata path and the legacy-read fallback on ``Profile``
all call it, so historical rows and new rows split the same way.
"""

from __future__ import annotations

from typing import Mapping, Optional

__all__ = [
    "combine_names",
    "get_display_name",
    "get_initials",
    "split_full_name",
]


def split_full_name(full_name: Optional[str]) -> tuple[str, str]:
    """Split *full_name* at its first space.

    - Surrounding whitespace is trimmed.
    - Empty or all-whitespace input gives ``("", "")``.
    - No space gives ``(trimmed, "")``.
    - Otherwise everything before the first space is the first name and
      the remaining space-separated tokens, re-joined with single
      spaces, are the last name::

          split_full_name("Mary  Jane Smith") == ("Mary", "Jane Smith")

    Never raises; ``None`` is treated as empty.
    """
    trimmed = (full_name or "").strip()
    if not trimmed:
        return "", ""

    if " " not in trimmed:
        return trimmed, ""

    first, rest = trimmed.split(" ", 1)
    last = " ".join(token for token in rest.split(" ") if token)
    return first, last.strip()


def combine_names(first_name: Optional[str], last_name: Optional[str]) -> str:
    """Join first and last name with one space, skipping empty parts."""
    parts = [part.strip() for part in (first_name or "", last_name or "") if part and part.strip()]
    return " ".join(parts)


def get_display_name(name_data: Mapping[str, Optional[str]]) -> str:
    """Display name from a row carrying ``first_name`` / ``last_name``.

    Rows that have not been backfilled yet fall back to ``full_name``.
    """
    display = combine_names(name_data.get("first_name"), name_data.get("last_name"))
    if display:
        return display
    return " ".join((name_data.get("full_name") or "").split())


def get_initials(name_data: Mapping[str, Optional[str]]) -> str:
    """Upper-case initials (``"MS"``), the first initial alone, or ``"?"``."""
    first = (name_data.get("first_name") or "").strip()
    last = (name_data.get("last_name") or "").strip()

    if first and last:
        return f"{first[0].upper()}{last[0].upper()}"
    if first:
        return first[0].upper()
    return "?"
