"""Phone number helpers (E.164: ``+`` then 2–15 digits, no leading zero)."""

from __future__ import annotations

import re
from typing import Optional

__all__ = [
    "E164_PHONE_RE",
    "is_optional_e164_phone",
    "is_required_e164_phone",
    "normalize_phone_input",
]

E164_PHONE_RE: re.Pattern[str] = re.compile(r"^\+[1-9]\d{1,14}$")


def normalize_phone_input(phone: Optional[str]) -> Optional[str]:
    """Strip *phone*; blank input becomes ``None`` (unset)."""
    if phone is None:
        return None
    trimmed = phone.strip()
    return trimmed or None


def is_optional_e164_phone(phone: Optional[str]) -> bool:
    """``True`` for a valid E.164 number or an absent/blank one."""
    normalized = normalize_phone_input(phone)
    if normalized is None:
        return True
    return bool(E164_PHONE_RE.match(normalized))


def is_required_e164_phone(phone: Optional[str]) -> bool:
    """``True`` only for a present, valid E.164 number."""
    normalized = normalize_phone_input(phone)
    if normalized is None:
        return False
    return bool(E164_PHONE_RE.match(normalized))
