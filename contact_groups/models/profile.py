"""
Profile Models.

``Profile`` mirrors one row of the ``profiles`` table (keyed 1:1 by the
auth user id).  During the name migration a row may still carry only the
legacy ``full_name``; the model derives ``first_name`` / ``last_name``
from it on read so callers never see a half-migrated name.

``ProfileUpdate`` is the write-side contract: every field optional, and
only the fields a caller actually set are sent to the backend.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from contact_groups.utils.names import split_full_name
from contact_groups.utils.phone import is_optional_e164_phone, normalize_phone_input

__all__ = ["Profile", "ProfileUpdate", "is_profile_complete"]

_NAME_MAX_LENGTH: int = 50


class Profile(BaseModel):
    """Application-owned per-user record."""

    id: str  # = auth user id
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    phone_verified: bool = False
    two_factor_enabled: bool = False
    sms_notifications_enabled: bool = True
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Legacy column, present until the cleanup phase drops it.
    full_name: Optional[str] = None

    model_config = {"from_attributes": True, "extra": "ignore"}

    @field_validator("first_name", "last_name", "email", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Optional[str]) -> str:
        return value or ""

    @field_validator("phone", mode="before")
    @classmethod
    def _blank_phone_is_unset(cls, value: Optional[str]) -> Optional[str]:
        return normalize_phone_input(value)

    @model_validator(mode="after")
    def _fallback_to_legacy_name(self) -> "Profile":
        if not self.first_name.strip() and self.full_name:
            first, last = split_full_name(self.full_name)
            self.first_name = first
            if not self.last_name.strip():
                self.last_name = last
        return self


class ProfileUpdate(BaseModel):
    """Partial update of the mutable profile fields.

    ``id``, ``email``, ``created_at`` and ``updated_at`` are deliberately
    absent: the first two are identity, the last two belong to the
    backend.
    """

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    phone_verified: Optional[bool] = None
    two_factor_enabled: Optional[bool] = None
    sms_notifications_enabled: Optional[bool] = None
    avatar_url: Optional[str] = None

    model_config = {"extra": "forbid"}

    @field_validator("first_name", "last_name")
    @classmethod
    def _name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        stripped = value.strip()
        if not stripped:
            raise ValueError("Name fields cannot be empty.")
        if len(stripped) > _NAME_MAX_LENGTH:
            raise ValueError(f"Name fields are limited to {_NAME_MAX_LENGTH} characters.")
        return stripped

    @field_validator("phone")
    @classmethod
    def _phone_is_e164(cls, value: Optional[str]) -> Optional[str]:
        if not is_optional_e164_phone(value):
            raise ValueError("Invalid phone number format. Use +1234567890.")
        return normalize_phone_input(value)

    def to_payload(self) -> dict[str, object]:
        """Only the explicitly supplied fields, ready for ``.update()``."""
        return self.model_dump(exclude_unset=True)


def is_profile_complete(profile: Optional[Profile]) -> bool:
    """``True`` when the profile has first name, last name and email."""
    if profile is None:
        return False
    return bool(
        profile.first_name.strip()
        and profile.last_name.strip()
        and profile.email.strip()
    )
