"""Shared helpers: name splitting, phone validation, timeouts/retries, audit."""

from contact_groups.utils.audit import AuditEvent, log_audit_event
from contact_groups.utils.names import (
    combine_names,
    get_display_name,
    get_initials,
    split_full_name,
)
from contact_groups.utils.phone import (
    E164_PHONE_RE,
    is_optional_e164_phone,
    is_required_e164_phone,
    normalize_phone_input,
)

__all__ = [
    "AuditEvent",
    "E164_PHONE_RE",
    "combine_names",
    "get_display_name",
    "get_initials",
    "is_optional_e164_phone",
    "is_required_e164_phone",
    "log_audit_event",
    "normalize_phone_input",
    "split_full_name",
]
