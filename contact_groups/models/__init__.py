"""
Data Models Package.

Re-exports the pydantic models and enums::

    from contact_groups.models import Profile, ProfileUpdate, AuthState
"""

from contact_groups.models.enums import (
    AuthEvent,
    AuthStatus,
    ErrorKind,
    MigrationPhase,
    NotificationLevel,
    SignUpOutcome,
)
from contact_groups.models.profile import Profile, ProfileUpdate, is_profile_complete
from contact_groups.models.auth_models import (
    AuthResult,
    AuthSession,
    AuthState,
    AuthUser,
    ValidationResult,
)
from contact_groups.models.migration_models import (
    BackfillSummary,
    ColumnStatus,
    GroupMembership,
    LegacyRow,
    MigrationStep,
    TableVerification,
    VerificationReport,
)

__all__ = [
    "AuthEvent",
    "AuthResult",
    "AuthSession",
    "AuthState",
    "AuthStatus",
    "AuthUser",
    "BackfillSummary",
    "ColumnStatus",
    "ErrorKind",
    "GroupMembership",
    "LegacyRow",
    "MigrationPhase",
    "MigrationStep",
    "NotificationLevel",
    "Profile",
    "ProfileUpdate",
    "SignUpOutcome",
    "TableVerification",
    "ValidationResult",
    "VerificationReport",
    "is_profile_complete",
]
