"""
Repository Layer Package.

Data-access abstractions over the Supabase PostgREST tables.  Services
never touch ``db.supabase`` table calls directly.

Usage:
    from contact_groups.repositories.profile_repository import ProfileRepository
"""

from contact_groups.repositories.base_repository import BaseRepository
from contact_groups.repositories.profile_repository import ProfileRepository
from contact_groups.repositories.legacy_name_repository import (
    GroupMembershipRepository,
    LegacyNameRepository,
    ProfileNameRepository,
)

__all__ = [
    "BaseRepository",
    "GroupMembershipRepository",
    "LegacyNameRepository",
    "ProfileNameRepository",
    "ProfileRepository",
]
