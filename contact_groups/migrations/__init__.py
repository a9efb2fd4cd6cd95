"""
Name Migration Package.

``MigrationController`` runs the ``full_name`` split; ``cli`` is the
operator console around it; ``sql`` builds the statements it prints.
"""

from contact_groups.migrations.controller import MigrationController

__all__ = ["MigrationController"]
