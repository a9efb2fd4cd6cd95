"""
Contact Groups core.

Auth/session/profile state machine over Supabase and the operator-driven
``full_name`` → ``first_name``/``last_name`` migration.
"""

__version__ = "0.4.0"
