"""
Authentication & Session State.

Provides an injectable ``SessionManager`` that holds the auth state
snapshot (``AuthState``) for one consumer.  Every mutation happens under
a single ``RLock`` and replaces the snapshot wholesale, so readers never
observe a half-applied transition.

Identity changes (bootstrap, session change, sign-out) bump a
*generation* counter.  Profile fetches remember the generation they were
issued under and :meth:`SessionManager.apply_profile` refuses results
from any older generation, which is how a late fetch for a signed-out
user is kept from resurrecting its profile.

Usage::

    from contact_groups.auth import SessionManager

    session = SessionManager()
    unsubscribe = session.subscribe(lambda state: print(state.status))
    generation = session.begin_profile_fetch(user, auth_session)
    session.apply_profile(generation, profile)
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from contact_groups.logger import StructuredLogger
from contact_groups.models.auth_models import AuthSession, AuthState, AuthUser
from contact_groups.models.enums import AuthStatus
from contact_groups.models.profile import Profile

StateListener = Callable[[AuthState], None]


class SessionManager:
    """Injectable holder for the auth state machine's current snapshot.

    Each instance maintains its own state, eliminating the need for
    module-level globals.  Create one per consumer and pass it through
    the composition root.
    """

    def __init__(self, logger: Optional[StructuredLogger] = None) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._state: AuthState = AuthState()
        self._generation: int = 0
        self._listeners: list[StateListener] = []
        self._logger: Optional[StructuredLogger] = logger

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        """Return the current immutable snapshot."""
        with self._lock:
            return self._state

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def is_authenticated(self) -> bool:
        """``True`` when a user is currently signed in."""
        with self._lock:
            return self._state.user is not None

    def get_current_user(self) -> AuthUser:
        """Return the signed-in user.

        Raises:
            RuntimeError: If no user is currently authenticated.
        """
        with self._lock:
            if self._state.user is None:
                raise RuntimeError("No user is currently authenticated. Sign in required.")
            return self._state.user

    def snapshot(self) -> tuple[AuthState, int]:
        """Return the state and its generation, read together."""
        with self._lock:
            return self._state, self._generation

    def is_current(self, generation: int) -> bool:
        """``True`` if no identity change happened since *generation* was issued."""
        with self._lock:
            return generation == self._generation

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_anonymous(self, expected_generation: Optional[int] = None) -> Optional[int]:
        """Clear user, session and profile and stop loading.

        Returns the new generation; any fetch issued before it is stale.
        With *expected_generation*, nothing changes (and ``None`` is
        returned) if another identity change happened in the meantime.
        """
        with self._lock:
            if expected_generation is not None and expected_generation != self._generation:
                return None
            self._generation += 1
            generation = self._generation
            self._state = AuthState(loading=False, status=AuthStatus.ANONYMOUS)
            snapshot = self._state
        self._notify(snapshot)
        return generation

    def begin_profile_fetch(
        self,
        user: AuthUser,
        session: AuthSession,
        expected_generation: Optional[int] = None,
    ) -> Optional[int]:
        """Enter *profile pending* for *user* and return the fetch generation.

        *expected_generation* behaves as in :meth:`mark_anonymous`.
        """
        with self._lock:
            if expected_generation is not None and expected_generation != self._generation:
                return None
            self._generation += 1
            generation = self._generation
            self._state = AuthState(
                user=user,
                session=session,
                profile=None,
                loading=False,
                status=AuthStatus.PROFILE_PENDING,
            )
            snapshot = self._state
        self._notify(snapshot)
        return generation

    def replace_session(self, session: AuthSession) -> bool:
        """Swap the cached session when it belongs to the current user.

        Does not bump the generation: the identity is unchanged, so an
        outstanding fetch stays valid.  Returns ``False`` (and changes
        nothing) when the session is for a different user.
        """
        with self._lock:
            current = self._state.user
            if current is None or current.id != session.user.id:
                return False
            self._state = self._state.model_copy(
                update={"session": session, "user": session.user},
            )
            snapshot = self._state
        self._notify(snapshot)
        return True

    def apply_profile(self, generation: int, profile: Profile) -> bool:
        """Store *profile* if *generation* is still current.

        The profile must also belong to the signed-in user.

        Returns:
            ``True`` when applied, ``False`` for a stale result.
        """
        with self._lock:
            user = self._state.user
            if generation != self._generation or user is None or user.id != profile.id:
                return False
            self._state = self._state.model_copy(
                update={"profile": profile, "status": AuthStatus.AUTHENTICATED},
            )
            snapshot = self._state
        self._notify(snapshot)
        return True

    def mark_profile_unavailable(self, generation: int) -> bool:
        """Enter the degraded *profile unavailable* state if still current."""
        with self._lock:
            if generation != self._generation or self._state.user is None:
                return False
            self._state = self._state.model_copy(
                update={"profile": None, "status": AuthStatus.PROFILE_UNAVAILABLE},
            )
            snapshot = self._state
        self._notify(snapshot)
        return True

    def update_profile(self, profile: Profile) -> bool:
        """Replace the profile after a successful write by its owner.

        Ignored when the signed-in user changed while the write was in
        flight.
        """
        with self._lock:
            user = self._state.user
            if user is None or user.id != profile.id:
                return False
            self._state = self._state.model_copy(
                update={"profile": profile, "status": AuthStatus.AUTHENTICATED},
            )
            snapshot = self._state
        self._notify(snapshot)
        return True

    def clear(self) -> None:
        """Remove the current user, session and profile."""
        self.mark_anonymous()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with every new snapshot.  Returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, snapshot: AuthState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as exc:
                if self._logger is not None:
                    self._logger.error(
                        "Auth state listener failed: %s", exc, exc_info=True,
                    )
