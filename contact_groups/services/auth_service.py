"""
Authentication Service.

Single orchestrator for the client-side auth state machine: session
bootstrap, session-change handling, background profile loading, and
the user actions (sign-up, sign-in, sign-out, profile update).

Sits between the UI layer and the Supabase / profile layer so that
views remain thin form handlers.  State lives in the injected
``SessionManager``; this service only decides which transition to make.

All actions return a typed ``AuthResult`` and publish a notification;
the UI never inspects raw exceptions and nothing here raises into it.

Threading:
    - Backend calls made on behalf of the state machine (session lookup,
      profile fetch) run on a worker pool; the caller is never blocked.
      Each timed backend call gets its own thread, so a hung call cannot
      occupy a pool worker past its deadline.
    - Session-change callbacks arrive on whatever thread the Supabase
      client fires them from.  They only transition state and schedule
      work, so they return immediately.
    - Profile fetches carry the generation they were issued under; a
      result for a superseded identity is dropped.
"""

from __future__ import annotations

import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from typing import Any, Callable, Mapping, Optional, Union

from contact_groups.auth import SessionManager, StateListener
from contact_groups.config import AppConfig
from contact_groups.database import DatabaseManager
from contact_groups.errors import (
    ContactGroupsError,
    RequestTimedOutError,
    classify_backend_error,
)
from contact_groups.logger import StructuredLogger
from contact_groups.models.auth_models import (
    PROFILE_TABLE_MISSING_MARKERS,
    PROFILE_TABLE_MISSING_MESSAGE,
    AuthResult,
    AuthSession,
    AuthState,
    ValidationResult,
)
from contact_groups.models.enums import AuthEvent, AuthStatus, ErrorKind, SignUpOutcome
from contact_groups.models.profile import ProfileUpdate
from contact_groups.services.base_service import BaseService
from contact_groups.services.notifications import NotificationCenter
from contact_groups.services.profile_service import ProfileService
from contact_groups.utils.concurrency import RetryAborted, run_with_timeout
from contact_groups.utils.names import combine_names
from contact_groups.utils.phone import is_optional_e164_phone, normalize_phone_input


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EMAIL_RE: re.Pattern[str] = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

# Matches C0 controls (U+0000-U+001F), DEL (U+007F), and C1 controls (U+0080-U+009F).
_CONTROL_CHAR_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f-\x9f]")

_NAME_MAX_LENGTH: int = 50
_PASSWORD_MIN_LENGTH: int = 6

# Events that re-announce the identity we already hold.
_SESSION_ONLY_EVENTS: frozenset[str] = frozenset({
    AuthEvent.TOKEN_REFRESHED,
    AuthEvent.INITIAL_SESSION,
})

PROFILE_UNAVAILABLE_MESSAGE = (
    "We couldn't load your profile. You can keep using the app; "
    "some details may be missing until it loads."
)
SIGN_UP_TIMEOUT_MESSAGE = (
    "Sign up is taking longer than expected. Please check your connection "
    "and try again."
)


class AuthService(BaseService):
    """Auth state machine orchestrator.

    Parameters
    ----------
    db:
        Database manager holding the anon-key Supabase client.
    session:
        State container; one per consumer.
    profile_service:
        Fetch-or-create / update for profile rows.
    notifications:
        Sink for user-visible messages.
    config:
        Timeouts, worker count and the legacy-metadata flag.
    logger:
        Structured JSON logger.
    executor:
        Worker pool for background fetches.  Created (and owned) when
        omitted.
    """

    def __init__(
        self,
        db: DatabaseManager,
        session: SessionManager,
        profile_service: ProfileService,
        notifications: NotificationCenter,
        config: AppConfig,
        logger: StructuredLogger,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        super().__init__(logger)
        self._db: DatabaseManager = db
        self._session: SessionManager = session
        self._profile_service: ProfileService = profile_service
        self._notifications: NotificationCenter = notifications
        self._config: AppConfig = config

        self._owns_executor: bool = executor is None
        self._executor: ThreadPoolExecutor = executor or ThreadPoolExecutor(
            max_workers=config.AUTH_WORKER_THREADS, thread_name_prefix="auth-worker",
        )

        # Re-entrant: the client may fire the session callback inside start().
        self._lifecycle_lock: threading.RLock = threading.RLock()
        self._running: bool = False
        self._closed: bool = False
        self._stop_event: threading.Event = threading.Event()
        self._subscription: Any = None
        self._bootstrap_future: Optional[Future[AuthState]] = None
        self._pending_lock: threading.Lock = threading.Lock()
        self._pending: set[Future[Any]] = set()

    # ==================================================================
    # State access
    # ==================================================================

    @property
    def state(self) -> AuthState:
        return self._session.state

    @property
    def is_running(self) -> bool:
        with self._lifecycle_lock:
            return self._running

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Receive every new ``AuthState`` snapshot."""
        return self._session.subscribe(listener)

    # ==================================================================
    # Lifecycle
    # ==================================================================

    def start(self) -> Future[AuthState]:
        """Subscribe to session changes and bootstrap in the background.

        Idempotent while running.  The returned future resolves to the
        state right after the initial session lookup (``loading`` is
        ``False`` by then); the profile keeps loading afterwards.

        Raises:
            RuntimeError: If the service was already stopped.
        """
        with self._lifecycle_lock:
            if self._closed:
                raise RuntimeError("AuthService was stopped and cannot be restarted.")
            if self._bootstrap_future is not None:
                return self._bootstrap_future
            self._running = True

            # Subscribe before the lookup so no change between the two is
            # lost; any change seen first supersedes the lookup's result.
            bootstrap_generation = self._session.generation
            self._subscribe_to_session_changes()
            future = self._executor.submit(self._bootstrap, bootstrap_generation)
            self._bootstrap_future = future
        self._track(future)
        return future

    def stop(self) -> None:
        """Teardown: unsubscribe, interrupt retry pauses, drop pending work.

        Results still in flight are discarded when they settle.
        """
        with self._lifecycle_lock:
            if self._closed:
                return
            self._closed = True
            self._running = False
            self._stop_event.set()
            subscription = self._subscription
            self._subscription = None

        if subscription is not None:
            try:
                subscription.unsubscribe()
            except Exception as exc:
                self._logger.warning("Failed to unsubscribe from session changes: %s", exc)

        with self._pending_lock:
            pending = list(self._pending)
        for future in pending:
            future.cancel()

        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
        self._logger.info("Auth service stopped.", extra={"event": "AUTH_STOP"})

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Block until background work (including work it spawns) is done.

        Returns ``False`` if *timeout* elapsed first.
        """
        while True:
            with self._pending_lock:
                pending = list(self._pending)
            if not pending:
                return True
            _, not_done = wait_futures(pending, timeout=timeout)
            if not_done:
                return False

    def _subscribe_to_session_changes(self) -> None:
        try:
            self._subscription = self._db.supabase.auth.on_auth_state_change(
                self._on_session_change,
            )
        except Exception as exc:
            self._logger.warning(
                "Could not subscribe to session changes: %s", exc,
                extra={"event": "AUTH_SUBSCRIBE_FAILED"},
            )

    def _track(self, future: Future[Any]) -> None:
        with self._pending_lock:
            self._pending.add(future)

        def _forget(done: Future[Any]) -> None:
            with self._pending_lock:
                self._pending.discard(done)

        future.add_done_callback(_forget)

    # ==================================================================
    # Bootstrap and session changes
    # ==================================================================

    def _bootstrap(self, bootstrap_generation: int) -> AuthState:
        try:
            raw_session = run_with_timeout(
                self._db.supabase.auth.get_session,
                self._config.SESSION_FETCH_TIMEOUT_S,
                operation_name="session lookup",
                logger=self._logger,
            )
        except Exception as exc:
            # Fail open: the UI must never wait on a broken lookup.
            self._logger.warning(
                "Session lookup failed; continuing signed out: %s", exc,
                extra={"event": "BOOTSTRAP_FAILED"},
            )
            if self.is_running:
                self._session.mark_anonymous(expected_generation=bootstrap_generation)
            return self._session.state

        if not self.is_running:
            return self._session.state

        auth_session = _to_auth_session(raw_session)
        if auth_session is None:
            self._session.mark_anonymous(expected_generation=bootstrap_generation)
            self._logger.info("No active session.", extra={"event": "BOOTSTRAP_ANONYMOUS"})
            return self._session.state

        generation = self._session.begin_profile_fetch(
            auth_session.user, auth_session, expected_generation=bootstrap_generation,
        )
        if generation is not None:
            self._logger.info(
                "Session restored for %s.", auth_session.user.id,
                extra={"event": "BOOTSTRAP_SESSION", "user_id": auth_session.user.id},
            )
            self._schedule_profile_load(auth_session.user.id, generation)
        return self._session.state

    def _on_session_change(self, event: Any, raw_session: Any) -> None:
        """Session-change callback registered with the Supabase client."""
        if not self.is_running:
            return

        event_name = str(getattr(event, "value", event))
        try:
            auth_session = _to_auth_session(raw_session)
            current = self._session.state

            if auth_session is None:
                if current.status == AuthStatus.ANONYMOUS and current.user is None:
                    return
                self._session.mark_anonymous()
                self._logger.info(
                    "Signed out (%s).", event_name,
                    extra={"event": "SESSION_CLEARED", "auth_event": event_name},
                )
                return

            same_user = current.user is not None and current.user.id == auth_session.user.id
            if same_user and event_name in _SESSION_ONLY_EVENTS:
                self._session.replace_session(auth_session)
                self._logger.debug("Session refreshed for %s.", auth_session.user.id)
                return

            generation = self._session.begin_profile_fetch(auth_session.user, auth_session)
            self._logger.info(
                "Session changed (%s) for %s.", event_name, auth_session.user.id,
                extra={
                    "event": "SESSION_CHANGED",
                    "auth_event": event_name,
                    "user_id": auth_session.user.id,
                },
            )
            if generation is not None:
                self._schedule_profile_load(auth_session.user.id, generation)
        except Exception as exc:
            self._logger.error(
                "Session change handling failed (%s): %s", event_name, exc, exc_info=True,
            )

    def _schedule_profile_load(self, user_id: str, generation: int) -> None:
        if not self.is_running:
            return
        try:
            future = self._executor.submit(self._load_profile, user_id, generation)
        except RuntimeError:
            # Executor shut down by a concurrent stop().
            return
        self._track(future)

    def _load_profile(self, user_id: str, generation: int) -> None:
        try:
            profile = self._profile_service.fetch_profile_with_retry(
                user_id, wait=self._stop_event.wait,
            )
        except RetryAborted:
            self._logger.debug("Profile load for %s cancelled by teardown.", user_id)
            return
        except Exception as exc:
            if not self.is_running or not self._session.is_current(generation):
                self._logger.debug(
                    "Discarded failure of superseded profile load for %s: %s", user_id, exc,
                )
                return
            if self._session.mark_profile_unavailable(generation):
                self._logger.warning(
                    "Profile unavailable for %s: %s", user_id, exc,
                    extra={"event": "PROFILE_UNAVAILABLE", "user_id": user_id},
                )
                self._notifications.warning(PROFILE_UNAVAILABLE_MESSAGE)
            return

        if not self.is_running:
            return
        if self._session.apply_profile(generation, profile):
            self._logger.info(
                "Profile loaded for %s.", user_id,
                extra={"event": "PROFILE_LOADED", "user_id": user_id},
            )
        else:
            self._logger.debug("Discarded stale profile for %s.", user_id)

    # ==================================================================
    # Validation helpers
    # ==================================================================

    @staticmethod
    def validate_email(email: str) -> ValidationResult:
        if not email or not email.strip():
            return ValidationResult(is_valid=False, error_message="Email address is required.")
        if not _EMAIL_RE.match(email.strip()):
            return ValidationResult(
                is_valid=False, error_message="Please enter a valid email address.",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_password(password: str) -> ValidationResult:
        if len(password or "") < _PASSWORD_MIN_LENGTH:
            return ValidationResult(
                is_valid=False,
                error_message=f"Password must be at least {_PASSWORD_MIN_LENGTH} characters.",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_name(name: str, field_label: str) -> ValidationResult:
        """Validate a first or last name.

        Rejects control characters (newlines, tabs...) to prevent log
        injection and display corruption.
        """
        stripped = (name or "").strip()
        if not stripped:
            return ValidationResult(is_valid=False, error_message=f"{field_label} is required.")
        if len(stripped) > _NAME_MAX_LENGTH:
            return ValidationResult(
                is_valid=False,
                error_message=f"{field_label} must be at most {_NAME_MAX_LENGTH} characters.",
            )
        if _CONTROL_CHAR_RE.search(stripped):
            return ValidationResult(
                is_valid=False,
                error_message=(
                    f"{field_label} contains invalid characters. "
                    "Only printable characters are allowed."
                ),
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_phone(phone: Optional[str]) -> ValidationResult:
        if not is_optional_e164_phone(phone):
            return ValidationResult(
                is_valid=False,
                error_message="Invalid phone number format. Use +1234567890.",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def normalize_email(email: str) -> str:
        """Normalise an email address: strip whitespace and lowercase."""
        return email.strip().lower()

    # ==================================================================
    # Sign up
    # ==================================================================

    def sign_up(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
    ) -> AuthResult:
        """Create an account via Supabase ``sign_up()``.

        The profile-creating trigger on the backend reads
        ``first_name``, ``last_name`` and ``phone`` from the sign-up
        metadata; ``full_name`` is added too while older readers still
        depend on it.

        Returns
        -------
        AuthResult
            ``outcome`` is ``VERIFICATION_EMAIL_SENT`` when the backend
            returned no session (email confirmation pending), otherwise
            ``SIGNED_IN``; the session-change listener then loads state.
        """
        checks = (
            self.validate_name(first_name, "First name"),
            self.validate_name(last_name, "Last name"),
            self.validate_email(email),
            self.validate_password(password),
            self.validate_phone(phone),
        )
        for check in checks:
            if not check.is_valid:
                return self._fail(ErrorKind.VALIDATION, check.error_message or "Invalid input.")

        email = self.normalize_email(email)
        metadata: dict[str, Optional[str]] = {
            "first_name": first_name.strip(),
            "last_name": last_name.strip(),
            "phone": normalize_phone_input(phone),
        }
        if self._config.WRITE_LEGACY_FULL_NAME:
            metadata["full_name"] = combine_names(first_name, last_name)

        try:
            response = run_with_timeout(
                lambda: self._db.supabase.auth.sign_up({
                    "email": email,
                    "password": password,
                    "options": {"data": metadata},
                }),
                self._config.SIGN_UP_TIMEOUT_S,
                operation_name="sign up",
                logger=self._logger,
                timeout_error=RequestTimedOutError,
            )
        except RequestTimedOutError:
            self._logger.warning(
                "Sign up timed out for %s.", email,
                extra={"event": "SIGN_UP_FAILED", "error_kind": str(ErrorKind.REQUEST_TIMED_OUT)},
            )
            return self._fail(ErrorKind.REQUEST_TIMED_OUT, SIGN_UP_TIMEOUT_MESSAGE)
        except Exception as exc:
            return self._sign_up_failure(exc)

        user = getattr(response, "user", None)
        user_id = getattr(user, "id", None)
        if getattr(response, "session", None) is None:
            outcome = SignUpOutcome.VERIFICATION_EMAIL_SENT
            message = "Account created. Check your email to confirm your address."
        else:
            outcome = SignUpOutcome.SIGNED_IN
            message = "Account created and signed in."

        self._logger.info(
            "User registered: %s (%s).", email, outcome,
            extra={"event": "SIGN_UP", "email": email, "user_id": user_id},
        )
        self._notifications.success(message)
        return AuthResult(success=True, outcome=outcome, user_id=user_id)

    def _sign_up_failure(self, exc: Exception) -> AuthResult:
        classified = classify_backend_error(exc, "")
        message = _backend_message(exc)
        if any(marker in message.lower() for marker in PROFILE_TABLE_MISSING_MARKERS):
            self._logger.error(
                "Sign up failed: profile table missing (%s).", message,
                extra={"event": "SIGN_UP_FAILED", "error_kind": "profile_table_missing"},
            )
            return self._fail(classified.kind, PROFILE_TABLE_MISSING_MESSAGE)

        self._logger.warning(
            "Sign up failed: %s", message,
            extra={"event": "SIGN_UP_FAILED", "error_kind": str(classified.kind)},
        )
        return self._fail(classified.kind, message)

    # ==================================================================
    # Sign in / sign out
    # ==================================================================

    def sign_in(self, email: str, password: str) -> AuthResult:
        """Verify credentials.  State is populated by the session listener."""
        email_check = self.validate_email(email)
        if not email_check.is_valid:
            return self._fail(ErrorKind.VALIDATION, email_check.error_message or "Invalid email.")

        email = self.normalize_email(email)
        try:
            response = self._db.supabase.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as exc:
            classified = classify_backend_error(exc, "")
            message = _backend_message(exc)
            self._logger.warning(
                "Sign in failed for %s: %s", email, message,
                extra={"event": "SIGN_IN_FAILED", "error_kind": str(classified.kind)},
            )
            return self._fail(classified.kind, message)

        user_id = getattr(getattr(response, "user", None), "id", None)
        self._logger.info(
            "User signed in: %s", email,
            extra={"event": "SIGN_IN", "email": email, "user_id": user_id},
        )
        self._notifications.success("Signed in.")
        return AuthResult(success=True, user_id=user_id)

    def sign_out(self) -> AuthResult:
        """Clear local state, then revoke the backend session.

        Local state is cleared first so nothing authenticated stays on
        screen while the network call is slow or failing.
        """
        previous = self._session.state.user
        self._session.mark_anonymous()

        try:
            self._db.supabase.auth.sign_out()
        except Exception as exc:
            classified = classify_backend_error(exc, "")
            message = _backend_message(exc)
            self._logger.warning(
                "Server-side sign out failed: %s", message,
                extra={"event": "SIGN_OUT_FAILED", "error_kind": str(classified.kind)},
            )
            return self._fail(classified.kind, f"Sign out failed: {message}")

        self._logger.info(
            "User signed out.",
            extra={"event": "SIGN_OUT", "user_id": previous.id if previous else None},
        )
        self._notifications.success("Signed out.")
        return AuthResult(success=True, user_id=previous.id if previous else None)

    # ==================================================================
    # Profile actions
    # ==================================================================

    def update_profile(self, updates: Union[ProfileUpdate, Mapping[str, object]]) -> AuthResult:
        """Write profile changes for the signed-in user.

        On failure the held profile is left untouched.
        """
        user = self._session.state.user
        if user is None:
            return self._fail(
                ErrorKind.ACCESS_DENIED, "You must be signed in to update your profile.",
            )

        try:
            profile = self._profile_service.update_profile(user.id, updates)
        except Exception as exc:
            classified = classify_backend_error(exc, "")
            self._logger.warning(
                "Profile update failed for %s: %s", user.id, classified.message,
                extra={"event": "PROFILE_UPDATE_FAILED", "error_kind": str(classified.kind)},
            )
            return self._fail(classified.kind, classified.message)

        self._session.update_profile(profile)
        self._notifications.success("Profile updated successfully.")
        return AuthResult(success=True, user_id=user.id, profile=profile)

    def refresh_profile(self) -> AuthResult:
        """Reload the signed-in user's profile now (blocking)."""
        state, generation = self._session.snapshot()
        user = state.user
        if user is None:
            return self._fail(ErrorKind.ACCESS_DENIED, "No user is signed in.", notify=False)

        try:
            profile = self._profile_service.fetch_profile_with_retry(
                user.id, wait=self._stop_event.wait,
            )
        except RetryAborted:
            return self._fail(ErrorKind.CONNECTIVITY, "Profile refresh cancelled.", notify=False)
        except Exception as exc:
            classified = classify_backend_error(exc, "")
            self._logger.warning("Profile refresh failed for %s: %s", user.id, classified.message)
            return self._fail(classified.kind, classified.message)

        if not self._session.apply_profile(generation, profile):
            return self._fail(
                ErrorKind.CONNECTIVITY, "Signed-in user changed during refresh.", notify=False,
            )
        return AuthResult(success=True, user_id=user.id, profile=profile)

    # ==================================================================
    # Helpers
    # ==================================================================

    def _fail(self, kind: ErrorKind, message: str, notify: bool = True) -> AuthResult:
        if notify:
            self._notifications.error(message)
        return AuthResult(success=False, error_kind=kind, error_message=message)


def _to_auth_session(raw_session: Any) -> Optional[AuthSession]:
    """Local copy of a supabase-py ``Session``; ``None`` for no session."""
    if raw_session is None or getattr(raw_session, "user", None) is None:
        return None
    return AuthSession.model_validate(raw_session)


def _backend_message(exc: BaseException) -> str:
    if isinstance(exc, ContactGroupsError):
        return exc.message
    message = getattr(exc, "message", None)
    return str(message) if message else str(exc)
