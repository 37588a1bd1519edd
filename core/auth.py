# =============================================================================
# Authentication Service for Nine Picture Grid
# =============================================================================

import logging
import re
from datetime import datetime, timezone
from typing import Callable, List, Optional

from core.backend import SupabaseBackend, parse_session, parse_user
from core.debug_logger import LogStore, Subscription
from core.exceptions import AuthenticationError, ValidationError, describe_error
from models.constants import MIN_PASSWORD_LENGTH, SESSION_REFRESH_MARGIN_SECONDS
from models.data_models import AuthResult, LogType, Session

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

AuthListener = Callable[[str, Optional[Session]], None]


def validate_credentials(email: str, password: str) -> None:
    """Reject obviously bad credentials before calling the auth service."""
    if not email or not EMAIL_PATTERN.match(email.strip()):
        raise ValidationError("Please enter a valid email address")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


class AuthState:
    """Current session of one browser session plus its auth change listeners."""

    def __init__(self, session: Optional[Session] = None):
        self.session = session
        self._listeners: List[Subscription] = []

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    def on_change(self, callback: AuthListener) -> Subscription:
        subscription = Subscription(self, callback)
        self._listeners.append(subscription)
        return subscription

    def set_session(self, event: str, session: Optional[Session]) -> None:
        self.session = session
        for subscription in list(self._listeners):
            if not subscription.active:
                continue
            try:
                subscription.callback(event, session)
            except Exception:
                logger.exception("Auth state listener %r failed", subscription.callback)

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._listeners:
            self._listeners.remove(subscription)


class AuthService:
    """Sign in, sign up and session management with every step in the debug log."""

    def __init__(self, backend: SupabaseBackend, store: LogStore, state: Optional[AuthState] = None):
        self.backend = backend
        self.store = store
        self.state = state or AuthState()

    @property
    def session(self) -> Optional[Session]:
        return self.state.session

    def on_auth_state_change(self, callback: AuthListener) -> Subscription:
        return self.state.on_change(callback)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            self.store.add_log("Attempting to sign in", LogType.INFO, {"email": email})
            validate_credentials(email, password)
            data = await self.backend.sign_in(email, password)

            session = parse_session(data)
            if session is None:
                raise AuthenticationError("Invalid response from authentication service")

            self.store.add_log("Sign in successful", LogType.SUCCESS, {
                "userId": session.user.id,
                "email": session.user.email,
            })
            self.state.set_session(SIGNED_IN, session)
            return AuthResult(user=session.user, session=session)
        except Exception as e:
            self.store.add_log("Sign in failed", LogType.ERROR, describe_error(e))
            return AuthResult(error=str(e))

    async def sign_up(self, email: str, password: str) -> AuthResult:
        try:
            self.store.add_log("Attempting to sign up", LogType.INFO, {"email": email})
            validate_credentials(email, password)
            data = await self.backend.sign_up(email, password)

            user = parse_user(data)
            if user is None:
                raise AuthenticationError("User data not received from authentication service")
            session = parse_session(data)

            self.store.add_log("Sign up successful", LogType.SUCCESS, {
                "userId": user.id,
                "email": user.email,
                "confirmationRequired": session is None,
            })
            # No session means the account still needs email confirmation
            if session is not None:
                self.state.set_session(SIGNED_IN, session)
            return AuthResult(user=user, session=session)
        except Exception as e:
            self.store.add_log("Sign up failed", LogType.ERROR, describe_error(e))
            return AuthResult(error=str(e))

    async def sign_out(self) -> Optional[str]:
        """Returns an error message, or None on success."""
        try:
            self.store.add_log("Attempting to sign out", LogType.INFO)
            if self.session is not None:
                await self.backend.sign_out(self.session.access_token)
            self.store.add_log("Sign out successful", LogType.SUCCESS)
            self.state.set_session(SIGNED_OUT, None)
            return None
        except Exception as e:
            self.store.add_log("Sign out failed", LogType.ERROR, describe_error(e))
            return str(e)

    def get_current_session(self) -> Optional[Session]:
        session = self.session
        if session is None:
            self.store.add_log("No active session found", LogType.INFO)
            return None
        self.store.add_log("Retrieved current session", LogType.SUCCESS, {
            "userId": session.user.id,
            "email": session.user.email,
        })
        return session

    async def refresh_session(self) -> Optional[Session]:
        session = self.session
        if session is None or not session.refresh_token:
            self.store.add_log("No session to refresh", LogType.INFO)
            return None
        try:
            data = await self.backend.refresh_session(session.refresh_token)
            refreshed = parse_session(data)
            if refreshed is None:
                raise AuthenticationError("Invalid refreshed session: missing user data")
            details = {"userId": refreshed.user.id, "email": refreshed.user.email}
            if refreshed.expires_at:
                details["expiresAt"] = datetime.fromtimestamp(refreshed.expires_at, timezone.utc).isoformat()
            self.store.add_log("Session refreshed successfully", LogType.SUCCESS, details)
            self.state.set_session(TOKEN_REFRESHED, refreshed)
            return refreshed
        except Exception as e:
            self.store.add_log("Failed to refresh session", LogType.ERROR, describe_error(e))
            return None

    async def ensure_fresh_session(self, now: Optional[float] = None) -> Optional[Session]:
        """
        Refresh the session when its access token has expired or is about to.

        A session that cannot be refreshed is dropped and listeners get
        SIGNED_OUT, so the user is asked to sign in again instead of sending
        a stale token.
        """
        session = self.session
        if session is None or not session.is_expired(now, SESSION_REFRESH_MARGIN_SECONDS):
            return session

        self.store.add_log("Session expired, refreshing", LogType.WARNING, {
            "userId": session.user.id,
            "expiresAt": datetime.fromtimestamp(session.expires_at, timezone.utc).isoformat(),
        })
        refreshed = await self.refresh_session()
        if refreshed is None:
            self.store.add_log("Session could not be refreshed, signing out", LogType.ERROR,
                               {"userId": session.user.id})
            self.state.set_session(SIGNED_OUT, None)
        return refreshed

    async def active_session(self) -> Session:
        """The current session, refreshed if needed; raises when signed out."""
        await self.ensure_fresh_session()
        return self.require_session()

    def require_session(self) -> Session:
        """Return the active session or raise for calls that need one."""
        if self.session is None:
            self.store.add_log("No active session found", LogType.ERROR)
            raise AuthenticationError("Authentication required")
        return self.session
