"""Authenticated session state shared with the fetcher."""

from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import BaseModel

from ..utils.logging import get_logger
from ..utils.time import parse_iso_timestamp

logger = get_logger(__name__)

AUTH_REQUIRED_MESSAGE = "Authentication required"


class AuthSession(BaseModel):
    """An authenticated user session issued by the identity provider."""
    access_token: str
    user_id: str
    email: Optional[str] = None
    expires_at: Optional[str] = None  # ISO 8601; None = no expiry

    def is_active(self, now: Optional[datetime] = None) -> bool:
        if not self.access_token:
            return False
        expires = parse_iso_timestamp(self.expires_at)
        if expires is None:
            return True
        return expires > (now or datetime.now(timezone.utc))


SessionListener = Callable[[Optional[AuthSession]], None]


class SessionStore:
    """Holds the current session and notifies subscribers when it changes."""

    def __init__(self, session: Optional[AuthSession] = None):
        self._session = session
        self._listeners: List[SessionListener] = []

    def current(self) -> Optional[AuthSession]:
        """The active session, or None when signed out or expired."""
        if self._session is not None and self._session.is_active():
            return self._session
        return None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, session: AuthSession) -> None:
        self._session = session
        logger.info(f"Session started for user {session.user_id}")
        self._notify()

    def sign_out(self) -> None:
        if self._session is None:
            return
        logger.info(f"Session ended for user {self._session.user_id}")
        self._session = None
        self._notify()

    def _notify(self) -> None:
        current = self.current()
        for listener in list(self._listeners):
            listener(current)
