"""
Server-side browser sessions.
Starlette's SessionMiddleware signs the cookie, which carries only an opaque session id; the
pending PKCE login and the token record live in process memory (idle TTL 24h).
SessionContext is the only way routes touch either record.
"""
import asyncio
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable

from starlette.requests import Request

from jira_client_web.config import SESSION_TTL_SECONDS
from jira_client_web.token_store import TokenRecord

logger = logging.getLogger(__name__)

SESSION_COOKIE = "jira_oauth_session"
# Key inside the signed cookie payload
SESSION_ID_KEY = "sid"


@dataclass(frozen=True)
class PendingAuthorization:
    """One in-flight authorization attempt: created at /auth/login, consumed at /auth/callback."""

    state: str
    code_verifier: str
    created_at: float

    def expired(self, ttl_seconds: int, now: float | None = None) -> bool:
        if now is None:
            now = time.time()
        return (now - self.created_at) > ttl_seconds


class SessionContext:
    """Typed view over one browser session."""

    def __init__(self, session_id: str, *, now: float | None = None):
        self.session_id = session_id
        self.last_seen = time.time() if now is None else now
        self.destroyed = False
        # Serializes expiry-check-then-refresh for this session
        self.refresh_lock = asyncio.Lock()
        self._pending: PendingAuthorization | None = None
        self._tokens: TokenRecord | None = None

    # pending authorization

    def get_pending_authorization(self) -> PendingAuthorization | None:
        return self._pending

    def set_pending_authorization(self, pending: PendingAuthorization) -> None:
        self._pending = pending

    def clear_pending_authorization(self) -> None:
        self._pending = None

    # tokens

    def get_tokens(self) -> TokenRecord | None:
        return self._tokens

    def set_tokens(self, tokens: TokenRecord) -> None:
        self._tokens = tokens

    def clear_tokens(self) -> None:
        self._tokens = None

    @property
    def is_empty(self) -> bool:
        return self._pending is None and self._tokens is None

    def destroy(self) -> None:
        """Drop both records. Callers also forget_session() so the cookie goes too."""
        self._pending = None
        self._tokens = None
        self.destroyed = True


class SessionStore:
    """
    In-memory session map with idle expiry. Safe for concurrent requests on different sessions.
    Every save sweeps out sessions idle longer than the TTL, so abandoned logins don't accumulate.
    """

    def __init__(self, ttl_seconds: int = SESSION_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, SessionContext] = {}
        self._lock = threading.Lock()

    def create(self) -> SessionContext:
        """New unsaved session; it is only kept once save() is called."""
        return SessionContext(secrets.token_urlsafe(32), now=self._clock())

    def get(self, session_id: str) -> SessionContext | None:
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if now - session.last_seen > self.ttl_seconds:
                del self._sessions[session_id]
                return None
            session.last_seen = now
            return session

    def save(self, session: SessionContext) -> None:
        with self._lock:
            session.last_seen = self._clock()
            self._sessions[session.session_id] = session
        purged = self.purge_expired()
        if purged:
            logger.info("Purged %d idle sessions", purged)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if now - s.last_seen > self.ttl_seconds]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)


def get_session(request: Request) -> SessionContext:
    """
    FastAPI dependency: the SessionContext named by the session cookie.
    Unknown, expired or missing ids get a fresh unsaved session (no cookie until remember_session).
    """
    store: SessionStore = request.app.state.session_store
    session_id = request.session.get(SESSION_ID_KEY)
    if isinstance(session_id, str):
        session = store.get(session_id)
        if session is not None:
            return session
    return store.create()


def remember_session(request: Request, session: SessionContext) -> None:
    """Keep the session server-side and name it in the signed cookie."""
    request.app.state.session_store.save(session)
    request.session[SESSION_ID_KEY] = session.session_id


def forget_session(request: Request, session: SessionContext) -> None:
    """Drop the session server-side; the emptied cookie payload makes the middleware expire it."""
    request.app.state.session_store.delete(session.session_id)
    request.session.clear()
