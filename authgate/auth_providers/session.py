"""
Unified session management for all authentication providers.

Sessions are server-side records keyed by an opaque, unguessable id. The
browser only ever holds that id, signed with SESSION_SECRET, in an HTTP-only
cookie. Expired sessions are treated as absent whether or not they have been
physically removed yet.
"""

import asyncio
import json
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from fastapi import Response
from jose import jws
from jose.exceptions import JOSEError

from ..core.config import Settings
from ..errors import SessionCommitError, SessionNotFound
from ..models import Identity, Session


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore(ABC):
    """Session record lifecycle: create, read, replace the user, destroy."""

    def __init__(self, ttl: timedelta = timedelta(hours=24), clock: Optional[Clock] = None):
        self.ttl = ttl
        self.clock = clock or utcnow

    def _new_session(self, identity: Identity) -> Session:
        created_at = self.clock()
        return Session(
            session_id=new_session_id(),
            user=identity,
            created_at=created_at,
            expires_at=created_at + self.ttl,
        )

    @abstractmethod
    async def create(self, identity: Identity) -> Session:
        pass

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        """Return the live session or None if absent or expired."""
        pass

    @abstractmethod
    async def replace(self, session_id: str, identity: Identity) -> None:
        """
        Replace the embedded user wholesale.

        Raises:
            SessionNotFound: If the session is absent or expired
        """
        pass

    @abstractmethod
    async def destroy(self, session_id: str) -> None:
        """Remove the session. Destroying an unknown id is a no-op."""
        pass

    async def connect(self) -> bool:
        """Open backend connections. Returns False when nothing to connect."""
        return False

    async def disconnect(self) -> None:
        pass

    @property
    def backend(self) -> str:
        return self.__class__.__name__


class InMemorySessionStore(SessionStore):
    """
    Process-local session table.

    The lock is held only around the dict operation itself, never across an
    await, so requests for other sessions are never blocked.
    """

    def __init__(self, ttl: timedelta = timedelta(hours=24), clock: Optional[Clock] = None):
        super().__init__(ttl=ttl, clock=clock)
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    async def create(self, identity: Identity) -> Session:
        session = self._new_session(identity)
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        now = self.clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.is_expired(now):
                del self._sessions[session_id]
                return None
            return session

    async def replace(self, session_id: str, identity: Identity) -> None:
        now = self.clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.is_expired(now):
                self._sessions.pop(session_id, None)
                raise SessionNotFound(session_id)
            self._sessions[session_id] = session.model_copy(update={"user": identity})

    async def destroy(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def purge_expired(self) -> int:
        """Drop expired sessions. Returns the number removed."""
        now = self.clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.debug(f"Purged {len(expired)} expired sessions")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class RedisSessionStore(SessionStore):
    """Sessions stored as JSON under ``session:<id>`` with a matching Redis TTL."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl: timedelta = timedelta(hours=24),
        clock: Optional[Clock] = None,
        client: Any = None,
    ):
        super().__init__(ttl=ttl, clock=clock)
        self._redis_url = redis_url
        self._redis = client
        self._prefix = "session:"

    async def connect(self) -> bool:
        """Connect to Redis. Failures propagate so the caller can fall back."""
        if self._redis is None:
            import redis.asyncio as redis
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        await self._redis.ping()
        logger.info("Session store: Connected to Redis")
        return True

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}{session_id}"

    def _remaining_seconds(self, session: Session) -> int:
        return max(1, int((session.expires_at - self.clock()).total_seconds()))

    async def create(self, identity: Identity) -> Session:
        session = self._new_session(identity)
        await self._redis.setex(
            self._key(session.session_id),
            self._remaining_seconds(session),
            session.model_dump_json(),
        )
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        raw = await self._redis.get(self._key(session_id))
        if raw is None:
            return None
        try:
            session = Session.model_validate(json.loads(raw))
        except ValueError:
            logger.warning(f"Discarding unreadable session record {session_id[:8]}...")
            await self.destroy(session_id)
            return None
        if session.is_expired(self.clock()):
            await self.destroy(session_id)
            return None
        return session

    async def replace(self, session_id: str, identity: Identity) -> None:
        session = await self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        updated = session.model_copy(update={"user": identity})
        # xx: only overwrite an existing key; keepttl preserves the original expiry.
        written = await self._redis.set(
            self._key(session_id), updated.model_dump_json(), xx=True, keepttl=True
        )
        if not written:
            raise SessionNotFound(session_id)

    async def destroy(self, session_id: str) -> None:
        await self._redis.delete(self._key(session_id))


async def _discard(store: SessionStore, session_id: Optional[str]) -> None:
    if not session_id:
        return
    try:
        await store.destroy(session_id)
    except Exception as e:
        logger.error(f"Failed to discard session {session_id[:8]}...: {e}")


async def commit_session(
    store: SessionStore,
    identity: Identity,
    current_session_id: Optional[str] = None,
) -> Session:
    """
    Start a fresh session for ``identity`` and confirm the write.

    Every successful authentication gets a new session id. The new session is
    read back before returning, so a caller that redirects afterwards can rely
    on it being queryable. Only then is the session the request arrived with
    destroyed. On any failure or cancellation the new session is discarded and
    the previous one is left as it was.

    Raises:
        SessionCommitError: If the write fails or cannot be confirmed
    """
    session_id: Optional[str] = None
    try:
        session_id = (await store.create(identity)).session_id
        confirmed = await store.get(session_id)
    except asyncio.CancelledError:
        await asyncio.shield(_discard(store, session_id))
        raise
    except Exception as e:
        await _discard(store, session_id)
        raise SessionCommitError(f"Session write failed: {e}") from e

    if confirmed is None or confirmed.user != identity:
        await _discard(store, session_id)
        raise SessionCommitError("Session write could not be confirmed")

    if current_session_id and current_session_id != session_id:
        await _discard(store, current_session_id)
    return confirmed


def build_session_store(settings: Settings, clock: Optional[Clock] = None) -> SessionStore:
    """Choose the session backend from configuration."""
    ttl = timedelta(hours=settings.SESSION_TTL_HOURS)
    if settings.REDIS_URL:
        return RedisSessionStore(settings.REDIS_URL, ttl=ttl, clock=clock)
    logger.warning("Session store: Redis not configured, using in-memory store")
    return InMemorySessionStore(ttl=ttl, clock=clock)


async def connect_session_store(store: SessionStore, settings: Settings) -> SessionStore:
    """Connect ``store``, falling back to an in-memory store if Redis is unreachable."""
    try:
        await store.connect()
        return store
    except Exception as e:
        logger.warning(f"Session store: Redis connection failed: {e}, using in-memory")
        return InMemorySessionStore(ttl=timedelta(hours=settings.SESSION_TTL_HOURS), clock=store.clock)


# Cookie helpers

def sign_session_id(session_id: str, secret: str) -> str:
    return jws.sign(session_id.encode("utf-8"), secret, algorithm="HS256")


def unsign_session_id(value: str, secret: str) -> Optional[str]:
    """Return the session id carried by a cookie value, or None if tampered."""
    try:
        return jws.verify(value, secret, algorithms=["HS256"]).decode("utf-8")
    except (JOSEError, UnicodeDecodeError):
        return None


def set_session_cookie(response: Response, session_id: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=sign_session_id(session_id, settings.SESSION_SECRET),
        max_age=settings.session_max_age,
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE and settings.is_production,
        httponly=True,
        samesite=settings.COOKIE_SAMESITE,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE and settings.is_production,
        httponly=True,
        samesite=settings.COOKIE_SAMESITE,
    )
