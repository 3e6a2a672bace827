"""
OAuth handshake controller.

One controller per provider drives the federated login:

    REDIRECTING -> AWAITING_CALLBACK -> EXCHANGING -> NORMALIZING -> COMMITTED

with a FAILED edge from every state after REDIRECTING. Every callback failure
becomes a redirect to the client application's auth page carrying a
classification tag, so the browser is never stranded on the provider's domain.
A session is only reported as committed once its write has been read back.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import quote, urlencode

from jose import JWTError, jwt

from .normalizer import normalize
from .providers import ProviderOutcome
from .providers.oauth_base import OAuthProvider
from .session import SessionStore, commit_session
from ..core.config import Settings
from ..errors import (
    HandshakeError,
    InvalidState,
    NoUserReturned,
    ProviderError,
    ProviderExchangeFailure,
    ProviderNotConfigured,
    SessionCommitError,
    SessionCommitFailure,
    TokenExchangeError,
    TokenExchangeFailure,
)
from ..models import Session


logger = logging.getLogger(__name__)


class HandshakeState(str, Enum):
    UNCONFIGURED = "unconfigured"
    REDIRECTING = "redirecting"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    NORMALIZING = "normalizing"
    COMMITTED = "committed"
    FAILED = "failed"


_TRANSITIONS: dict[HandshakeState, set[HandshakeState]] = {
    HandshakeState.UNCONFIGURED: set(),
    HandshakeState.REDIRECTING: {HandshakeState.AWAITING_CALLBACK},
    HandshakeState.AWAITING_CALLBACK: {HandshakeState.EXCHANGING, HandshakeState.FAILED},
    HandshakeState.EXCHANGING: {HandshakeState.NORMALIZING, HandshakeState.FAILED},
    HandshakeState.NORMALIZING: {HandshakeState.COMMITTED, HandshakeState.FAILED},
    HandshakeState.COMMITTED: set(),
    HandshakeState.FAILED: set(),
}


@dataclass
class Handshake:
    """Tracks the state of a single handshake request."""

    provider: str
    state: HandshakeState = HandshakeState.REDIRECTING
    history: list[HandshakeState] = field(default_factory=list)

    def __post_init__(self):
        self.history.append(self.state)

    def advance(self, state: HandshakeState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal handshake transition {self.state.value} -> {state.value}")
        logger.debug(f"{self.provider} handshake: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


@dataclass
class AuthRedirect:
    url: str
    nonce: str


@dataclass
class CallbackResult:
    state: HandshakeState
    redirect_url: str
    session: Optional[Session] = None
    error: Optional[HandshakeError] = None

    @property
    def ok(self) -> bool:
        return self.state is HandshakeState.COMMITTED

    @property
    def clear_session(self) -> bool:
        """Whether the browser's session cookie must be dropped."""
        return isinstance(self.error, SessionCommitFailure)


class OAuthHandshakeController:
    """Per-provider state machine for the redirect/callback/exchange sequence."""

    def __init__(self, provider: OAuthProvider, session_store: SessionStore, settings: Settings):
        self.provider = provider
        self.session_store = session_store
        self.settings = settings
        # Evaluated once; configuration changes need a restart.
        self.configured = provider.is_configured

    @property
    def name(self) -> str:
        return self.provider.name

    def _ensure_configured(self) -> None:
        if not self.configured:
            logger.warning(f"{self.name} OAuth requested but not configured")
            raise ProviderNotConfigured(
                self.provider.display_name,
                f"{self.provider.display_name} OAuth not configured. "
                f"Set {self.name.upper()}_CLIENT_ID and {self.name.upper()}_CLIENT_SECRET and restart.",
            )

    # State token

    def _issue_state(self, nonce: str) -> str:
        expires = datetime.now(timezone.utc) + timedelta(seconds=self.settings.OAUTH_STATE_TTL_SECONDS)
        claims = {"provider": self.name, "nonce": nonce, "exp": expires}
        return jwt.encode(claims, self.settings.SESSION_SECRET, algorithm="HS256")

    def _validate_state(self, state: Optional[str], nonce: Optional[str]) -> None:
        if not state or not nonce:
            raise InvalidState(self.name, "Invalid or expired OAuth state")
        try:
            claims = jwt.decode(state, self.settings.SESSION_SECRET, algorithms=["HS256"])
        except JWTError as e:
            logger.warning(f"{self.name} callback: state rejected: {e}")
            raise InvalidState(self.name, "Invalid or expired OAuth state")
        if claims.get("provider") != self.name or not secrets.compare_digest(
            str(claims.get("nonce", "")), nonce
        ):
            logger.warning(f"{self.name} callback: state does not match this browser")
            raise InvalidState(self.name, "Invalid or expired OAuth state")

    # Redirect URLs

    def success_url(self) -> str:
        return f"{self.settings.FRONTEND_URL}{self.settings.AUTH_SUCCESS_PATH}"

    def failure_url(self, error: HandshakeError) -> str:
        query = {"error": error.tag, "code": error.code}
        if error.message:
            query["msg"] = error.message
        return f"{self.settings.FRONTEND_URL}{self.settings.AUTH_FAILURE_PATH}?{urlencode(query, quote_via=quote)}"

    # Operations

    def begin_auth(self, scopes: Optional[Sequence[str]] = None) -> AuthRedirect:
        """
        Build the provider authorization URL.

        Raises:
            ProviderNotConfigured: If client id or secret is missing
        """
        self._ensure_configured()
        handshake = Handshake(self.name)
        nonce = secrets.token_urlsafe(24)
        url = self.provider.get_login_url(self._issue_state(nonce), scopes=scopes)
        handshake.advance(HandshakeState.AWAITING_CALLBACK)
        logger.info(f"{self.name} OAuth: redirecting to provider")
        return AuthRedirect(url=url, nonce=nonce)

    def _classify(self, outcome: ProviderOutcome) -> dict[str, Any]:
        display = self.provider.display_name
        # An error wins even when a profile came back with it.
        if outcome.error is not None:
            error = outcome.error
            logger.error(f"{display} auth error: {error}")
            if isinstance(error, TokenExchangeError):
                raise TokenExchangeFailure(
                    self.name,
                    "Failed to obtain access token. Please check your "
                    f"{display} OAuth app credentials and callback URL.",
                )
            raise ProviderExchangeFailure(self.name, str(error) or f"{display} authentication failed")
        if not outcome.profile:
            logger.error(f"{display} auth: No user returned. Info: {outcome.info}")
            raise NoUserReturned(self.name, f"No user returned from {display}")
        return outcome.profile

    async def complete_callback(
        self,
        params: Mapping[str, str],
        nonce: Optional[str],
        current_session_id: Optional[str] = None,
    ) -> CallbackResult:
        """
        Finish the handshake for a provider callback.

        Handshake failures are returned as a failed CallbackResult whose
        redirect_url carries the classification; they are never raised.

        Raises:
            ProviderNotConfigured: If client id or secret is missing
        """
        self._ensure_configured()
        handshake = Handshake(self.name, state=HandshakeState.AWAITING_CALLBACK)
        try:
            self._validate_state(params.get("state"), nonce)

            handshake.advance(HandshakeState.EXCHANGING)
            try:
                outcome = await self.provider.exchange(params)
            except Exception as e:
                logger.error(f"{self.name} exchange raised: {e}", exc_info=True)
                outcome = ProviderOutcome(error=ProviderError(str(e)))
            raw_profile = self._classify(outcome)

            handshake.advance(HandshakeState.NORMALIZING)
            identity = normalize(self.name, raw_profile)
            if not identity.id:
                raise NoUserReturned(self.name, f"No user returned from {self.provider.display_name}")
            if not identity.picture:
                logger.warning(f"{self.name} profile for {identity.id} has no picture")

            try:
                session = await commit_session(self.session_store, identity, current_session_id)
            except SessionCommitError as e:
                logger.error(f"{self.name} session commit failed: {e}")
                raise SessionCommitFailure(self.name)
            handshake.advance(HandshakeState.COMMITTED)
        except HandshakeError as e:
            handshake.advance(HandshakeState.FAILED)
            return CallbackResult(state=handshake.state, redirect_url=self.failure_url(e), error=e)

        logger.info(f"{self.name} auth success for {identity.id}; session confirmed")
        return CallbackResult(state=handshake.state, redirect_url=self.success_url(), session=session)
