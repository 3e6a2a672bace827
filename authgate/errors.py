"""Error taxonomy for local and federated authentication flows.

Local-flow errors map directly to HTTP status codes. Federated-flow errors
(HandshakeError subclasses) are never rendered as HTTP errors; the handshake
controller turns them into redirects back to the client application.
"""

from typing import Optional

from fastapi import status


class AuthError(Exception):
    """Base class for errors rendered as a terse JSON status/body pair."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "Bad Request"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AuthError):
    """Missing or malformed input on a local flow."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad Request"


class AuthenticationFailure(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class NotAuthenticated(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ConflictError(AuthError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class UnknownProvider(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"

    def __init__(self, provider: str):
        super().__init__(f"Provider '{provider}' not supported")
        self.provider = provider


class ProviderNotConfigured(AuthError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "Service Unavailable"

    def __init__(self, provider: str, message: Optional[str] = None):
        super().__init__(message or f"{provider} OAuth not configured.")
        self.provider = provider


class SessionNotFound(Exception):
    """Raised by a session store when replacing a session that no longer exists."""


class SessionCommitError(Exception):
    """A session could not be written or its write could not be confirmed."""


# Provider client errors (raised inside provider clients, reported via ProviderOutcome)

class ProviderError(Exception):
    """The identity provider rejected the request or could not be reached."""


class TokenExchangeError(ProviderError):
    """The authorization code could not be exchanged for an access token."""


# Handshake errors (always surfaced as redirects)

class HandshakeError(Exception):
    """A federated login failed; carries the redirect classification."""

    code: str = "provider_error"

    def __init__(self, provider: str, message: str, tag: Optional[str] = None):
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.tag = tag or provider


class InvalidState(HandshakeError):
    code = "invalid_state"


class ProviderExchangeFailure(HandshakeError):
    code = "provider_error"


class TokenExchangeFailure(ProviderExchangeFailure):
    code = "token_exchange"


class NoUserReturned(HandshakeError):
    code = "no_user"


class SessionCommitFailure(HandshakeError):
    code = "session_commit"

    def __init__(self, provider: str, message: str = "Could not establish a session"):
        super().__init__(provider, message, tag="session")
