"""
Authentication providers package.

Handles provider-based authentication (OAuth, password), profile
normalization, the OAuth handshake and session management.
"""

from .handshake import CallbackResult, HandshakeState, OAuthHandshakeController  # noqa: F401
from .normalizer import normalize  # noqa: F401
from .providers import AuthProvider  # noqa: F401
from .session import SessionStore, commit_session  # noqa: F401

__all__ = [
    "AuthProvider",
    "CallbackResult",
    "HandshakeState",
    "OAuthHandshakeController",
    "SessionStore",
    "commit_session",
    "normalize",
]
