"""Request-scoped dependencies for session authentication.

Stores, providers and handshake controllers are created once per application
in ``create_app`` and kept on ``app.state``; route handlers reach them only
through these dependencies.
"""

from typing import Optional

from fastapi import Depends, Request

from .auth_providers.handshake import OAuthHandshakeController
from .auth_providers.providers.password import PasswordAuthProvider
from .auth_providers.session import SessionStore, unsign_session_id
from .core.config import Settings
from .errors import NotAuthenticated, UnknownProvider
from .models import Session


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_password_provider(request: Request) -> PasswordAuthProvider:
    return request.app.state.password_provider


def get_controller(provider: str, request: Request) -> OAuthHandshakeController:
    """Resolve the handshake controller for the ``{provider}`` path parameter."""
    controller = request.app.state.oauth_controllers.get(provider)
    if controller is None:
        raise UnknownProvider(provider)
    return controller


def get_session_id(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """Session id carried by the signed session cookie, if any."""
    cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not cookie:
        return None
    return unsign_session_id(cookie, settings.SESSION_SECRET)


async def get_current_session(
    session_id: Optional[str] = Depends(get_session_id),
    store: SessionStore = Depends(get_session_store),
) -> Optional[Session]:
    """Return the live session for the request, or None."""
    if not session_id:
        return None
    return await store.get(session_id)


async def get_current_session_required(
    session: Optional[Session] = Depends(get_current_session),
) -> Session:
    """
    Require a live session.

    Raises:
        NotAuthenticated: 401 if the session is absent or expired
    """
    if session is None:
        raise NotAuthenticated()
    return session
