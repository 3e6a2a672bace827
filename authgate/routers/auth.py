"""Local email/password endpoints and session queries."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response

from ..auth import (
    get_current_session_required,
    get_password_provider,
    get_session_id,
    get_session_store,
    get_settings,
)
from ..auth_providers.providers.password import PasswordAuthProvider
from ..auth_providers.session import (
    SessionStore,
    clear_session_cookie,
    commit_session,
    set_session_cookie,
)
from ..core.config import Settings
from ..models import AuthResponse, LoginRequest, LogoutResponse, Session, SignupRequest


logger = logging.getLogger(__name__)

router = APIRouter(tags=["authentication"])


@router.post("/login", response_model=AuthResponse, response_model_exclude_none=True)
async def login(
    response: Response,
    credentials: Optional[LoginRequest] = None,
    provider: PasswordAuthProvider = Depends(get_password_provider),
    store: SessionStore = Depends(get_session_store),
    session_id: Optional[str] = Depends(get_session_id),
    settings: Settings = Depends(get_settings),
):
    """Authenticate with email and password and start a session.

    Raises:
        ValidationError: 400 if email or password is missing
        AuthenticationFailure: 401 if credentials are invalid
    """
    credentials = credentials or LoginRequest()
    identity = await provider.authenticate(credentials.email, credentials.password)

    session = await commit_session(store, identity, session_id)
    set_session_cookie(response, session.session_id, settings)
    logger.info(f"Local login for {identity.id}")
    return AuthResponse(user=session.user)


@router.post("/signup", response_model=AuthResponse, response_model_exclude_none=True)
async def signup(
    response: Response,
    payload: Optional[SignupRequest] = None,
    provider: PasswordAuthProvider = Depends(get_password_provider),
    store: SessionStore = Depends(get_session_store),
    session_id: Optional[str] = Depends(get_session_id),
    settings: Settings = Depends(get_settings),
):
    """Create a local account and start a session for it.

    Raises:
        ValidationError: 400 if email, password or name is missing
        ConflictError: 409 if the email is already registered
    """
    payload = payload or SignupRequest()
    identity = await provider.register(payload.email, payload.password, payload.name)

    session = await commit_session(store, identity, session_id)
    set_session_cookie(response, session.session_id, settings)
    return AuthResponse(user=session.user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    response: Response,
    store: SessionStore = Depends(get_session_store),
    session_id: Optional[str] = Depends(get_session_id),
    settings: Settings = Depends(get_settings),
):
    """Destroy the current session, if any, and clear the cookie."""
    if session_id:
        await store.destroy(session_id)
    clear_session_cookie(response, settings)
    return LogoutResponse()


@router.get("/me")
async def me(session: Session = Depends(get_current_session_required)):
    """Return the user of the current session.

    Raises:
        NotAuthenticated: 401 if the session is absent or expired
    """
    return session.user.model_dump(exclude_none=True)
