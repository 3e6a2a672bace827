"""
OAuth authentication routes.

GET /auth/{provider} starts the handshake; GET /auth/{provider}/callback
finishes it. Callback failures always complete the redirect back to the client
application with an ``error`` tag, a ``code`` classification and a ``msg``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from ..auth import get_controller, get_password_provider, get_session_id, get_settings
from ..auth_providers.handshake import OAuthHandshakeController
from ..auth_providers.providers.password import PasswordAuthProvider
from ..auth_providers.session import clear_session_cookie, set_session_cookie
from ..core.config import Settings
from ..models import ProviderInfo, ProvidersResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.get("/providers", response_model=ProvidersResponse)
async def list_auth_providers(
    request: Request,
    password_provider: PasswordAuthProvider = Depends(get_password_provider),
):
    """
    List available authentication providers.

    Returns:
        List of provider names and whether they're available
    """
    providers = [
        ProviderInfo(
            name=password_provider.name,
            display_name=password_provider.display_name,
            type="credentials",
            available=True,
        )
    ]
    for controller in request.app.state.oauth_controllers.values():
        providers.append(
            ProviderInfo(
                name=controller.name,
                display_name=controller.provider.display_name,
                type="oauth" if controller.provider.requires_redirect() else "credentials",
                available=controller.configured,
            )
        )
    return ProvidersResponse(providers=providers)


@router.get("/{provider}")
async def oauth_login(
    scope: Optional[list[str]] = Query(default=None, description="Override the default scopes"),
    controller: OAuthHandshakeController = Depends(get_controller),
    settings: Settings = Depends(get_settings),
):
    """
    Redirect the browser to the provider's authorization page.

    Raises:
        UnknownProvider: 404 for an unsupported provider
        ProviderNotConfigured: 503 if the provider has no client credentials
    """
    redirect = controller.begin_auth(scope)

    response = RedirectResponse(redirect.url)
    # Binds the signed state to this browser; Lax so it survives the provider's redirect back.
    response.set_cookie(
        key=settings.OAUTH_STATE_COOKIE_NAME,
        value=redirect.nonce,
        max_age=settings.OAUTH_STATE_TTL_SECONDS,
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE and settings.is_production,
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/{provider}/callback")
async def oauth_callback(
    request: Request,
    controller: OAuthHandshakeController = Depends(get_controller),
    session_id: Optional[str] = Depends(get_session_id),
    settings: Settings = Depends(get_settings),
):
    """
    Finish the handshake and redirect to the client application.

    Success lands on the dashboard with the session cookie set, only after the
    session write has been confirmed. Failures land on the auth page.

    Raises:
        UnknownProvider: 404 for an unsupported provider
        ProviderNotConfigured: 503 if the provider has no client credentials
    """
    logger.info(f"{controller.name} callback received")
    nonce = request.cookies.get(settings.OAUTH_STATE_COOKIE_NAME)

    result = await controller.complete_callback(
        dict(request.query_params), nonce, current_session_id=session_id
    )

    response = RedirectResponse(result.redirect_url)
    response.delete_cookie(settings.OAUTH_STATE_COOKIE_NAME, path="/", domain=settings.COOKIE_DOMAIN)
    if result.session is not None:
        set_session_cookie(response, result.session.session_id, settings)
    elif result.clear_session:
        clear_session_cookie(response, settings)
    return response
