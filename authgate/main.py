import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .auth_providers.credentials import CredentialStore, InMemoryCredentialStore
from .auth_providers.handshake import OAuthHandshakeController
from .auth_providers.providers.github import GitHubOAuthProvider
from .auth_providers.providers.google import GoogleOAuthProvider
from .auth_providers.providers.oauth_base import OAuthProvider
from .auth_providers.providers.password import PasswordAuthProvider
from .auth_providers.session import SessionStore, build_session_store, connect_session_store
from .core.config import Settings, settings as default_settings
from .core.logging import configure_logging
from .errors import AuthError
from .middleware.correlation import CorrelationIDMiddleware
from .middleware.error_handler import (
    auth_exception_handler,
    generic_exception_handler_factory,
    validation_exception_handler,
)
from .routers import auth, auth_oauth

logger = logging.getLogger(__name__)


def build_oauth_providers(settings: Settings) -> list[OAuthProvider]:
    """Provider clients from configuration. Unconfigured ones are still listed."""
    timeout = settings.OAUTH_HTTP_TIMEOUT_SECONDS
    return [
        GoogleOAuthProvider(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
            timeout=timeout,
        ),
        GitHubOAuthProvider(
            client_id=settings.GITHUB_CLIENT_ID,
            client_secret=settings.GITHUB_CLIENT_SECRET,
            redirect_uri=settings.GITHUB_REDIRECT_URI,
            timeout=timeout,
        ),
    ]


def create_app(
    settings: Optional[Settings] = None,
    session_store: Optional[SessionStore] = None,
    credential_store: Optional[CredentialStore] = None,
    oauth_providers: Optional[list[OAuthProvider]] = None,
) -> FastAPI:
    """Build the gateway application. Collaborators can be injected for tests."""
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="authgate",
        description="Session gateway for local and federated (Google, GitHub) sign-in",
        version="0.1.0",
    )

    app.state.settings = settings
    app.state.session_store = session_store or build_session_store(settings)
    app.state.password_provider = PasswordAuthProvider(credential_store or InMemoryCredentialStore())

    providers = oauth_providers if oauth_providers is not None else build_oauth_providers(settings)
    app.state.oauth_controllers = {
        provider.name: OAuthHandshakeController(provider, app.state.session_store, settings)
        for provider in providers
    }
    for name, controller in app.state.oauth_controllers.items():
        if controller.configured:
            logger.info(f"{name} OAuth configured (client id {controller.provider.client_id[:10]}...)")
        else:
            logger.info(f"{name} OAuth not configured")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIDMiddleware)

    app.add_exception_handler(AuthError, auth_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler_factory(settings.DEBUG))

    app.include_router(auth.router, prefix=settings.API_PREFIX)
    app.include_router(auth_oauth.router, prefix=settings.API_PREFIX)

    @app.on_event("startup")
    async def startup_event():
        """Validate configuration and connect the session backend."""
        logger.info("Starting authgate...")
        settings.validate_production_config()

        store = app.state.session_store
        connected = await connect_session_store(store, settings)
        if connected is not store:
            app.state.session_store = connected
            for controller in app.state.oauth_controllers.values():
                controller.session_store = connected
        logger.info(f"Session store: {app.state.session_store.backend}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown."""
        logger.info("Shutting down authgate...")
        await app.state.session_store.disconnect()

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "env": settings.APP_ENV,
            "session_store": app.state.session_store.backend,
        }

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("authgate.main:app", host="0.0.0.0", port=default_settings.PORT)
