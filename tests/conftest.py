from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from authgate.auth_providers.credentials import InMemoryCredentialStore
from authgate.auth_providers.providers import ProviderOutcome
from authgate.auth_providers.providers.oauth_base import OAuthProvider
from authgate.auth_providers.session import InMemorySessionStore
from authgate.core.config import Settings
from authgate.main import create_app


TEST_SECRET = "test-session-secret-0123456789abcdef"


class MutableClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeOAuthProvider(OAuthProvider):
    """OAuth provider whose round trip returns a preset outcome."""

    def __init__(self, name: str, configured: bool = True, outcome: Optional[ProviderOutcome] = None):
        super().__init__(
            client_id=f"{name}-client-id" if configured else "",
            client_secret=f"{name}-client-secret" if configured else "",
            redirect_uri=f"http://testserver/api/auth/{name}/callback",
            authorize_url=f"https://{name}.example/authorize",
            token_url=f"https://{name}.example/token",
            userinfo_url=f"https://{name}.example/userinfo",
            scopes=["profile", "email"],
        )
        self._name = name
        self.outcome = outcome or ProviderOutcome(profile={"id": f"{name}-123", "displayName": "Ada"})
        self.calls: list[dict[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    async def exchange(self, params: Mapping[str, str]) -> ProviderOutcome:
        self.calls.append(dict(params))
        return self.outcome

    async def fetch_profile(self, client: httpx.AsyncClient, access_token: str) -> Optional[dict[str, Any]]:
        return self.outcome.profile


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        APP_ENV="test",
        SESSION_SECRET=TEST_SECRET,
        GOOGLE_CLIENT_ID="google-client-id",
        GOOGLE_CLIENT_SECRET="google-client-secret",
        GITHUB_CLIENT_ID="github-client-id",
        GITHUB_CLIENT_SECRET="github-client-secret",
        REDIS_URL=None,
    )


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def session_store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def google_provider() -> FakeOAuthProvider:
    return FakeOAuthProvider(
        "google",
        outcome=ProviderOutcome(profile={
            "id": "g-1",
            "displayName": "Grace Hopper",
            "emails": [{"value": "grace@example.com"}],
            "photos": [{"value": "https://lh3.example/photo.jpg?sz=50"}],
            "_json": {"sub": "g-1"},
        }),
    )


@pytest.fixture
def github_provider() -> FakeOAuthProvider:
    return FakeOAuthProvider(
        "github",
        outcome=ProviderOutcome(profile={
            "id": "42",
            "username": "octocat",
            "_json": {"id": 42, "login": "octocat", "avatar_url": "https://avatars.example/u/42"},
        }),
    )


@pytest.fixture
def app(settings, session_store, credential_store, google_provider, github_provider):
    return create_app(
        settings=settings,
        session_store=session_store,
        credential_store=credential_store,
        oauth_providers=[google_provider, github_provider],
    )


@pytest_asyncio.fixture
async def api_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def start_handshake(client: AsyncClient, provider: str) -> str:
    """Begin a handshake and return the state the provider would echo back."""
    response = await client.get(f"/api/auth/{provider}")
    assert response.status_code == 307
    query = parse_qs(urlsplit(response.headers["location"]).query)
    return query["state"][0]


def redirect_query(response: httpx.Response) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(response.headers["location"]).query).items()}
