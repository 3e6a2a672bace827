"""
Base OAuth provider implementation.

Handles the parts of the authorization-code flow every provider shares:
building the authorization URL, exchanging the code for an access token and
fetching the profile. Subclasses supply endpoints and turn the provider's
payload into the common raw profile shape consumed by the normalizer:

    {"id", "displayName", "username", "emails": [{"value"}],
     "photos": [{"value"}], "_json": <provider payload>}
"""

import logging
from abc import abstractmethod
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import urlencode

import httpx

from . import AuthProvider, ProviderOutcome
from ...errors import ProviderError, TokenExchangeError


logger = logging.getLogger(__name__)


class OAuthProvider(AuthProvider):
    """
    Base class for OAuth 2.0 providers.

    The HTTP transport is injectable so tests can run the full exchange against
    an httpx.MockTransport.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        authorize_url: str,
        token_url: str,
        userinfo_url: str,
        scopes: Sequence[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize OAuth provider.

        Args:
            client_id: OAuth client ID
            client_secret: OAuth client secret
            redirect_uri: Callback URL registered with the provider
            authorize_url: Provider's authorization endpoint
            token_url: Provider's token endpoint
            userinfo_url: Provider's user info endpoint
            scopes: Default OAuth scopes to request
            timeout: Timeout in seconds for every provider call
            transport: Optional httpx transport override
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.userinfo_url = userinfo_url
        self.scopes = list(scopes)
        self.timeout = timeout
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def requires_redirect(self) -> bool:
        """OAuth requires redirect flow."""
        return True

    def get_login_url(self, state: str, scopes: Optional[Sequence[str]] = None) -> str:
        """
        Generate OAuth authorization URL.

        Args:
            state: CSRF protection state token
            scopes: Scopes to request instead of the defaults

        Returns:
            OAuth authorization URL
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes or self.scopes),
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def exchange(self, params: Mapping[str, str]) -> ProviderOutcome:
        """
        Run the provider round trip for a callback.

        Never raises for provider-side problems: they are reported through the
        outcome's ``error``. A missing profile is reported as ``profile=None``.
        """
        provider_error = params.get("error")
        if provider_error:
            description = params.get("error_description") or provider_error
            return ProviderOutcome(error=ProviderError(description), info=provider_error)

        code = params.get("code")
        if not code:
            return ProviderOutcome(error=ProviderError("Missing authorization code"))

        async with self._client() as client:
            try:
                access_token = await self.exchange_code(client, code)
            except TokenExchangeError as e:
                return ProviderOutcome(error=e)
            except httpx.TimeoutException:
                return ProviderOutcome(error=ProviderError(f"{self.display_name} did not respond in time"))
            except (httpx.HTTPError, ValueError) as e:
                return ProviderOutcome(error=TokenExchangeError(f"Failed to obtain access token: {e}"))

            try:
                profile = await self.fetch_profile(client, access_token)
            except httpx.TimeoutException:
                return ProviderOutcome(error=ProviderError(f"{self.display_name} did not respond in time"))
            except (httpx.HTTPError, ValueError) as e:
                return ProviderOutcome(error=ProviderError(f"Failed to fetch user profile: {e}"))

        if profile is None:
            return ProviderOutcome(info=f"{self.display_name} returned no profile")
        return ProviderOutcome(profile=profile)

    async def exchange_code(self, client: httpx.AsyncClient, code: str) -> str:
        """
        Exchange an authorization code for an access token.

        Raises:
            TokenExchangeError: If the provider refuses the code
        """
        response = await client.post(
            self.token_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
        )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.is_error or "error" in payload:
            reason = payload.get("error_description") or payload.get("error") or f"HTTP {response.status_code}"
            raise TokenExchangeError(f"Failed to obtain access token: {reason}")

        access_token = payload.get("access_token")
        if not access_token:
            raise TokenExchangeError("Failed to obtain access token: none in response")
        return access_token

    async def get_json(self, client: httpx.AsyncClient, url: str, access_token: str) -> Any:
        response = await client.get(
            url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )
        response.raise_for_status()
        return response.json()

    @abstractmethod
    async def fetch_profile(self, client: httpx.AsyncClient, access_token: str) -> Optional[dict[str, Any]]:
        """Fetch the user and build the raw profile, or None if there is no user."""
        pass
