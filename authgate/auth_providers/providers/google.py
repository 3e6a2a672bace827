"""Google OAuth 2.0 / OpenID Connect provider."""

from typing import Any, Optional

import httpx

from .oauth_base import OAuthProvider
from ...models import AuthProviderName


class GoogleOAuthProvider(OAuthProvider):
    """Google OAuth 2.0 provider."""

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, **kwargs):
        super().__init__(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            userinfo_url="https://www.googleapis.com/oauth2/v3/userinfo",
            scopes=["profile", "email"],
            **kwargs,
        )

    @property
    def name(self) -> str:
        return AuthProviderName.google.value

    async def fetch_profile(self, client: httpx.AsyncClient, access_token: str) -> Optional[dict[str, Any]]:
        payload = await self.get_json(client, self.userinfo_url, access_token)
        if not isinstance(payload, dict) or not (payload.get("sub") or payload.get("id")):
            return None
        return build_google_profile(payload)


def build_google_profile(payload: dict[str, Any]) -> dict[str, Any]:
    """Shape an OIDC userinfo payload into the common raw profile."""
    profile: dict[str, Any] = {
        "provider": AuthProviderName.google.value,
        "id": payload.get("sub") or payload.get("id"),
        "displayName": payload.get("name"),
        "name": {
            "familyName": payload.get("family_name"),
            "givenName": payload.get("given_name"),
        },
        "_json": payload,
    }

    # Only verified addresses are disclosed.
    email = payload.get("email")
    if email and payload.get("email_verified") in (True, "true"):
        profile["emails"] = [{"value": email, "verified": True}]

    picture = payload.get("picture")
    if picture:
        profile["photos"] = [{"value": picture}]

    return profile
