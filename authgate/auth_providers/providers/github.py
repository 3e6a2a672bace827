"""GitHub OAuth 2.0 provider."""

import logging
from typing import Any, Optional

import httpx

from .oauth_base import OAuthProvider
from ...models import AuthProviderName


logger = logging.getLogger(__name__)

GITHUB_EMAILS_URL = "https://api.github.com/user/emails"


class GitHubOAuthProvider(OAuthProvider):
    """GitHub OAuth 2.0 provider."""

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, **kwargs):
        super().__init__(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            authorize_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            userinfo_url="https://api.github.com/user",
            scopes=["user:email"],
            **kwargs,
        )

    @property
    def name(self) -> str:
        return AuthProviderName.github.value

    @property
    def display_name(self) -> str:
        return "GitHub"

    async def fetch_profile(self, client: httpx.AsyncClient, access_token: str) -> Optional[dict[str, Any]]:
        user = await self.get_json(client, self.userinfo_url, access_token)
        if not isinstance(user, dict) or user.get("id") is None:
            return None

        emails: list[dict[str, Any]] = []
        if user.get("email"):
            emails = [{"value": user["email"]}]
        else:
            # Email not public, fetch from emails endpoint
            try:
                entries = await self.get_json(client, GITHUB_EMAILS_URL, access_token)
            except httpx.HTTPStatusError as e:
                logger.warning(f"GitHub emails lookup failed: HTTP {e.response.status_code}")
                entries = []
            emails = verified_emails(entries)

        return build_github_profile(user, emails)


def verified_emails(entries: Any) -> list[dict[str, Any]]:
    """Verified addresses from /user/emails, primary first."""
    if not isinstance(entries, list):
        return []
    verified = [e for e in entries if isinstance(e, dict) and e.get("verified") and e.get("email")]
    verified.sort(key=lambda e: not e.get("primary"))
    return [{"value": e["email"], "primary": bool(e.get("primary")), "verified": True} for e in verified]


def build_github_profile(user: dict[str, Any], emails: list[dict[str, Any]]) -> dict[str, Any]:
    profile: dict[str, Any] = {
        "provider": AuthProviderName.github.value,
        "id": str(user["id"]),
        "displayName": user.get("name"),
        "username": user.get("login"),
        "profileUrl": user.get("html_url"),
        "_json": user,
    }
    if emails:
        profile["emails"] = emails
    if user.get("avatar_url"):
        profile["photos"] = [{"value": user["avatar_url"]}]
    return profile
