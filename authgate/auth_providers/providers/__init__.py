"""
Authentication provider abstraction.

Supports multiple authentication methods (password, OAuth) behind one
interface so new providers only need a subclass.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence


@dataclass
class ProviderOutcome:
    """
    Result of a provider round trip, modelled on the (error, user, info)
    triple of OAuth client libraries.

    The controller decides what a combination means; an error always wins
    over a profile.
    """

    error: Optional[Exception] = None
    profile: Optional[dict[str, Any]] = None
    info: Optional[str] = None


class AuthProvider(ABC):
    """
    Base authentication provider interface.

    All authentication methods (password, OAuth, etc.) implement this interface.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier ('local', 'google', 'github')."""
        pass

    @property
    def display_name(self) -> str:
        return self.name.title()

    def get_login_url(self, state: str, scopes: Optional[Sequence[str]] = None) -> Optional[str]:
        """
        Get OAuth login URL (None for non-OAuth providers).

        Args:
            state: CSRF protection state token
            scopes: Scopes to request instead of the provider defaults

        Returns:
            OAuth login URL or None
        """
        return None

    def requires_redirect(self) -> bool:
        """Check if this provider requires OAuth redirect flow."""
        return False


__all__ = ["AuthProvider", "ProviderOutcome"]
