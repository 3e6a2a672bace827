from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthProviderName(str, Enum):
    local = "local"
    google = "google"
    github = "github"


class Identity(BaseModel):
    """Canonical, provider-tagged user profile.

    ``id`` is only unique within its provider; identities from different
    providers are never merged.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: str
    name: str = ""
    email: Optional[str] = None
    picture: Optional[str] = None
    provider: AuthProviderName


class Session(BaseModel):
    """Server-side session record. Immutable; stores swap in updated copies."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    user: Identity
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


# Request / response models

class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SignupRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class AuthResponse(BaseModel):
    success: bool = True
    user: Identity


class LogoutResponse(BaseModel):
    success: bool = True


class ProviderInfo(BaseModel):
    name: str
    display_name: str
    type: str
    available: bool


class ProvidersResponse(BaseModel):
    providers: list[ProviderInfo] = Field(default_factory=list)
