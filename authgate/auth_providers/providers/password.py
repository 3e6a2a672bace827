"""Password-based authentication provider."""

import logging

from . import AuthProvider
from ..credentials import CredentialRecord, CredentialStore
from ...errors import AuthenticationFailure, ValidationError
from ...models import AuthProviderName, Identity


logger = logging.getLogger(__name__)


def identity_from_record(record: CredentialRecord) -> Identity:
    return Identity(
        id=record.id,
        name=record.name,
        email=record.email,
        provider=AuthProviderName.local,
    )


class PasswordAuthProvider(AuthProvider):
    """
    Email/password authentication provider.

    Password verification and storage are delegated to the credential store.
    Only the presence of fields is validated here.
    """

    def __init__(self, credential_store: CredentialStore):
        self.credential_store = credential_store

    @property
    def name(self) -> str:
        return AuthProviderName.local.value

    @property
    def display_name(self) -> str:
        return "Email/Password"

    async def authenticate(self, email: str | None, password: str | None) -> Identity:
        """
        Authenticate user with email and password.

        Raises:
            ValidationError: 400 if a field is missing
            AuthenticationFailure: 401 if credentials are invalid
        """
        if not email or not password:
            raise ValidationError("Missing credentials")

        record = await self.credential_store.verify(email, password)
        if record is None:
            logger.info("Local login rejected")
            raise AuthenticationFailure("Invalid email or password")

        return identity_from_record(record)

    async def register(self, email: str | None, password: str | None, name: str | None) -> Identity:
        """
        Create a local account.

        Raises:
            ValidationError: 400 if a field is missing
            ConflictError: 409 if the email is already registered
        """
        if not email or not password or not name:
            raise ValidationError("Missing fields")

        record = await self.credential_store.insert(email, password, name)
        return identity_from_record(record)
