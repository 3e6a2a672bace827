"""
Local credential storage.

In-memory placeholder for a durable user store. The store owns password
material: callers hand it plain passwords and it keeps only passlib hashes.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from passlib.context import CryptContext

from ..errors import ConflictError


logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password for storage."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain text password against its hashed version."""
    return pwd_context.verify(plain_password, hashed_password)


@dataclass(frozen=True)
class CredentialRecord:
    id: str
    email: str
    name: str
    password_hash: str


class CredentialStore(ABC):
    """Keyed lookup/insert of local credentials. Email is the unique key."""

    @abstractmethod
    async def get(self, email: str) -> Optional[CredentialRecord]:
        pass

    @abstractmethod
    async def insert(self, email: str, password: str, name: str) -> CredentialRecord:
        """
        Insert a new credential record.

        Raises:
            ConflictError: If a record for ``email`` already exists
        """
        pass

    async def verify(self, email: str, password: str) -> Optional[CredentialRecord]:
        """Return the record for ``email`` if ``password`` matches it."""
        record = await self.get(email)
        if record is None or not verify_password(password, record.password_hash):
            return None
        return record


class InMemoryCredentialStore(CredentialStore):
    def __init__(self):
        self._records: dict[str, CredentialRecord] = {}
        self._lock = threading.Lock()
        self._last_id_ms = 0

    def _next_id(self) -> str:
        # Caller holds the lock. Ids stay strictly increasing within the same millisecond.
        now_ms = int(time.time() * 1000)
        self._last_id_ms = max(now_ms, self._last_id_ms + 1)
        return f"u_{self._last_id_ms}"

    async def get(self, email: str) -> Optional[CredentialRecord]:
        with self._lock:
            return self._records.get(email)

    async def insert(self, email: str, password: str, name: str) -> CredentialRecord:
        password_hash = hash_password(password)
        with self._lock:
            if email in self._records:
                raise ConflictError("Email already exists")
            record = CredentialRecord(
                id=self._next_id(),
                email=email,
                name=name,
                password_hash=password_hash,
            )
            self._records[email] = record
        logger.info(f"Registered local account {record.id}")
        return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
