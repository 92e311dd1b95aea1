"""Data-store collaborators for user provisioning.

``PostgresUserStore`` is used whenever ``DATABASE_URL`` is configured;
``MemoryUserStore`` backs demo mode and the test-suite.
"""
from typing import Optional, Protocol

from .errors import ConstraintViolation, DatabaseUnavailable, StorageError
from .memory import MemoryUserStore
from .models import BandMembership, LocalUser


class UserStore(Protocol):
    def find_by_subject(self, cognito_id: str) -> Optional[LocalUser]: ...

    def insert_user(self, cognito_id: str, email: Optional[str], phone_number: Optional[str] = None) -> LocalUser: ...

    def active_memberships(self, user_id: str) -> list[BandMembership]: ...


__all__ = [
    "BandMembership",
    "ConstraintViolation",
    "DatabaseUnavailable",
    "LocalUser",
    "MemoryUserStore",
    "StorageError",
    "UserStore",
]
