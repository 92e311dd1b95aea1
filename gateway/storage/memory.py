from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from typing import Dict, List, Optional

from gateway.storage.errors import ConstraintViolation
from gateway.storage.models import BandMembership, LocalUser


class MemoryUserStore:
    """In-process user store for demo mode and tests.

    Mirrors the uniqueness rules of the ``users`` table: one row per
    ``cognito_id`` and per non-null email.
    """

    def __init__(self) -> None:
        self.users: Dict[str, LocalUser] = {}
        self.memberships: Dict[str, List[BandMembership]] = {}
        self._lock = threading.Lock()

    def find_by_subject(self, cognito_id: str) -> Optional[LocalUser]:
        with self._lock:
            user = self.users.get(cognito_id)
            return replace(user) if user else None

    def insert_user(self, cognito_id: str, email: Optional[str], phone_number: Optional[str] = None) -> LocalUser:
        with self._lock:
            if cognito_id in self.users:
                raise ConstraintViolation("user already exists", {"field": "cognito_id"})
            if email and any(u.email == email for u in self.users.values()):
                raise ConstraintViolation("user already exists", {"field": "email"})
            user = LocalUser(id=str(uuid.uuid4()), cognito_id=cognito_id, email=email, phone_number=phone_number)
            self.users[cognito_id] = user
            return replace(user)

    def add_membership(self, user_id: str, membership: BandMembership) -> None:
        with self._lock:
            self.memberships.setdefault(user_id, []).append(membership)

    def active_memberships(self, user_id: str) -> list[BandMembership]:
        with self._lock:
            return [m for m in self.memberships.get(user_id, []) if m.status == "active"]
