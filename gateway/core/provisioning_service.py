"""
Provisioning Service Layer: lazy local user creation

Resolves an authenticated external identity to a local ``users`` row,
creating it the first time the subject is seen.

Architecture:
    /api/me ──> ProvisioningService.resolve() ──> UserStore ──> Postgres | memory

Features:
    - Idempotent lookup-or-insert keyed by the identity subject id
    - Concurrent first logins converge on a single row (the losing insert
      re-reads the winner's row instead of surfacing a duplicate-key error)
    - Read-only projection of active band memberships
    - The one canonical "profile complete" predicate
"""
from __future__ import annotations

import logging
from typing import Optional

from gateway.core.exceptions import ProvisioningError
from gateway.core.redaction import redact_email, redact_id
from gateway.storage import BandMembership, ConstraintViolation, LocalUser, UserStore

logger = logging.getLogger(__name__)

PROFILE_REQUIRED_FIELDS = ("first_name", "last_name", "display_name", "hometown", "instrument")


def is_profile_complete(user: LocalUser) -> bool:
    """True when every mandatory profile field holds non-blank text."""
    for field_name in PROFILE_REQUIRED_FIELDS:
        value = getattr(user, field_name, None)
        if not isinstance(value, str) or not value.strip():
            return False
    return True


class ProvisioningService:
    """Resolve identities to local users on top of a ``UserStore``."""

    def __init__(self, store: UserStore):
        self.store = store

    def resolve(self, subject_id: str, email: Optional[str]) -> LocalUser:
        """Return the local user for ``subject_id``, creating it if absent.

        Raises:
            ProvisioningError: Insert conflicted but no row exists for the
                subject (e.g. the email belongs to another identity)
        """
        user = self.store.find_by_subject(subject_id)
        if user is not None:
            logger.debug("User found in database (sub=%s)", redact_id(subject_id))
            return user

        logger.info("Creating new user record (sub=%s, email=%s)", redact_id(subject_id), redact_email(email))
        try:
            return self.store.insert_user(subject_id, email, None)
        except ConstraintViolation as exc:
            logger.info(
                "Provisioning conflict on %s for sub=%s; re-reading",
                exc.detail.get("field", "unknown"),
                redact_id(subject_id),
            )

        user = self.store.find_by_subject(subject_id)
        if user is None:
            logger.error("Provisioning failed after conflict (sub=%s)", redact_id(subject_id))
            raise ProvisioningError("User row could not be created")
        return user

    def active_memberships(self, user_id: str) -> list[BandMembership]:
        memberships = self.store.active_memberships(user_id)
        logger.debug("User %s has %d active band(s)", redact_id(user_id), len(memberships))
        return memberships
