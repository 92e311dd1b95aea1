"""Signed, self-contained session credential (HS256 JWT).

The credential carries everything a request needs to identify the caller,
so there is no server-side session table. Acceptance is bounded by
``issued_at + validity``; the signature is verified before any claim is read.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Callable, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from gateway.core.exceptions import Expired, InvalidSignature

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_VALIDITY = timedelta(days=7)
MIN_SECRET_BYTES = 32


@dataclass(frozen=True)
class SessionRecord:
    """Authenticated identity plus a snapshot of the provider tokens."""
    subject_id: str
    username: Optional[str]
    email: Optional[str]
    access_token: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    issued_at: int = 0
    expires_at: int = 0

    def to_claims(self) -> dict:
        return {
            "sub": self.subject_id,
            "username": self.username,
            "email": self.email,
            "tokens": {
                "access": self.access_token,
                "id": self.id_token,
                "refresh": self.refresh_token,
            },
            "iat": self.issued_at,
            "exp": self.expires_at,
        }

    @classmethod
    def from_claims(cls, claims: dict) -> "SessionRecord":
        tokens = claims.get("tokens") or {}
        if not isinstance(tokens, dict):
            tokens = {}
        return cls(
            subject_id=claims["sub"],
            username=claims.get("username"),
            email=claims.get("email"),
            access_token=tokens.get("access"),
            id_token=tokens.get("id"),
            refresh_token=tokens.get("refresh"),
            issued_at=int(claims["iat"]),
            expires_at=int(claims["exp"]),
        )


class SessionCodec:
    """Sign and verify session credentials with a server-held secret.

    Args:
        secret: HMAC key
        validity: Credential lifetime counted from ``issued_at``
        clock: Wall-clock source in epoch seconds
    """

    def __init__(self, secret: str, validity: timedelta = DEFAULT_VALIDITY, clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("Session signing secret is required")
        self._secret = secret
        self.validity = validity
        self._clock = clock

    def __repr__(self) -> str:
        return f"SessionCodec(validity={self.validity!r})"

    @property
    def validity_seconds(self) -> int:
        return int(self.validity.total_seconds())

    def sign(self, record: SessionRecord) -> str:
        """Serialize ``record`` into a signed credential.

        ``issued_at`` defaults to now; ``expires_at`` is always recomputed as
        ``issued_at + validity``.
        """
        issued_at = record.issued_at or int(self._clock())
        record = replace(record, issued_at=issued_at, expires_at=issued_at + self.validity_seconds)
        return jwt.encode(record.to_claims(), self._secret, algorithm=ALGORITHM)

    def verify(self, credential: str) -> SessionRecord:
        """Decode a credential after checking signature and expiry.

        Raises:
            InvalidSignature: Malformed token, wrong key or algorithm, missing claims
            Expired: Validity window elapsed
        """
        try:
            claims = jwt.decode(
                credential,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "iat", "exp"]},
            )
        except ExpiredSignatureError as exc:
            raise Expired("Session expired") from exc
        except InvalidTokenError as exc:
            raise InvalidSignature(f"Invalid session: {type(exc).__name__}") from exc

        try:
            record = SessionRecord.from_claims(claims)
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidSignature("Invalid session: malformed claims") from exc

        if record.issued_at + self.validity_seconds <= self._clock():
            raise Expired("Session expired")
        return record
