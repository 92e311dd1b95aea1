"""Anti-forgery (OAuth2 ``state``) token store.

Flow:
    /auth/google ──> issue(origin) ──> token in authorize URL
    /auth/callback ─> consume(token) ──> origin | InvalidState

Each token is valid exactly once and for a fixed time-to-live. Expired
entries are evicted on every operation, so the store stays bounded under
sustained issuance even when callbacks never arrive.

The routes depend only on the ``StateStore`` interface. ``MemoryStateStore``
is process-local; a deployment with several worker processes needs sticky
sessions or a shared implementation of the same interface.
"""
from __future__ import annotations

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from gateway.core.exceptions import InvalidState
from gateway.core.redaction import redact_id

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
TOKEN_BYTES = 32


@dataclass(frozen=True)
class _StateEntry:
    issued_at: float
    origin_hint: str


class StateStore(ABC):
    """Issue and consume one-time anti-forgery tokens."""

    @abstractmethod
    def issue(self, origin_hint: str) -> str:
        """Create a token bound to ``origin_hint`` and return it."""

    @abstractmethod
    def consume(self, token: str | None) -> str:
        """Remove ``token`` and return its origin hint.

        Raises:
            InvalidState: Token is empty, unknown, already consumed or expired
        """


class MemoryStateStore(StateStore):
    """Lock-protected in-process store.

    Args:
        ttl_seconds: Lifetime of an issued token
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _StateEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def issue(self, origin_hint: str) -> str:
        token = secrets.token_hex(TOKEN_BYTES)
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            self._entries[token] = _StateEntry(issued_at=now, origin_hint=origin_hint)
        return token

    def consume(self, token: str | None) -> str:
        if not token:
            raise InvalidState("Missing state parameter")

        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            # pop is the check-and-remove; a racing second consumer gets None
            entry = self._entries.pop(token, None)

        if entry is None:
            logger.warning("Rejected unknown or expired state %s", redact_id(token))
            raise InvalidState("Unknown or expired state")
        return entry.origin_hint

    def _evict_expired(self, now: float) -> None:
        # Caller holds self._lock
        cutoff = now - self.ttl_seconds
        expired = [key for key, entry in self._entries.items() if entry.issued_at <= cutoff]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Evicted %d expired state token(s)", len(expired))
