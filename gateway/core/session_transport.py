"""Bind the session credential to an HTTP cookie."""
from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_COOKIE_NAME = "bndy_session"
# Werkzeug's max_cookie_size; browsers drop larger cookies
MAX_COOKIE_BYTES = 4093


class SessionTransport:
    """Set, read and clear the session cookie.

    Args:
        cookie_name: Cookie name
        max_age: Lifetime in seconds, mirrors the credential validity
        domain: Cookie domain (``.example.com`` shares it with all subdomains);
            ``None`` scopes it to the serving host
        secure: Only send over HTTPS
    """

    def __init__(
        self,
        cookie_name: str = DEFAULT_COOKIE_NAME,
        max_age: int = 7 * 24 * 60 * 60,
        domain: Optional[str] = None,
        secure: bool = True,
    ):
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.domain = domain or None
        self.secure = secure

    def attach(self, response, credential: str) -> None:
        if len(credential) > MAX_COOKIE_BYTES:
            logger.warning(
                "Session credential is %d bytes, over the %d-byte cookie limit; the browser may drop it",
                len(credential),
                MAX_COOKIE_BYTES,
            )
        response.set_cookie(
            self.cookie_name,
            credential,
            max_age=self.max_age,
            path="/",
            domain=self.domain,
            secure=self.secure,
            httponly=True,
            samesite="Lax",
        )

    def extract(self, request) -> Optional[str]:
        return request.cookies.get(self.cookie_name) or None

    def clear(self, response) -> None:
        response.delete_cookie(
            self.cookie_name,
            path="/",
            domain=self.domain,
            secure=self.secure,
            httponly=True,
            samesite="Lax",
        )
