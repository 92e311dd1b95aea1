"""Authentication error taxonomy.

Every error carries a coarse, non-sensitive ``error_code``. The callback
route copies that code into the frontend login redirect, so it must never
contain tokens, secrets or upstream stack traces.
"""


class AuthError(Exception):
    """Base exception for all authentication gateway failures."""

    error_code = "auth_error"

    def __init__(self, message: str = "", error_code: str | None = None):
        if error_code:
            self.error_code = error_code
        super().__init__(message or self.error_code)


class InvalidState(AuthError):
    """Anti-forgery token is missing, unknown, already used or expired."""

    error_code = "invalid_state"


class ProviderError(AuthError):
    """Identity provider redirected back with an explicit error code.

    Attributes:
        error_code: The upstream OAuth2 error (e.g. ``access_denied``)
    """

    def __init__(self, upstream_code: str):
        super().__init__(f"Identity provider returned error: {upstream_code}", error_code=upstream_code)


class MissingCode(AuthError):
    """Callback reached without an authorization code."""

    error_code = "no_code"


class TokenExchangeFailed(AuthError):
    """Network failure, non-2xx or malformed payload from the token endpoint."""

    error_code = "token_exchange_failed"


class SessionError(AuthError):
    """Session credential failed verification."""

    error_code = "invalid_session"


class InvalidSignature(SessionError):
    """Credential is malformed or was not signed with the server secret."""

    error_code = "invalid_session"


class Expired(SessionError):
    """Credential's validity window has elapsed."""

    error_code = "session_expired"


class ProvisioningError(AuthError):
    """Local user row could be neither created nor re-read."""

    error_code = "provisioning_failed"
