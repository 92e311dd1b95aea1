"""Cognito hosted-UI client for the OAuth2 authorization-code flow.

Responsibilities:
    - Build the authorize URL (federated to Google via ``identity_provider``)
    - Redeem an authorization code at the token endpoint (server-to-server)
    - Decode the returned ID token into an ``Identity``

Security:
    - The client secret only ever travels in the token request body
    - Raw tokens and the secret are never logged or put in exception messages
    - The token request is bounded by ``timeout``; a timeout is a failed exchange
    - ID token signatures are verified against the provider JWKS (RS256) with
      issuer, audience and ``token_use`` checks. Skipping verification is only
      accepted in demo mode, where the token is trusted because it arrived over
      the secret-authenticated exchange that just completed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import jwt
import requests
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri
from jwt import PyJWKClient

from gateway.core.exceptions import TokenExchangeFailed
from gateway.core.redaction import redact_email, redact_id

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "email openid profile phone"
DEFAULT_TIMEOUT = 10
JWKS_CACHE_LIFESPAN = 3600


@dataclass(frozen=True)
class TokenSet:
    """Tokens returned by a successful code exchange."""
    access_token: str
    id_token: str
    refresh_token: Optional[str] = None


@dataclass(frozen=True)
class Identity:
    """Subset of ID token claims the gateway relies on."""
    subject_id: str
    email: Optional[str]
    username: Optional[str]


class IdentityProviderClient:
    """Authorization-code client for a Cognito user pool domain.

    Args:
        domain: Hosted UI base URL (e.g. ``https://<prefix>.auth.<region>.amazoncognito.com``)
        client_id: App client ID
        client_secret: App client secret
        redirect_uri: Callback URL registered with the app client
        identity_provider: Upstream federated IdP forced on the hosted UI
        issuer: User pool issuer URL, used for JWKS lookup and ``iss`` checks
        verify_id_token: Verify the ID token signature and claims
        timeout: Token endpoint timeout in seconds
    """

    def __init__(
        self,
        domain: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        identity_provider: str = "Google",
        issuer: str = "",
        verify_id_token: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        scope: str = DEFAULT_SCOPE,
    ):
        self.domain = domain.rstrip("/")
        self.client_id = client_id
        self._client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.identity_provider = identity_provider
        self.issuer = issuer.rstrip("/")
        self.verify_id_token = verify_id_token
        self.timeout = timeout
        self.scope = scope
        self._jwks_client: Optional[PyJWKClient] = None

        if verify_id_token and not self.issuer:
            raise ValueError("issuer is required when ID token verification is enabled")

    @classmethod
    def from_config(cls, cfg) -> "IdentityProviderClient":
        return cls(
            domain=cfg.cognito_domain,
            client_id=cfg.cognito_client_id,
            client_secret=cfg.cognito_client_secret,
            redirect_uri=cfg.oauth_redirect_uri,
            identity_provider=cfg.cognito_identity_provider,
            issuer=cfg.cognito_issuer,
            verify_id_token=cfg.id_token_verify,
            timeout=cfg.token_exchange_timeout,
        )

    def __repr__(self) -> str:
        return f"IdentityProviderClient(domain={self.domain!r}, client_id={self.client_id!r})"

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.domain}/oauth2/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.domain}/oauth2/token"

    @property
    def jwks_uri(self) -> str:
        return f"{self.issuer}/.well-known/jwks.json"

    # ─────────────────────────────────────────────────────────────────────────
    # Authorization request
    # ─────────────────────────────────────────────────────────────────────────
    def build_authorization_url(self, state: str) -> str:
        """Compose the hosted-UI authorize URL for ``state``.

        The output depends only on configuration and ``state``.
        """
        return prepare_grant_uri(
            self.authorize_endpoint,
            client_id=self.client_id,
            response_type="code",
            redirect_uri=self.redirect_uri,
            scope=self.scope,
            state=state,
            identity_provider=self.identity_provider or None,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Token exchange
    # ─────────────────────────────────────────────────────────────────────────
    def exchange_code(self, code: str) -> TokenSet:
        """Redeem an authorization code for tokens.

        Raises:
            TokenExchangeFailed: Network error, timeout, non-2xx status,
                non-JSON body or missing tokens
        """
        data = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        try:
            resp = requests.post(
                self.token_endpoint,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            logger.error("Token exchange timed out after %ss", self.timeout)
            raise TokenExchangeFailed("Token endpoint timed out") from exc
        except requests.RequestException as exc:
            logger.error("Token exchange request failed: %s", type(exc).__name__)
            raise TokenExchangeFailed("Token endpoint unreachable") from exc

        if not 200 <= resp.status_code < 300:
            logger.error(
                "Token endpoint returned HTTP %s (error=%s)",
                resp.status_code,
                _upstream_error(resp),
            )
            raise TokenExchangeFailed(f"Token endpoint returned HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.error("Token endpoint returned a non-JSON body")
            raise TokenExchangeFailed("Malformed token response") from exc

        if not isinstance(payload, dict):
            raise TokenExchangeFailed("Malformed token response")

        missing = [
            name for name in ("access_token", "id_token")
            if not isinstance(payload.get(name), str) or not payload.get(name)
        ]
        if missing:
            logger.error("Token response missing fields: %s", ", ".join(missing))
            raise TokenExchangeFailed("Malformed token response")

        refresh_token = payload.get("refresh_token")
        logger.info("Token exchange successful")
        return TokenSet(
            access_token=payload["access_token"],
            id_token=payload["id_token"],
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # ID token
    # ─────────────────────────────────────────────────────────────────────────
    def get_jwks_client(self) -> PyJWKClient:
        """Lazily create the cached JWKS client for the user pool."""
        if self._jwks_client is None:
            logger.info("Initializing JWKS client for: %s", self.jwks_uri)
            self._jwks_client = PyJWKClient(
                self.jwks_uri,
                cache_keys=True,
                max_cached_keys=16,
                lifespan=JWKS_CACHE_LIFESPAN,
            )
        return self._jwks_client

    def decode_identity(self, id_token: str) -> Identity:
        """Extract subject, email and username from an ID token.

        Raises:
            TokenExchangeFailed: Token is malformed, fails verification or has no subject
        """
        try:
            if self.verify_id_token:
                claims = self._verified_claims(id_token)
            else:
                claims = jwt.decode(id_token, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            logger.error("ID token rejected: %s", type(exc).__name__)
            raise TokenExchangeFailed("Invalid ID token") from exc

        subject_id = claims.get("sub")
        if not isinstance(subject_id, str) or not subject_id:
            logger.error("ID token has no subject claim")
            raise TokenExchangeFailed("Invalid ID token")

        email = claims.get("email")
        username = claims.get("cognito:username") or claims.get("preferred_username") or email

        logger.info(
            "User authenticated (sub=%s, email=%s)",
            redact_id(subject_id),
            redact_email(email),
        )
        return Identity(subject_id=subject_id, email=email, username=username)

    def _verified_claims(self, id_token: str) -> dict:
        signing_key = self.get_jwks_client().get_signing_key_from_jwt(id_token)
        claims = jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self.client_id,
            issuer=self.issuer,
            options={"require": ["exp", "iat", "sub"]},
            leeway=5,
        )
        token_use = claims.get("token_use")
        if token_use != "id":
            raise jwt.InvalidTokenError(f"Unexpected token_use: {token_use}")
        return claims


def _upstream_error(resp) -> str:
    """Best-effort OAuth2 ``error`` field from an error response."""
    try:
        body = resp.json()
    except ValueError:
        return "unknown"
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return "unknown"
