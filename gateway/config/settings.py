"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

MIN_SESSION_SECRET_BYTES = 32


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
        except OSError as exc:
            logger.warning("Failed to read /run/secrets/%s: %s", secret_name, exc)
        else:
            if secret_value:
                logger.info("Loaded %s from /run/secrets", secret_name)
                return secret_value

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _env_bool(var_name: str, default: bool) -> bool:
    value = os.environ.get(var_name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_number(var_name: str, default: float, cast=float):
    value = os.environ.get(var_name, "").strip()
    if not value:
        return default
    try:
        return cast(value)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {var_name} must be numeric, got {value!r}") from exc


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or fall back to the demo default."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        logger.warning("[demo-mode] Using default for %s", var_name)
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Cognito / OAuth2
    cognito_domain: str
    cognito_client_id: str
    cognito_client_secret: str
    oauth_redirect_uri: str
    frontend_url: str
    cognito_issuer: str = ""
    cognito_identity_provider: str = "Google"
    id_token_verify: bool = True
    token_exchange_timeout: float = 10.0

    # Session credential
    session_secret: str = ""
    session_secret_generated: bool = False
    session_ttl_days: int = 7
    session_cookie_name: str = "bndy_session"
    session_cookie_domain: Optional[str] = None
    session_cookie_secure: bool = True

    # Anti-forgery state
    state_ttl_seconds: int = 300

    # Data store
    database_url: str = ""

    # Runtime
    trusted_proxy_hops: int = 1
    log_level: str = "INFO"

    def __repr__(self) -> str:
        # Secrets stay out of reprs and therefore out of logs
        return (
            f"AppConfig(demo_mode={self.demo_mode}, cognito_domain={self.cognito_domain!r}, "
            f"client_id={self.cognito_client_id!r}, frontend_url={self.frontend_url!r})"
        )

    @property
    def session_max_age(self) -> int:
        return self.session_ttl_days * 24 * 60 * 60

    def validate(self) -> None:
        """Refuse configurations that weaken security outside demo mode.

        Raises:
            RuntimeError: Production configuration is incomplete or unsafe
        """
        if self.demo_mode:
            return

        if len(self.session_secret.encode("utf-8")) < MIN_SESSION_SECRET_BYTES:
            raise RuntimeError(
                f"SESSION_SECRET must be at least {MIN_SESSION_SECRET_BYTES} bytes in production mode."
            )
        if not self.id_token_verify:
            raise RuntimeError("ID_TOKEN_VERIFY=false is only allowed when DEMO_MODE=true.")
        if not self.cognito_issuer:
            raise RuntimeError("COGNITO_ISSUER is required for ID token verification.")
        if not self.database_url:
            raise RuntimeError("DATABASE_URL is required in production mode.")
        if not self.session_cookie_secure:
            logger.warning("SESSION_COOKIE_SECURE=false in production mode: cookie will be sent over plain HTTP")


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = _env_bool("DEMO_MODE", False)

    # ─────────────────────────────────────────────────────────────────────────
    # Secrets: /run/secrets > environment variables
    # ─────────────────────────────────────────────────────────────────────────
    session_secret = _load_secret_from_file("session_secret", "SESSION_SECRET")
    session_secret_generated = False
    if not session_secret:
        if not demo_mode:
            raise RuntimeError("SESSION_SECRET not found in /run/secrets or environment")
        session_secret = secrets.token_urlsafe(48)
        session_secret_generated = True
        logger.warning(
            "[demo-mode] Generated temporary SESSION_SECRET; sessions will not survive a restart"
        )

    cognito_client_secret = _load_secret_from_file("cognito_client_secret", "COGNITO_CLIENT_SECRET")
    if not cognito_client_secret:
        cognito_client_secret = _get_or_generate(
            "COGNITO_CLIENT_SECRET",
            demo_default="local-client-secret",
            demo_mode=demo_mode,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Identity provider
    # ─────────────────────────────────────────────────────────────────────────
    cognito_domain = _get_or_generate("COGNITO_DOMAIN", demo_default="http://localhost:9229", demo_mode=demo_mode)
    cognito_client_id = _get_or_generate("COGNITO_CLIENT_ID", demo_default="local-client", demo_mode=demo_mode)
    cognito_issuer = os.environ.get("COGNITO_ISSUER", "").strip()
    cognito_identity_provider = os.environ.get("COGNITO_IDENTITY_PROVIDER", "Google").strip()
    id_token_verify = _env_bool("ID_TOKEN_VERIFY", True)
    if demo_mode and id_token_verify and not cognito_issuer:
        logger.warning("[demo-mode] COGNITO_ISSUER unset; ID token signature verification disabled")
        id_token_verify = False

    oauth_redirect_uri = _get_or_generate(
        "OAUTH_REDIRECT_URI",
        demo_default="http://localhost:3001/auth/callback",
        demo_mode=demo_mode,
    )
    frontend_url = _get_or_generate(
        "FRONTEND_URL",
        demo_default="http://localhost:5173",
        demo_mode=demo_mode,
    ).rstrip("/")

    # ─────────────────────────────────────────────────────────────────────────
    # Cookie: explicit domain/secure configuration, mode only picks defaults
    # ─────────────────────────────────────────────────────────────────────────
    session_cookie_domain = os.environ.get("SESSION_COOKIE_DOMAIN", "").strip() or None
    session_cookie_secure = _env_bool("SESSION_COOKIE_SECURE", not demo_mode)

    cfg = AppConfig(
        demo_mode=demo_mode,
        cognito_domain=cognito_domain.rstrip("/"),
        cognito_client_id=cognito_client_id,
        cognito_client_secret=cognito_client_secret,
        oauth_redirect_uri=oauth_redirect_uri,
        frontend_url=frontend_url,
        cognito_issuer=cognito_issuer.rstrip("/"),
        cognito_identity_provider=cognito_identity_provider,
        id_token_verify=id_token_verify,
        token_exchange_timeout=_env_number("TOKEN_EXCHANGE_TIMEOUT", 10.0),
        session_secret=session_secret,
        session_secret_generated=session_secret_generated,
        session_ttl_days=_env_number("SESSION_TTL_DAYS", 7, int),
        session_cookie_name=os.environ.get("SESSION_COOKIE_NAME", "bndy_session").strip() or "bndy_session",
        session_cookie_domain=session_cookie_domain,
        session_cookie_secure=session_cookie_secure,
        state_ttl_seconds=_env_number("STATE_TTL_SECONDS", 300, int),
        database_url=os.environ.get("DATABASE_URL", "").strip(),
        trusted_proxy_hops=_env_number("TRUSTED_PROXY_HOPS", 1, int),
        log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
    cfg.validate()

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    logger.info(
        "Mode=%s; client_id=%s; idp=%s; cookie_domain=%s",
        mode_label,
        cfg.cognito_client_id,
        cfg.cognito_identity_provider,
        cfg.session_cookie_domain or "(host-only)",
    )
    if demo_mode:
        logger.warning("Demo configuration in use. Do not deploy with these defaults.")

    return cfg
