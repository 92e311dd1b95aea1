"""Authentication routes.

Flow:
    GET /auth/google    issue state ──> 302 to the Cognito hosted UI (Google)
    GET /auth/callback  consume state ──> exchange code ──> session cookie
                        ──> 302 to {frontend}/dashboard
    GET /api/me         verified session ──> provisioned user + active bands
    GET /auth/session   verified session ──> minimal identity
    POST /auth/logout   clear cookie

Every callback failure becomes a 302 to ``{frontend}/login?error=<code>``
with a coarse code; details only go to the server log.
"""
from __future__ import annotations
import logging
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request

from gateway.api.context import EXTENSION_KEY, AuthComponents, get_auth
from gateway.api.decorators import current_session, require_session
from gateway.core.exceptions import AuthError, MissingCode, ProviderError, ProvisioningError
from gateway.core.identity_provider import IdentityProviderClient
from gateway.core.provisioning_service import ProvisioningService, is_profile_complete
from gateway.core.redaction import redact_id
from gateway.core.session_codec import SessionCodec, SessionRecord
from gateway.core.session_transport import SessionTransport
from gateway.core.state_store import MemoryStateStore, StateStore
from gateway.storage import MemoryUserStore, StorageError, UserStore

bp = Blueprint("auth", __name__)

logger = logging.getLogger(__name__)

MAX_ERROR_CODE_LENGTH = 64


def init_auth(
    app,
    cfg,
    user_store: Optional[UserStore] = None,
    state_store: Optional[StateStore] = None,
    identity_provider: Optional[IdentityProviderClient] = None,
) -> AuthComponents:
    """Build the authentication components and register them on ``app``.

    Collaborators may be injected (tests, or a shared state store in a
    multi-process deployment); otherwise they are built from ``cfg``.
    """
    if user_store is None:
        user_store = _build_user_store(app, cfg)

    components = AuthComponents(
        state_store=state_store if state_store is not None else MemoryStateStore(ttl_seconds=cfg.state_ttl_seconds),
        identity_provider=identity_provider if identity_provider is not None else IdentityProviderClient.from_config(cfg),
        session_codec=SessionCodec(cfg.session_secret, validity=timedelta(days=cfg.session_ttl_days)),
        session_transport=SessionTransport(
            cookie_name=cfg.session_cookie_name,
            max_age=cfg.session_max_age,
            domain=cfg.session_cookie_domain,
            secure=cfg.session_cookie_secure,
        ),
        provisioning=ProvisioningService(user_store),
    )
    app.extensions[EXTENSION_KEY] = components
    return components


def _build_user_store(app, cfg) -> UserStore:
    if cfg.database_url:
        from gateway.storage.postgres import Database, PostgresUserStore

        database = Database(cfg.database_url)
        app.extensions["database"] = database
        return PostgresUserStore(database)

    logger.warning("DATABASE_URL not set: using in-memory user store (demo only)")
    return MemoryUserStore()


def _login_redirect(error_code: str):
    cfg = current_app.config["APP_CONFIG"]
    query = urlencode({"error": error_code[:MAX_ERROR_CODE_LENGTH]})
    return redirect(f"{cfg.frontend_url}/login?{query}")


def _epoch_millis(seconds: int) -> int:
    return int(seconds) * 1000


# ─────────────────────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/auth/google")
def login():
    """Start the authorization-code flow."""
    cfg = current_app.config["APP_CONFIG"]
    auth = get_auth()

    origin = request.headers.get("Referer") or cfg.frontend_url
    state = auth.state_store.issue(origin)
    authorization_url = auth.identity_provider.build_authorization_url(state)

    logger.info(
        "Initiating Google OAuth flow (state=%s, redirect_uri=%s)",
        redact_id(state),
        auth.identity_provider.redirect_uri,
    )
    return redirect(authorization_url)


@bp.route("/auth/callback")
def callback():
    """Handle the provider redirect and issue the session cookie."""
    cfg = current_app.config["APP_CONFIG"]
    auth = get_auth()

    code = request.args.get("code")
    state = request.args.get("state")
    error = request.args.get("error")

    logger.info(
        "Received callback (has_code=%s, has_state=%s, error=%s)",
        bool(code),
        bool(state),
        error,
    )

    try:
        # State goes first so a provider error still burns the token
        auth.state_store.consume(state)

        if error:
            raise ProviderError(error)
        if not code:
            raise MissingCode("No authorization code received")

        tokens = auth.identity_provider.exchange_code(code)
        identity = auth.identity_provider.decode_identity(tokens.id_token)

        credential = auth.session_codec.sign(
            SessionRecord(
                subject_id=identity.subject_id,
                username=identity.username,
                email=identity.email,
                access_token=tokens.access_token,
                id_token=tokens.id_token,
                refresh_token=tokens.refresh_token,
            )
        )
    except AuthError as exc:
        logger.error("Callback failed (%s): %s", exc.error_code, type(exc).__name__)
        return _login_redirect(exc.error_code)

    response = redirect(f"{cfg.frontend_url}/dashboard")
    auth.session_transport.attach(response, credential)
    logger.info("Session created for sub=%s, redirecting to dashboard", redact_id(identity.subject_id))
    return response


@bp.route("/api/me")
@require_session
def me():
    """Return the authenticated identity, local user row and active bands."""
    auth = get_auth()
    record = current_session()

    try:
        user = auth.provisioning.resolve(record.subject_id, record.email)
        bands = auth.provisioning.active_memberships(user.id)
    except (ProvisioningError, StorageError) as exc:
        logger.error("/api/me failed for sub=%s: %s", redact_id(record.subject_id), type(exc).__name__)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "user": {
            "id": user.id,
            "cognitoId": record.subject_id,
            "username": record.username,
            "email": record.email,
            "phone": user.phone_number,
            "createdAt": user.created_at.isoformat() if user.created_at else None,
            "profileCompleted": is_profile_complete(user),
        },
        "bands": [band.to_dict() for band in bands],
        "session": {
            "issuedAt": _epoch_millis(record.issued_at),
            "expiresAt": _epoch_millis(record.expires_at),
        },
    })


@bp.route("/auth/logout", methods=["POST"])
def logout():
    """Clear the session cookie."""
    auth = get_auth()
    logger.info("User logging out")
    response = jsonify({"success": True})
    auth.session_transport.clear(response)
    return response


@bp.route("/auth/session")
@require_session
def session_info():
    """Minimal identity for the current session."""
    record = current_session()
    return jsonify({
        "authenticated": True,
        "user": {
            "id": record.subject_id,
            "username": record.username,
            "email": record.email,
        },
    })
