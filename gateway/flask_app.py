"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with all blueprints, middleware, and configuration.
"""
from __future__ import annotations
import atexit
import logging
import os
from typing import Optional

from flask import Flask, request
from werkzeug.middleware.proxy_fix import ProxyFix

from gateway.config import AppConfig, load_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────────────────────────────────────
def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger (idempotent)."""
    root = logging.getLogger()
    if not any(getattr(handler, "_gateway_handler", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._gateway_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None, **collaborators) -> Flask:
    """Create and configure Flask application.

    Args:
        cfg: Pre-built configuration (defaults to ``load_settings()``)
        **collaborators: Optional ``user_store``, ``state_store`` and
            ``identity_provider`` overrides passed to ``init_auth``
    """
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    # Load configuration
    cfg = cfg or load_settings()
    configure_logging(cfg.log_level)

    # Create Flask app
    app = Flask(__name__)

    # Store config for easy access in routes
    app.config["APP_CONFIG"] = cfg
    app.config["DEMO_MODE"] = cfg.demo_mode

    # Trust X-Forwarded-* headers from the load balancer so request.is_secure holds
    if cfg.trusted_proxy_hops > 0:
        hops = cfg.trusted_proxy_hops
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=hops, x_host=hops)  # type: ignore

    # Initialize authentication components
    from gateway.api import auth
    auth.init_auth(app, cfg, **collaborators)

    # Register blueprints
    from gateway.api import health, errors

    app.register_blueprint(auth.bp)
    app.register_blueprint(health.bp)

    # Register error handlers
    errors.register_error_handlers(app)

    # Register middleware/after_request handlers
    _register_middleware(app, cfg)

    # Release the database pool with the app
    database = app.extensions.get("database")
    if database is not None:
        atexit.register(database.close)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    logger.info("Auth gateway ready (mode=%s, login=/auth/google)", mode_label)

    if cfg.demo_mode:
        logger.warning("Demo mode active - do not deploy with demo credentials")

    return app


def _register_middleware(app: Flask, cfg: AppConfig):
    """Register response middleware."""

    @app.after_request
    def allow_frontend_origin(response):
        """Let the frontend origin call the JSON endpoints with credentials."""
        origin = request.headers.get("Origin")
        if origin and origin.rstrip("/") == cfg.frontend_url:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers.add("Vary", "Origin")
        return response

    @app.after_request
    def no_store_auth_responses(response):
        """Never cache responses that carry identity or session cookies."""
        if request.path.startswith(("/auth/", "/api/")):
            response.headers["Cache-Control"] = "no-store"
        return response


# ─────────────────────────────────────────────────────────────────────────────
# Application Instance (for Gunicorn)
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "3001")), debug=True)
