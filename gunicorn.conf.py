"""Gunicorn configuration file.

Threaded workers: each request runs on its own thread, so outbound calls
(token exchange, database queries) never block other in-flight requests.

Anti-forgery state lives in process memory. With more than one worker the
load balancer must route /auth/google and /auth/callback of one login to the
same process (sticky sessions), or GUNICORN_WORKERS must stay at 1.
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '3001')}"
wsgi_app = "gateway.flask_app:app"
worker_class = "gthread"
workers = int(os.environ.get("GUNICORN_WORKERS", "1"))
threads = int(os.environ.get("GUNICORN_THREADS", "8"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()


def post_fork(server, worker):
    """
    Called just after a worker has been forked.

    Reports where the signing secret will come from so a missing Docker
    secret shows up in the worker log before the first request.
    """
    from pathlib import Path

    from gateway.config.settings import _env_bool

    demo_mode = _env_bool("DEMO_MODE", False)
    secret_file = Path("/run/secrets") / "session_secret"

    if secret_file.is_file():
        worker.log.info("Session secret: /run/secrets/session_secret")
    elif os.environ.get("SESSION_SECRET"):
        worker.log.info("Session secret: SESSION_SECRET environment variable")
    elif demo_mode:
        worker.log.warning("Session secret: generated per worker (DEMO_MODE=true); sessions differ between workers")
    else:
        worker.log.error("Session secret missing; the app will refuse to start (set SESSION_SECRET)")

    if workers > 1:
        worker.log.warning(
            "%d workers share no anti-forgery state; enable sticky sessions on the load balancer", workers
        )
