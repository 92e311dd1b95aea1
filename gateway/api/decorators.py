"""
Flask decorators for session authentication.

Per-request state machine:

    Unauthenticated ──(no cookie)──────────────> 401 {"error": "Not authenticated"}
          │
      cookie present
          │
       Verifying ──(InvalidSignature/Expired)──> 401 + cookie cleared
          │
     Authenticated ──> g.session_record ──> route handler

Failures are surfaced immediately; nothing is retried.
"""

import logging
from functools import wraps
from typing import Optional

from flask import g, jsonify, request

from gateway.api.context import get_auth
from gateway.core.exceptions import Expired, SessionError
from gateway.core.redaction import redact_id
from gateway.core.session_codec import SessionRecord

logger = logging.getLogger(__name__)


def require_session(fn):
    """
    Require a valid session cookie before running the wrapped view.

    On success the decoded ``SessionRecord`` is stored on ``g.session_record``.

    Example:
        @bp.route("/api/me")
        @require_session
        def me():
            record = current_session()
    """

    @wraps(fn)
    def wrapper(*args, **kwargs):
        auth = get_auth()
        transport = auth.session_transport

        credential = transport.extract(request)
        if not credential:
            logger.info("No session cookie on %s %s", request.method, request.path)
            return jsonify({"error": "Not authenticated"}), 401

        try:
            record = auth.session_codec.verify(credential)
        except SessionError as exc:
            logger.warning("Rejected session on %s: %s", request.path, exc)
            message = "Session expired" if isinstance(exc, Expired) else "Invalid session"
            response = jsonify({"error": message})
            transport.clear(response)
            return response, 401

        logger.debug("Session verified (sub=%s)", redact_id(record.subject_id))
        g.session_record = record
        return fn(*args, **kwargs)

    return wrapper


def current_session() -> Optional[SessionRecord]:
    """
    Get the verified session for the current request.

    Must be called after the @require_session decorator.
    """
    return getattr(g, "session_record", None)
