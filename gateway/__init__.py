"""bndy auth gateway Flask application package.

To use the Flask app:
    from gateway.flask_app import create_app

To use the authentication building blocks without Flask:
    from gateway.core.session_codec import SessionCodec
    from gateway.core.state_store import MemoryStateStore
"""
# Note: We don't import flask_app by default; importing it builds the
# module-level app from the environment.
