"""Pytest shared fixtures for the auth gateway."""
import os
import pathlib
import sys
import time
from types import SimpleNamespace
from typing import Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ["DEMO_MODE"] = "true"
os.environ.pop("DATABASE_URL", None)

import pytest
import requests
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from authlib.jose import jwt as authlib_jwt

from gateway.config import AppConfig
from gateway.core.identity_provider import IdentityProviderClient
from gateway.core.state_store import MemoryStateStore
from gateway.flask_app import create_app
from gateway.storage import MemoryUserStore

COGNITO_DOMAIN = "https://auth.example.test"
TOKEN_URL = f"{COGNITO_DOMAIN}/oauth2/token"
ISSUER = "https://cognito-idp.eu-west-2.amazonaws.com/eu-west-2_TEST"
CLIENT_ID = "test-client-id"
CLIENT_SECRET = "test-client-secret-never-logged"
REDIRECT_URI = "https://api.example.test/auth/callback"
FRONTEND_URL = "https://backstage.example.test"
SESSION_SECRET = "s" * 48


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from reaching real endpoints.

    Tests that need the token endpoint use the ``token_endpoint`` fixture,
    which replaces this stub for its own URL.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _stub_post(url, *args, **kwargs):
        raise RuntimeError(f"Unexpected HTTP POST in unit test: {url}")

    def _stub_get(url, *args, **kwargs):
        raise RuntimeError(f"Unexpected HTTP GET in unit test: {url}")

    monkeypatch.setattr(requests, "post", _stub_post)
    monkeypatch.setattr(requests, "get", _stub_get)


class StubResponse:
    def __init__(self, payload=None, status_code: int = 200, text: Optional[str] = None):
        self._payload = payload
        self.status_code = status_code
        self.text = text if text is not None else str(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class TokenEndpoint:
    """Scriptable stand-in for the Cognito ``/oauth2/token`` endpoint."""

    def __init__(self):
        self.calls: list[dict] = []
        self.response = StubResponse({})
        self.exception: Optional[Exception] = None

    def respond(self, payload=None, status_code: int = 200):
        self.response = StubResponse(payload, status_code)
        self.exception = None

    def fail_with(self, exc: Exception):
        self.exception = exc

    def __call__(self, url, *args, **kwargs):
        if url != TOKEN_URL:
            raise RuntimeError(f"Unexpected HTTP POST in unit test: {url}")
        self.calls.append({"url": url, **kwargs})
        if self.exception is not None:
            raise self.exception
        return self.response


@pytest.fixture()
def token_endpoint(monkeypatch):
    endpoint = TokenEndpoint()
    monkeypatch.setattr(requests, "post", endpoint)
    return endpoint


# ─────────────────────────────────────────────────────────────────────────────
# RSA Key Pair for ID Token Testing
# ─────────────────────────────────────────────────────────────────────────────
def _generate_rsa_key_pair() -> dict:
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
        backend=default_backend()
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )
    return {
        "private_key": private_key,
        "private_pem": private_pem,
        "public_key": private_key.public_key(),
    }


@pytest.fixture(scope="session")
def rsa_key_pair():
    """Generate RSA key pair for ID token signing in tests."""
    return _generate_rsa_key_pair()


@pytest.fixture(scope="session")
def other_rsa_key_pair():
    """A second key pair the provider never published."""
    return _generate_rsa_key_pair()


class DummyJWKS:
    """Stands in for ``PyJWKClient``: always returns the given public key."""

    def __init__(self, public_key):
        self.public_key = public_key
        self.lookups = 0

    def get_signing_key_from_jwt(self, token):
        self.lookups += 1
        return SimpleNamespace(key=self.public_key)


def create_id_token(
    rsa_key_pair: dict,
    sub: str = "sub-1234567890",
    email: Optional[str] = "alice@example.com",
    username: Optional[str] = "alice",
    issuer: str = ISSUER,
    audience: str = CLIENT_ID,
    exp_offset: int = 3600,
    token_use: Optional[str] = "id",
    extra: Optional[dict] = None,
) -> str:
    """Create an RS256-signed Cognito-style ID token."""
    now = int(time.time())
    header = {"alg": "RS256", "typ": "JWT", "kid": "test-key-id"}
    payload = {
        "iss": issuer,
        "aud": audience,
        "sub": sub,
        "iat": now,
        "exp": now + exp_offset,
    }
    if token_use is not None:
        payload["token_use"] = token_use
    if email is not None:
        payload["email"] = email
    if username is not None:
        payload["cognito:username"] = username
    if extra:
        payload.update(extra)
    token = authlib_jwt.encode(header, payload, rsa_key_pair["private_pem"])
    return token.decode("utf-8") if isinstance(token, bytes) else token


# ─────────────────────────────────────────────────────────────────────────────
# Application Fixtures
# ─────────────────────────────────────────────────────────────────────────────
def make_config(**overrides) -> AppConfig:
    base = dict(
        demo_mode=False,
        cognito_domain=COGNITO_DOMAIN,
        cognito_client_id=CLIENT_ID,
        cognito_client_secret=CLIENT_SECRET,
        oauth_redirect_uri=REDIRECT_URI,
        frontend_url=FRONTEND_URL,
        cognito_issuer=ISSUER,
        cognito_identity_provider="Google",
        id_token_verify=True,
        token_exchange_timeout=5.0,
        session_secret=SESSION_SECRET,
        session_cookie_secure=False,
        database_url="",
    )
    base.update(overrides)
    return AppConfig(**base)


@pytest.fixture()
def app_config():
    return make_config()


@pytest.fixture()
def identity_provider(app_config, rsa_key_pair):
    provider = IdentityProviderClient.from_config(app_config)
    provider._jwks_client = DummyJWKS(rsa_key_pair["public_key"])
    return provider


@pytest.fixture()
def user_store():
    return MemoryUserStore()


@pytest.fixture()
def state_store():
    return MemoryStateStore(ttl_seconds=300)


@pytest.fixture()
def app(app_config, identity_provider, user_store, state_store):
    flask_app = create_app(
        app_config,
        user_store=user_store,
        state_store=state_store,
        identity_provider=identity_provider,
    )
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires running stack)"
    )
    config.addinivalue_line(
        "markers", "critical: marks tests as critical security tests (P0 priority)"
    )
