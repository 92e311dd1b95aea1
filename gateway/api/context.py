"""Per-app wiring of the authentication components."""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from gateway.core.identity_provider import IdentityProviderClient
from gateway.core.provisioning_service import ProvisioningService
from gateway.core.session_codec import SessionCodec
from gateway.core.session_transport import SessionTransport
from gateway.core.state_store import StateStore

EXTENSION_KEY = "auth_gateway"


@dataclass
class AuthComponents:
    state_store: StateStore
    identity_provider: IdentityProviderClient
    session_codec: SessionCodec
    session_transport: SessionTransport
    provisioning: ProvisioningService


def get_auth() -> AuthComponents:
    """Return the components registered by ``init_auth`` for the current app."""
    components = current_app.extensions.get(EXTENSION_KEY)
    if components is None:
        raise RuntimeError("Auth components not initialized. Call init_auth first.")
    return components
