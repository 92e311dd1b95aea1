"""Core authentication logic

Framework-independent building blocks of the OAuth2 gateway. None of these
modules import Flask, so they are testable without a request context.

Module Structure:
    - state_store.py          : One-time anti-forgery (``state``) tokens
    - identity_provider.py    : Cognito authorize URL, code exchange, ID token decode
    - session_codec.py        : Signed session credential (HS256 JWT)
    - session_transport.py    : Session cookie attach / extract / clear
    - provisioning_service.py : Lazy local user creation, band memberships
    - exceptions.py           : Error taxonomy with redirect-safe error codes
    - redaction.py            : Identifier shortening for log lines

Usage Pattern:
    Import explicitly when needed:
        from gateway.core.state_store import MemoryStateStore
        from gateway.core.session_codec import SessionCodec, SessionRecord
        from gateway.core.provisioning_service import ProvisioningService
"""
