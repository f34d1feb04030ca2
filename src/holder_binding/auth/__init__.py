"""Caller authentication for the HTTP edge.

Provides base58 addresses over Ed25519 keys and a
:class:`CallerAuthenticator` that resolves a request's caller address from a
bearer token or a request signature.
"""
from __future__ import annotations

from holder_binding.auth.caller import (
    ADDRESS_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    AuthMechanism,
    AuthResult,
    CallerAuthenticator,
    sign_request,
    signing_payload,
)
from holder_binding.auth.keys import (
    AddressKeyManager,
    address_from_public_key,
    base58_decode,
    base58_encode,
    is_valid_address,
    public_key_from_address,
)

__all__ = [
    "ADDRESS_HEADER",
    "AddressKeyManager",
    "AuthMechanism",
    "AuthResult",
    "CallerAuthenticator",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "address_from_public_key",
    "base58_decode",
    "base58_encode",
    "is_valid_address",
    "public_key_from_address",
    "sign_request",
    "signing_payload",
]
