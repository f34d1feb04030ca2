"""CallerAuthenticator — resolves the authenticated caller address of a request.

The registry core trusts whatever caller address it is handed. This module
is the edge that decides which address that is. Two mechanisms:

  - Bearer token: an opaque token looked up in a token -> address table.
  - Signature: the request carries ``X-Caller-Address``, ``X-Timestamp``
    (unix seconds) and ``X-Signature``, a base64 Ed25519 signature over
    :func:`signing_payload`. The address is the base58 public key, so the
    signature alone proves control of it.

The signed payload is ``METHOD\\nPATH\\nTIMESTAMP\\n`` followed by the raw
body. A signature is therefore bound to one route and one instant; it is
accepted only inside the freshness window and only once.
"""
from __future__ import annotations

import base64
import binascii
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from holder_binding.auth.keys import AddressKeyManager, is_valid_address
from holder_binding.clock import Clock, SystemClock

ADDRESS_HEADER = "X-Caller-Address"
SIGNATURE_HEADER = "X-Signature"
TIMESTAMP_HEADER = "X-Timestamp"

DEFAULT_MAX_SIGNATURE_AGE = 300.0


def signing_payload(method: str, path: str, timestamp: int | str, body: bytes) -> bytes:
    """Return the exact bytes a request signature covers."""
    prefix = f"{method.upper()}\n{path}\n{timestamp}\n"
    return prefix.encode("utf-8") + body


def sign_request(
    private_key_bytes: bytes,
    method: str,
    path: str,
    body: bytes,
    timestamp: Optional[int] = None,
    clock: Optional[Clock] = None,
) -> dict[str, str]:
    """Return the signature headers for a request.

    Parameters
    ----------
    private_key_bytes:
        Raw 32-byte Ed25519 private key of the caller.
    method, path:
        HTTP method and URL path (no query string) the request is sent to.
    body:
        The exact request body.
    timestamp:
        Unix seconds to sign. Defaults to now.
    """
    keys = AddressKeyManager()
    if timestamp is None:
        timestamp = int((clock or SystemClock()).now().timestamp())
    signature = keys.sign(private_key_bytes, signing_payload(method, path, timestamp, body))
    return {
        ADDRESS_HEADER: keys.address_of(private_key_bytes),
        TIMESTAMP_HEADER: str(timestamp),
        SIGNATURE_HEADER: base64.b64encode(signature).decode("ascii"),
    }


class AuthMechanism(str, Enum):
    """The authentication mechanism used for a request."""

    NONE = "none"
    BEARER = "bearer"
    SIGNATURE = "signature"


@dataclass
class AuthResult:
    """Result of an authentication attempt.

    Parameters
    ----------
    success:
        Whether authentication succeeded.
    address:
        The authenticated caller address (empty string if failed).
    mechanism:
        The mechanism that produced this result.
    reason:
        Human-readable explanation of a failure (empty on success).
    """

    success: bool
    address: str
    mechanism: AuthMechanism
    reason: str = ""


class CallerAuthenticator:
    """Authenticates callers by bearer token or request signature.

    Parameters
    ----------
    bearer_tokens:
        Mapping of opaque bearer tokens to caller addresses. Empty disables
        bearer auth.
    allow_signed_requests:
        Whether Ed25519-signed requests are accepted.
    max_signature_age:
        Seconds a signed timestamp may differ from now, in either direction.
    clock:
        Time source for the freshness check. Defaults to the system clock.
    """

    def __init__(
        self,
        bearer_tokens: dict[str, str] | None = None,
        allow_signed_requests: bool = True,
        max_signature_age: float = DEFAULT_MAX_SIGNATURE_AGE,
        clock: Optional[Clock] = None,
    ) -> None:
        self._bearer_tokens: dict[str, str] = dict(bearer_tokens or {})
        self._allow_signed = allow_signed_requests
        self._max_age = max_signature_age
        self._clock = clock or SystemClock()
        self._keys = AddressKeyManager()
        # signature -> unix time after which it can no longer pass the window
        self._seen: dict[str, float] = {}
        self._seen_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Bearer auth
    # ------------------------------------------------------------------

    def authenticate_bearer(self, token: str) -> AuthResult:
        """Authenticate with an opaque bearer token."""
        address = self._bearer_tokens.get(token.strip())
        if address:
            return AuthResult(success=True, address=address, mechanism=AuthMechanism.BEARER)
        return AuthResult(
            success=False,
            address="",
            mechanism=AuthMechanism.BEARER,
            reason="Invalid or unknown bearer token.",
        )

    # ------------------------------------------------------------------
    # Signature auth
    # ------------------------------------------------------------------

    def authenticate_signature(
        self,
        address: str,
        signature: str,
        timestamp: str,
        method: str,
        path: str,
        body: bytes,
    ) -> AuthResult:
        """Authenticate with a base64 Ed25519 signature over the request.

        Parameters
        ----------
        address:
            The claimed caller address (base58 public key).
        signature:
            Base64-encoded 64-byte signature over :func:`signing_payload`.
        timestamp:
            The signed unix timestamp, as sent in ``X-Timestamp``.
        method, path:
            The HTTP method and URL path the request arrived on.
        body:
            The exact request body.
        """
        if not self._allow_signed:
            return _signature_failure("Signed requests are not accepted.")
        if not is_valid_address(address):
            return _signature_failure("Caller address is not a valid address.")
        try:
            signed_at = int(timestamp)
        except ValueError:
            return _signature_failure("Timestamp is not an integer.")
        now = self._clock.now().timestamp()
        if abs(now - signed_at) > self._max_age:
            return _signature_failure("Timestamp is outside the accepted window.")
        try:
            raw_signature = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError):
            return _signature_failure("Signature is not valid base64.")
        payload = signing_payload(method, path, signed_at, body)
        if not self._keys.verify(address, raw_signature, payload):
            return _signature_failure("Signature does not match the caller address.")
        if not self._remember(raw_signature, signed_at + self._max_age, now):
            return _signature_failure("Signature has already been used.")
        return AuthResult(success=True, address=address, mechanism=AuthMechanism.SIGNATURE)

    def _remember(self, raw_signature: bytes, expires_at: float, now: float) -> bool:
        """Record a verified signature. Return False if it was already seen."""
        key = raw_signature.hex()
        with self._seen_lock:
            for stale in [sig for sig, expiry in self._seen.items() if expiry < now]:
                del self._seen[stale]
            if key in self._seen:
                return False
            self._seen[key] = expires_at
            return True

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def authenticate_request(
        self,
        headers: Mapping[str, str],
        body: bytes,
        method: str,
        path: str,
    ) -> AuthResult:
        """Authenticate from HTTP headers.

        ``Authorization: Bearer <token>`` takes precedence; otherwise the
        signature headers are checked against *method*, *path* and *body*.
        """
        authorization = _header(headers, "Authorization")
        if authorization:
            parts = authorization.strip().split(None, 1)
            if len(parts) != 2 or parts[0].lower() != "bearer":
                return AuthResult(
                    success=False,
                    address="",
                    mechanism=AuthMechanism.BEARER,
                    reason="Malformed or unsupported Authorization header.",
                )
            return self.authenticate_bearer(parts[1])

        address = _header(headers, ADDRESS_HEADER)
        signature = _header(headers, SIGNATURE_HEADER)
        if address and signature:
            timestamp = _header(headers, TIMESTAMP_HEADER)
            if not timestamp:
                return _signature_failure(f"Missing {TIMESTAMP_HEADER} header.")
            return self.authenticate_signature(address, signature, timestamp, method, path, body)

        return AuthResult(
            success=False,
            address="",
            mechanism=AuthMechanism.NONE,
            reason="No credentials supplied.",
        )


def _signature_failure(reason: str) -> AuthResult:
    return AuthResult(success=False, address="", mechanism=AuthMechanism.SIGNATURE, reason=reason)


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                return candidate
        return ""
    return value


__all__ = [
    "ADDRESS_HEADER",
    "AuthMechanism",
    "AuthResult",
    "CallerAuthenticator",
    "DEFAULT_MAX_SIGNATURE_AGE",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "sign_request",
    "signing_payload",
]
