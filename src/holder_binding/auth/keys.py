"""Ed25519 keys and base58 addresses.

An address is the base58 encoding of a 32-byte Ed25519 public key, the same
convention Solana-style ledgers use for account addresses. This module is a
thin wrapper around the ``cryptography`` package: generate a keypair, sign
bytes, verify a signature against an address.
"""
from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

_BASE58_ALPHABET: bytes = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_PUBLIC_KEY_LENGTH = 32


def base58_encode(data: bytes) -> str:
    """Encode *data* to a base58 string."""
    n = int.from_bytes(data, "big")
    result: list[bytes] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_BASE58_ALPHABET[remainder : remainder + 1])
    # Leading zero bytes are written as '1'
    for byte in data:
        if byte == 0:
            result.append(b"1")
        else:
            break
    return b"".join(reversed(result)).decode("ascii")


def base58_decode(encoded: str) -> bytes:
    """Decode a base58 string.

    Raises
    ------
    ValueError
        If the string contains a character outside the base58 alphabet.
    """
    alphabet = _BASE58_ALPHABET.decode("ascii")
    n = 0
    for char in encoded:
        index = alphabet.find(char)
        if index < 0:
            raise ValueError(f"Invalid base58 character {char!r} in {encoded!r}")
        n = n * 58 + index
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad = len(encoded) - len(encoded.lstrip("1"))
    return b"\x00" * pad + body


def address_from_public_key(public_key_bytes: bytes) -> str:
    """Return the address for a raw 32-byte Ed25519 public key."""
    if len(public_key_bytes) != _PUBLIC_KEY_LENGTH:
        raise ValueError(
            f"Ed25519 public keys are {_PUBLIC_KEY_LENGTH} bytes, got {len(public_key_bytes)}"
        )
    return base58_encode(public_key_bytes)


def public_key_from_address(address: str) -> bytes:
    """Return the raw public key encoded in *address*.

    Raises
    ------
    ValueError
        If *address* is not base58 or does not decode to 32 bytes.
    """
    raw = base58_decode(address)
    if len(raw) != _PUBLIC_KEY_LENGTH:
        raise ValueError(f"Address {address!r} does not encode a 32-byte public key")
    return raw


def is_valid_address(address: str) -> bool:
    """Return True if *address* decodes to a 32-byte public key."""
    try:
        public_key_from_address(address)
    except ValueError:
        return False
    return True


class AddressKeyManager:
    """Ed25519 keypairs addressed by base58 public key.

    Example
    -------
    ::

        manager = AddressKeyManager()
        private_bytes, address = manager.generate_keypair()
        signature = manager.sign(private_bytes, b"payload")
        assert manager.verify(address, signature, b"payload")
    """

    def generate_keypair(self) -> tuple[bytes, str]:
        """Generate a keypair.

        Returns
        -------
        tuple[bytes, str]
            ``(private_key_bytes, address)``; the private key is the 32-byte
            raw representation.
        """
        private_key = Ed25519PrivateKey.generate()
        private_bytes = private_key.private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        public_bytes = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return private_bytes, address_from_public_key(public_bytes)

    def address_of(self, private_key_bytes: bytes) -> str:
        """Return the address belonging to a raw private key."""
        private_key = Ed25519PrivateKey.from_private_bytes(private_key_bytes)
        public_bytes = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return address_from_public_key(public_bytes)

    def sign(self, private_key_bytes: bytes, data: bytes) -> bytes:
        """Return the 64-byte Ed25519 signature of *data*."""
        return Ed25519PrivateKey.from_private_bytes(private_key_bytes).sign(data)

    def verify(self, address: str, signature: bytes, data: bytes) -> bool:
        """Return True if *signature* over *data* was made by *address*'s key.

        Malformed addresses and signatures verify as False.
        """
        try:
            public_key = Ed25519PublicKey.from_public_bytes(public_key_from_address(address))
        except ValueError:
            return False
        try:
            public_key.verify(signature, data)
        except InvalidSignature:
            return False
        return True


__all__ = [
    "AddressKeyManager",
    "address_from_public_key",
    "base58_decode",
    "base58_encode",
    "is_valid_address",
    "public_key_from_address",
]
