"""Error hierarchy for the holder-binding registry.

Every error carries a stable ``code`` string so edge layers (HTTP, CLI) can
map failures without matching on class names. Lookup failures also subclass
:class:`KeyError` and input validation failures :class:`ValueError`, so
callers can catch them with the builtin they would naturally reach for.
"""
from __future__ import annotations

from typing import Optional


class BindingRegistryError(Exception):
    """Base class for all registry errors."""

    code: str = "registry_error"


class AlreadyInitializedError(BindingRegistryError):
    """Raised when initializing a registry that already exists."""

    code = "already_initialized"

    def __init__(self, registry_id: str) -> None:
        super().__init__(
            f"Registry {registry_id!r} is already initialized. "
            "Initialization is a one-time operation."
        )
        self.registry_id = registry_id


class RegistryNotInitializedError(BindingRegistryError, LookupError):
    """Raised when operating on a registry that has not been initialized."""

    code = "registry_not_initialized"

    def __init__(self, registry_id: str) -> None:
        super().__init__(
            f"Registry {registry_id!r} has not been initialized. "
            "Call initialize() first."
        )
        self.registry_id = registry_id


class NotAssetHolderError(BindingRegistryError):
    """Raised when the supplied ownership proof does not back the caller."""

    code = "not_asset_holder"

    def __init__(self, address: str) -> None:
        super().__init__(
            f"Address {address!r} does not hold the required asset."
        )
        self.address = address


class IdentityTooLongError(BindingRegistryError, ValueError):
    """Raised when an identity string exceeds the byte bound."""

    code = "identity_too_long"

    def __init__(self, length: int, limit: int) -> None:
        super().__init__(
            f"Identity is {length} bytes; at most {limit} bytes are allowed."
        )
        self.length = length
        self.limit = limit


class DuplicateBindingError(BindingRegistryError):
    """Raised when an address already holds an active binding."""

    code = "duplicate_binding"

    def __init__(self, address: str) -> None:
        super().__init__(
            f"Address {address!r} already has an active binding."
        )
        self.address = address


class BindingNotFoundError(BindingRegistryError, KeyError):
    """Raised when no active binding matches a ref or owner address."""

    code = "binding_not_found"

    def __init__(self, key: str) -> None:
        super().__init__(f"No active binding for {key!r}.")
        self.key = key

    def __str__(self) -> str:
        return str(self.args[0])


class UnauthorizedError(BindingRegistryError):
    """Raised when a caller lacks authority for an admin operation."""

    code = "unauthorized"

    def __init__(self, caller: str, action: str) -> None:
        super().__init__(f"Caller {caller!r} is not authorized to {action}.")
        self.caller = caller
        self.action = action


class WriteConflictError(BindingRegistryError):
    """Raised when a commit loses a race against another writer.

    Nothing was written; the caller may re-read and retry.
    """

    code = "write_conflict"

    def __init__(self, registry_id: str, expected: int, actual: Optional[int]) -> None:
        if actual is None:
            detail = "another writer holds the commit lock"
        else:
            detail = f"expected version {expected}, found {actual}"
        super().__init__(
            f"Registry {registry_id!r} changed concurrently ({detail}). "
            "Retry the operation."
        )
        self.registry_id = registry_id
        self.expected = expected
        self.actual = actual


__all__ = [
    "AlreadyInitializedError",
    "BindingNotFoundError",
    "BindingRegistryError",
    "DuplicateBindingError",
    "IdentityTooLongError",
    "NotAssetHolderError",
    "RegistryNotInitializedError",
    "UnauthorizedError",
    "WriteConflictError",
]
