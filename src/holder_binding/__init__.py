"""holder-binding — bind external identities to addresses holding a designated asset.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import holder_binding
>>> holder_binding.__version__
'0.1.0'

Quick start
-----------
::

    from holder_binding import RegistryService, OwnershipProof

    service = RegistryService()
    service.initialize(admin="M", allowed_asset="X")
    service.bind("A", "user1", OwnershipProof(owner="A", asset_type="X", quantity=1))
    service.query("A", "user1")             # VerificationStatus.VERIFIED
    service.compact("M", {"A": OwnershipProof(owner="A", asset_type="X", quantity=1)})
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------
from holder_binding.errors import (
    AlreadyInitializedError,
    BindingNotFoundError,
    BindingRegistryError,
    DuplicateBindingError,
    IdentityTooLongError,
    NotAssetHolderError,
    RegistryNotInitializedError,
    UnauthorizedError,
    WriteConflictError,
)

# ------------------------------------------------------------------
# Ownership proofs
# ------------------------------------------------------------------
from holder_binding.ownership.proof import OwnershipProof, parse_proof_batch
from holder_binding.ownership.verifier import OwnershipVerifier

# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------
from holder_binding.clock import Clock, FixedClock, SystemClock
from holder_binding.registry.record import BindingRecord
from holder_binding.registry.service import (
    CompactionResult,
    RegistryService,
    VerificationStatus,
)
from holder_binding.registry.state import RegistryState
from holder_binding.registry.store import (
    FilesystemRegistryStore,
    InMemoryRegistryStore,
    RegistryStore,
)

# ------------------------------------------------------------------
# Ambient
# ------------------------------------------------------------------
from holder_binding.audit import AuditEvent, RegistryAuditLogger
from holder_binding.config import ServiceConfig, build_service, load_config

__all__ = [
    # version
    "__version__",
    # errors
    "AlreadyInitializedError",
    "BindingNotFoundError",
    "BindingRegistryError",
    "DuplicateBindingError",
    "IdentityTooLongError",
    "NotAssetHolderError",
    "RegistryNotInitializedError",
    "UnauthorizedError",
    "WriteConflictError",
    # ownership
    "OwnershipProof",
    "OwnershipVerifier",
    "parse_proof_batch",
    # registry
    "BindingRecord",
    "Clock",
    "CompactionResult",
    "FilesystemRegistryStore",
    "FixedClock",
    "InMemoryRegistryStore",
    "RegistryService",
    "RegistryState",
    "RegistryStore",
    "SystemClock",
    "VerificationStatus",
    # ambient
    "AuditEvent",
    "RegistryAuditLogger",
    "ServiceConfig",
    "build_service",
    "load_config",
]
