"""Holder-binding registry.

Provides the immutable :class:`RegistryState`, the frozen
:class:`BindingRecord`, storage backends, and the :class:`RegistryService`
that exposes initialize / bind / query / set_allowed_asset / compact.

Quick start
-----------
::

    from holder_binding.registry import RegistryService

    service = RegistryService()
    service.initialize(admin="M", allowed_asset="X")
    service.bind("A", "user1", {"owner": "A", "asset_type": "X", "quantity": 1})
    service.query("A", "user1")
"""
from __future__ import annotations

from holder_binding.registry.record import BindingRecord, is_binding_ref, new_binding_ref
from holder_binding.registry.service import (
    CompactionResult,
    DEFAULT_REGISTRY_ID,
    MAX_IDENTITY_BYTES,
    RegistryService,
    VerificationStatus,
)
from holder_binding.registry.state import RegistryState
from holder_binding.registry.store import (
    FilesystemRegistryStore,
    InMemoryRegistryStore,
    RegistryStore,
)

__all__ = [
    "BindingRecord",
    "CompactionResult",
    "DEFAULT_REGISTRY_ID",
    "FilesystemRegistryStore",
    "InMemoryRegistryStore",
    "MAX_IDENTITY_BYTES",
    "RegistryService",
    "RegistryState",
    "RegistryStore",
    "VerificationStatus",
    "is_binding_ref",
    "new_binding_ref",
]
