"""RegistryService — the operation surface of the holder-binding registry.

Operations
----------
``initialize(admin, allowed_asset)``
    Create the registry for this deployment key.
``bind(caller, identity, proof)``
    Bind *identity* to *caller*, provided *proof* shows the caller holding
    the allowed asset.
``query(key, identity)``
    Compare a candidate identity against the active binding for a ref or
    owner address.
``set_allowed_asset(caller, new_asset)``
    Admin-only policy change. Existing bindings are re-assessed only at the
    next compaction.
``compact(caller, proof_batch)``
    Admin-only. Drop every active binding whose owner has no supplied proof,
    or whose proof no longer shows the allowed asset.

Every write runs under the service's lock and is committed with a
compare-and-swap on the registry version, so a failed operation leaves no
trace and a writer that raced another process gets
:class:`~holder_binding.errors.WriteConflictError`.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from holder_binding.audit import RegistryAuditLogger
from holder_binding.clock import Clock, SystemClock
from holder_binding.errors import (
    AlreadyInitializedError,
    BindingNotFoundError,
    BindingRegistryError,
    DuplicateBindingError,
    IdentityTooLongError,
    NotAssetHolderError,
    RegistryNotInitializedError,
    UnauthorizedError,
)
from holder_binding.ownership.proof import coerce_proof
from holder_binding.ownership.verifier import OwnershipVerifier
from holder_binding.registry import state as transitions
from holder_binding.registry.record import BindingRecord, is_binding_ref, new_binding_ref
from holder_binding.registry.state import RegistryState
from holder_binding.registry.store import InMemoryRegistryStore, RegistryStore

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_ID = "default"
MAX_IDENTITY_BYTES = 64


class VerificationStatus(str, Enum):
    """Outcome of :meth:`RegistryService.query`."""

    VERIFIED = "verified"
    NOT_VERIFIED = "not_verified"


@dataclass(frozen=True)
class CompactionResult:
    """Outcome of a compaction pass.

    Parameters
    ----------
    removed:
        Refs dropped from the active set, in their original order.
    retained:
        Reviewed refs that stayed active, in their original order.
    state:
        Registry state after the pass.
    """

    removed: tuple[str, ...]
    retained: tuple[str, ...]
    state: RegistryState

    @property
    def removed_count(self) -> int:
        return len(self.removed)


class RegistryService:
    """Binds external identities to asset-holding addresses.

    Parameters
    ----------
    store:
        Persistence backend. Defaults to a fresh in-memory store.
    registry_id:
        Deployment key of the registry this service operates on.
    verifier:
        Ownership verifier. Defaults to :class:`OwnershipVerifier`.
    clock:
        Time oracle used for ``bound_at``. Defaults to the system clock.
    audit_logger:
        Optional audit trail receiving one event per registry change.
    max_identity_bytes:
        Upper bound on the UTF-8 length of identity strings.

    Example
    -------
    ::

        service = RegistryService()
        service.initialize(admin="M", allowed_asset="X")
        service.bind("A", "user1", {"owner": "A", "asset_type": "X", "quantity": 1})
        service.query("A", "user1")  # VerificationStatus.VERIFIED
    """

    def __init__(
        self,
        store: Optional[RegistryStore] = None,
        registry_id: str = DEFAULT_REGISTRY_ID,
        verifier: Optional[OwnershipVerifier] = None,
        clock: Optional[Clock] = None,
        audit_logger: Optional[RegistryAuditLogger] = None,
        max_identity_bytes: int = MAX_IDENTITY_BYTES,
    ) -> None:
        self._store = store if store is not None else InMemoryRegistryStore()
        self._registry_id = registry_id
        self._verifier = verifier or OwnershipVerifier()
        self._clock = clock or SystemClock()
        self._audit = audit_logger
        self._max_identity_bytes = max_identity_bytes
        self._lock = threading.Lock()
        # Records are immutable, so a ref -> record cache never goes stale.
        self._records: dict[str, BindingRecord] = {}

    @property
    def registry_id(self) -> str:
        return self._registry_id

    @property
    def max_identity_bytes(self) -> int:
        return self._max_identity_bytes

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def initialize(self, admin: str, allowed_asset: Optional[str] = None) -> RegistryState:
        """Create the registry with *admin* as its authority.

        Parameters
        ----------
        admin:
            Address that becomes the registry's admin.
        allowed_asset:
            Asset eligible for bindings. May be None; no binding succeeds
            until the admin sets one.

        Returns
        -------
        RegistryState
            The new, empty registry.

        Raises
        ------
        AlreadyInitializedError
            If this deployment key already has a registry.
        """
        with self._lock:
            state = transitions.new_registry(
                registry_id=self._registry_id,
                admin=admin,
                allowed_asset=allowed_asset,
                created_at=self._clock.now(),
            )
            try:
                self._store.create(state)
            except AlreadyInitializedError:
                logger.warning("Registry %s already initialized", self._registry_id)
                raise
        logger.info(
            "Initialized registry %s (admin=%s, allowed_asset=%s)",
            self._registry_id,
            admin,
            allowed_asset,
        )
        self._audit_event("registry_initialized", admin, allowed_asset=allowed_asset)
        return state

    def bind(self, caller: str, identity: str, proof: object) -> BindingRecord:
        """Bind *identity* to *caller*.

        Parameters
        ----------
        caller:
            Authenticated address of the caller; becomes the binding owner.
        identity:
            External identity string.
        proof:
            Ownership proof for the caller's holding of the allowed asset.

        Returns
        -------
        BindingRecord
            The newly created record.

        Raises
        ------
        RegistryNotInitializedError
            If the registry does not exist.
        NotAssetHolderError
            If *proof* does not show *caller* holding the allowed asset.
        IdentityTooLongError
            If *identity* exceeds the byte bound.
        DuplicateBindingError
            If *caller* already has an active binding.
        WriteConflictError
            If another writer committed first. Nothing was written.
        """
        try:
            with self._lock:
                current = self._load()
                parsed = coerce_proof(proof)
                if parsed is None or not self._verifier.verify(
                    caller, current.allowed_asset, parsed
                ):
                    raise NotAssetHolderError(caller)
                identity_length = len(identity.encode("utf-8"))
                if identity_length > self._max_identity_bytes:
                    raise IdentityTooLongError(identity_length, self._max_identity_bytes)
                if self._find_active_by_owner(current, caller) is not None:
                    raise DuplicateBindingError(caller)

                record = BindingRecord(
                    ref=new_binding_ref(),
                    owner=caller,
                    identity=identity,
                    bound_at=self._clock.now(),
                    asset_ref=parsed.asset_ref,
                )
                updated = transitions.append_binding(current, record.ref)
                self._store.commit(updated, expected_version=current.version, records=[record])
                self._records[record.ref] = record
        except BindingRegistryError as exc:
            logger.warning("Rejected binding for %s: %s", caller, exc)
            self._audit_event("binding_rejected", caller, reason=exc.code)
            raise

        logger.info("Bound %s to identity %r (ref=%s)", caller, identity, record.ref)
        self._audit_event(
            "binding_created",
            caller,
            ref=record.ref,
            identity=identity,
            asset_ref=record.asset_ref,
        )
        return record

    def query(self, key: str, identity: str) -> VerificationStatus:
        """Check *identity* against the active binding for *key*.

        Parameters
        ----------
        key:
            A binding ref or an owner address.
        identity:
            Candidate identity, compared exactly (case-sensitive).

        Returns
        -------
        VerificationStatus

        Raises
        ------
        RegistryNotInitializedError
            If the registry does not exist.
        BindingNotFoundError
            If no active binding matches *key*.
        """
        record = self.get_binding(key)
        if record.identity == identity:
            return VerificationStatus.VERIFIED
        return VerificationStatus.NOT_VERIFIED

    def set_allowed_asset(self, caller: str, new_asset: str) -> RegistryState:
        """Replace the asset eligible for new bindings.

        Raises
        ------
        RegistryNotInitializedError
            If the registry does not exist.
        UnauthorizedError
            If *caller* is not the admin.
        WriteConflictError
            If another writer committed first.
        """
        with self._lock:
            current = self._load()
            if caller != current.admin:
                logger.warning("Unauthorized allowed-asset change by %s", caller)
                raise UnauthorizedError(caller, "set the allowed asset")
            updated = transitions.set_allowed_asset(current, new_asset)
            self._store.commit(updated, expected_version=current.version)

        logger.info(
            "Allowed asset for %s changed from %s to %s",
            self._registry_id,
            current.allowed_asset,
            new_asset,
        )
        self._audit_event(
            "allowed_asset_changed",
            caller,
            previous=current.allowed_asset,
            allowed_asset=new_asset,
        )
        return updated

    def compact(self, caller: str, proof_batch: Mapping[str, object]) -> CompactionResult:
        """Drop active bindings no longer backed by a qualifying holding.

        The scan runs against a snapshot without holding the write lock.
        The commit then takes the lock, removes the dropped refs from the
        *current* active set, and swaps it in. Bindings created after the
        snapshot are never dropped by this pass.

        Parameters
        ----------
        caller:
            Must be the admin.
        proof_batch:
            Mapping of owner address to ownership proof. An owner absent
            from the batch loses its binding.

        Returns
        -------
        CompactionResult

        Raises
        ------
        RegistryNotInitializedError
            If the registry does not exist.
        UnauthorizedError
            If *caller* is not the admin.
        WriteConflictError
            If another process committed first.
        """
        snapshot = self._load()
        if caller != snapshot.admin:
            logger.warning("Unauthorized compaction attempt by %s", caller)
            raise UnauthorizedError(caller, "compact the registry")

        reviewed = snapshot.active_bindings
        dropped = self._review(reviewed, snapshot.allowed_asset, proof_batch)

        with self._lock:
            current = self._load()
            if current.allowed_asset != snapshot.allowed_asset:
                # Policy changed mid-scan; judge against the asset now in force.
                still_active = [ref for ref in reviewed if ref in current]
                dropped = self._review(still_active, current.allowed_asset, proof_batch)
            removed = tuple(ref for ref in current.active_bindings if ref in dropped)
            if removed:
                updated = transitions.remove_bindings(current, removed)
                self._store.commit(updated, expected_version=current.version)
            else:
                updated = current

        retained = tuple(ref for ref in reviewed if ref in updated)
        logger.info(
            "Compacted %s: removed %d, retained %d",
            self._registry_id,
            len(removed),
            len(retained),
        )
        self._audit_event(
            "registry_compacted",
            caller,
            removed=list(removed),
            removed_count=len(removed),
            retained_count=len(retained),
        )
        return CompactionResult(removed=removed, retained=retained, state=updated)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def is_initialized(self) -> bool:
        return self._store.exists(self._registry_id)

    def state(self) -> RegistryState:
        """Return the current registry snapshot.

        Raises
        ------
        RegistryNotInitializedError
            If the registry does not exist.
        """
        return self._load()

    def get_binding(self, key: str) -> BindingRecord:
        """Return the active binding for a ref or owner address.

        Raises
        ------
        RegistryNotInitializedError
            If the registry does not exist.
        BindingNotFoundError
            If no active binding matches *key*.
        """
        current = self._load()
        if is_binding_ref(key) and key in current:
            record = self._record(key)
            if record is not None:
                return record
        # A ref-shaped key with no active ref may still be an owner address.
        record = self._find_active_by_owner(current, key)
        if record is None:
            raise BindingNotFoundError(key)
        return record

    def list_bindings(self) -> list[BindingRecord]:
        """Return the active bindings in insertion order."""
        current = self._load()
        records = (self._record(ref) for ref in current.active_bindings)
        return [r for r in records if r is not None]

    def binding_history(self) -> list[BindingRecord]:
        """Return every stored binding, active or dropped, oldest first.

        Compaction leaves dropped records in the store; this is the only read
        that reaches them.
        """
        self._load()
        return sorted(self._store.list_records(self._registry_id), key=lambda r: r.bound_at)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _load(self) -> RegistryState:
        try:
            return self._store.load(self._registry_id)
        except KeyError:
            raise RegistryNotInitializedError(self._registry_id) from None

    def _record(self, ref: str) -> Optional[BindingRecord]:
        record = self._records.get(ref)
        if record is None:
            try:
                record = self._store.get_record(self._registry_id, ref)
            except KeyError:
                logger.warning("Active ref %s has no stored record", ref)
                return None
            self._records[ref] = record
        return record

    def _find_active_by_owner(self, state: RegistryState, owner: str) -> Optional[BindingRecord]:
        for ref in state.active_bindings:
            record = self._record(ref)
            if record is not None and record.owner == owner:
                return record
        return None

    def _review(
        self,
        refs: tuple[str, ...] | list[str],
        allowed_asset: Optional[str],
        proof_batch: Mapping[str, object],
    ) -> set[str]:
        """Return the refs among *refs* whose binding is no longer backed."""
        dropped: set[str] = set()
        for ref in refs:
            record = self._record(ref)
            if record is None:
                dropped.add(ref)
                continue
            proof = proof_batch.get(record.owner)
            if not self._verifier.verify(record.owner, allowed_asset, proof):
                dropped.add(ref)
        return dropped

    def _audit_event(self, event_type: str, actor: str, **details: object) -> None:
        if self._audit is not None:
            self._audit.log_event(event_type, self._registry_id, actor, **details)


__all__ = [
    "CompactionResult",
    "DEFAULT_REGISTRY_ID",
    "MAX_IDENTITY_BYTES",
    "RegistryService",
    "VerificationStatus",
]
