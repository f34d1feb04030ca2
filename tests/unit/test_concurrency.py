"""Race behaviour of RegistryService writers.

Covers:
- Threads binding the same owner through one service: exactly one wins.
- Threads binding distinct owners: all succeed, no ref is lost.
- Two services sharing a store (the multi-process case): the commit that
  lost the race raises WriteConflictError and leaves no trace.
"""
from __future__ import annotations

import threading
from pathlib import Path

import pytest

from holder_binding.errors import DuplicateBindingError, WriteConflictError
from holder_binding.ownership.proof import OwnershipProof
from holder_binding.ownership.verifier import OwnershipVerifier
from holder_binding.registry.service import RegistryService
from holder_binding.registry.store import (
    FilesystemRegistryStore,
    InMemoryRegistryStore,
    RegistryStore,
)


def _proof(owner: str) -> OwnershipProof:
    return OwnershipProof(owner=owner, asset_type="X", quantity=1)


def _run_threads(count: int, target) -> None:  # type: ignore[no-untyped-def]
    barrier = threading.Barrier(count)

    def worker(index: int) -> None:
        barrier.wait()
        target(index)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


class TestSingleServiceThreads:
    def test_same_owner_race_has_one_winner(self) -> None:
        service = RegistryService()
        service.initialize(admin="M", allowed_asset="X")
        outcomes: list[str] = []
        lock = threading.Lock()

        def bind(index: int) -> None:
            try:
                service.bind("A", f"user{index}", _proof("A"))
                outcome = "ok"
            except DuplicateBindingError:
                outcome = "duplicate"
            with lock:
                outcomes.append(outcome)

        _run_threads(8, bind)

        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == 7
        assert len(service.state()) == 1

    def test_distinct_owners_all_succeed(self) -> None:
        service = RegistryService()
        service.initialize(admin="M", allowed_asset="X")

        _run_threads(16, lambda i: service.bind(f"owner-{i}", f"user{i}", _proof(f"owner-{i}")))

        state = service.state()
        assert len(state) == 16
        assert len(set(state.active_bindings)) == 16
        assert state.version == 16


class _InterleavingVerifier(OwnershipVerifier):
    """Lets another writer commit while the first is mid-operation."""

    def __init__(self) -> None:
        self.interleave = None

    def verify(self, claimed_owner, allowed_asset, proof):  # type: ignore[no-untyped-def]
        if self.interleave is not None:
            action, self.interleave = self.interleave, None
            action()
        return super().verify(claimed_owner, allowed_asset, proof)


@pytest.fixture(params=["memory", "filesystem"])
def shared_store(request: pytest.FixtureRequest, tmp_path: Path) -> RegistryStore:
    if request.param == "memory":
        return InMemoryRegistryStore()
    return FilesystemRegistryStore(tmp_path / "store")


class TestSharedStore:
    def test_losing_bind_raises_write_conflict(self, shared_store: RegistryStore) -> None:
        verifier = _InterleavingVerifier()
        first = RegistryService(store=shared_store, registry_id="dep", verifier=verifier)
        second = RegistryService(store=shared_store, registry_id="dep")
        first.initialize(admin="M", allowed_asset="X")

        verifier.interleave = lambda: second.bind("B", "user-b", _proof("B"))
        with pytest.raises(WriteConflictError):
            first.bind("A", "user-a", _proof("A"))

        owners = [r.owner for r in first.list_bindings()]
        assert owners == ["B"]

    def test_retry_after_write_conflict_succeeds(self, shared_store: RegistryStore) -> None:
        verifier = _InterleavingVerifier()
        first = RegistryService(store=shared_store, registry_id="dep", verifier=verifier)
        second = RegistryService(store=shared_store, registry_id="dep")
        first.initialize(admin="M", allowed_asset="X")

        verifier.interleave = lambda: second.bind("B", "user-b", _proof("B"))
        with pytest.raises(WriteConflictError):
            first.bind("A", "user-a", _proof("A"))
        first.bind("A", "user-a", _proof("A"))

        assert [r.owner for r in second.list_bindings()] == ["B", "A"]

    def test_same_owner_across_services_is_duplicate_after_reload(
        self, shared_store: RegistryStore
    ) -> None:
        first = RegistryService(store=shared_store, registry_id="dep")
        second = RegistryService(store=shared_store, registry_id="dep")
        first.initialize(admin="M", allowed_asset="X")

        first.bind("A", "user-a", _proof("A"))
        with pytest.raises(DuplicateBindingError):
            second.bind("A", "other", _proof("A"))
