"""Registry storage — abstract interface plus in-memory and filesystem backends.

RegistryStore defines the persistence contract the service relies on:

- ``create`` writes a brand-new registry and refuses to overwrite one;
- ``commit`` is a compare-and-swap: the new state (and any new binding
  records) is written only if the stored version still equals
  ``expected_version``, otherwise :class:`WriteConflictError` is raised and
  nothing changes;
- binding records are stored by ref and never deleted by the core.

FilesystemRegistryStore lays each registry out under *base_dir* as::

    <registry_id>/state.json
    <registry_id>/records/<ref>.json

and serializes commits across processes with an exclusive lock file.
"""
from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from holder_binding.errors import AlreadyInitializedError, WriteConflictError
from holder_binding.registry.record import BindingRecord
from holder_binding.registry.state import RegistryState

logger = logging.getLogger(__name__)


class RegistryStore(ABC):
    """Abstract base class for registry storage backends."""

    @abstractmethod
    def exists(self, registry_id: str) -> bool:
        """Return True if a registry is stored under *registry_id*."""

    @abstractmethod
    def create(self, state: RegistryState) -> None:
        """Persist a new registry.

        Raises
        ------
        AlreadyInitializedError
            If a registry already exists under ``state.registry_id``.
        """

    @abstractmethod
    def load(self, registry_id: str) -> RegistryState:
        """Return the current state of a registry.

        Raises
        ------
        KeyError
            If no registry is stored under *registry_id*.
        """

    @abstractmethod
    def commit(
        self,
        state: RegistryState,
        expected_version: int,
        records: Iterable[BindingRecord] = (),
    ) -> None:
        """Atomically replace the stored state if its version is unchanged.

        Parameters
        ----------
        state:
            The new state to store.
        expected_version:
            Version the caller read before deriving *state*.
        records:
            New binding records to persist alongside the state.

        Raises
        ------
        KeyError
            If no registry is stored under ``state.registry_id``.
        WriteConflictError
            If the stored version differs from *expected_version*.
        """

    @abstractmethod
    def get_record(self, registry_id: str, ref: str) -> BindingRecord:
        """Return a binding record by ref.

        Raises
        ------
        KeyError
            If no record is stored under *ref*.
        """

    @abstractmethod
    def list_records(self, registry_id: str) -> list[BindingRecord]:
        """Return every stored record, active or not."""


class InMemoryRegistryStore(RegistryStore):
    """Process-local store. Thread-safe."""

    def __init__(self) -> None:
        self._states: dict[str, RegistryState] = {}
        self._records: dict[str, dict[str, BindingRecord]] = {}
        self._lock = threading.Lock()

    def exists(self, registry_id: str) -> bool:
        with self._lock:
            return registry_id in self._states

    def create(self, state: RegistryState) -> None:
        with self._lock:
            if state.registry_id in self._states:
                raise AlreadyInitializedError(state.registry_id)
            self._states[state.registry_id] = state
            self._records[state.registry_id] = {}

    def load(self, registry_id: str) -> RegistryState:
        with self._lock:
            if registry_id not in self._states:
                raise KeyError(f"No registry stored for registry_id={registry_id!r}")
            return self._states[registry_id]

    def commit(
        self,
        state: RegistryState,
        expected_version: int,
        records: Iterable[BindingRecord] = (),
    ) -> None:
        with self._lock:
            current = self._states.get(state.registry_id)
            if current is None:
                raise KeyError(f"No registry stored for registry_id={state.registry_id!r}")
            if current.version != expected_version:
                raise WriteConflictError(state.registry_id, expected_version, current.version)
            bucket = self._records[state.registry_id]
            for record in records:
                bucket[record.ref] = record
            self._states[state.registry_id] = state

    def get_record(self, registry_id: str, ref: str) -> BindingRecord:
        with self._lock:
            record = self._records.get(registry_id, {}).get(ref)
            if record is None:
                raise KeyError(f"No binding record stored for ref={ref!r}")
            return record

    def list_records(self, registry_id: str) -> list[BindingRecord]:
        with self._lock:
            return list(self._records.get(registry_id, {}).values())


class FilesystemRegistryStore(RegistryStore):
    """JSON-file-backed store that several processes may share.

    Parameters
    ----------
    base_dir:
        Root directory for registry storage. Created if missing.
    lock_timeout:
        Seconds to wait for another process's commit lock before giving up
        with :class:`WriteConflictError`.
    stale_lock_after:
        Age in seconds after which a leftover lock file (from a crashed
        writer) is removed.
    """

    def __init__(
        self,
        base_dir: Path,
        lock_timeout: float = 5.0,
        stale_lock_after: float = 60.0,
    ) -> None:
        self._base_dir = base_dir
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._lock_timeout = lock_timeout
        self._stale_lock_after = stale_lock_after
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # RegistryStore interface
    # ------------------------------------------------------------------

    def exists(self, registry_id: str) -> bool:
        return self._state_path(registry_id).exists()

    def create(self, state: RegistryState) -> None:
        registry_dir = self._registry_dir(state.registry_id)
        registry_dir.mkdir(parents=True, exist_ok=True)
        with self._lock, self._file_lock(state.registry_id, state.version):
            if self._state_path(state.registry_id).exists():
                raise AlreadyInitializedError(state.registry_id)
            (registry_dir / "records").mkdir(exist_ok=True)
            self._write_json(self._state_path(state.registry_id), state.to_dict())

    def load(self, registry_id: str) -> RegistryState:
        path = self._state_path(registry_id)
        if not path.exists():
            raise KeyError(f"No registry stored for registry_id={registry_id!r}")
        return RegistryState.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def commit(
        self,
        state: RegistryState,
        expected_version: int,
        records: Iterable[BindingRecord] = (),
    ) -> None:
        with self._lock, self._file_lock(state.registry_id, expected_version):
            current = self.load(state.registry_id)
            if current.version != expected_version:
                raise WriteConflictError(state.registry_id, expected_version, current.version)
            records_dir = self._registry_dir(state.registry_id) / "records"
            records_dir.mkdir(exist_ok=True)
            for record in records:
                self._write_json(records_dir / f"{_safe_name(record.ref)}.json", record.to_dict())
            self._write_json(self._state_path(state.registry_id), state.to_dict())

    def get_record(self, registry_id: str, ref: str) -> BindingRecord:
        path = self._registry_dir(registry_id) / "records" / f"{_safe_name(ref)}.json"
        if not path.exists():
            raise KeyError(f"No binding record stored for ref={ref!r}")
        return BindingRecord.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def list_records(self, registry_id: str) -> list[BindingRecord]:
        records_dir = self._registry_dir(registry_id) / "records"
        if not records_dir.exists():
            return []
        return [
            BindingRecord.from_dict(json.loads(p.read_text(encoding="utf-8")))
            for p in sorted(records_dir.glob("*.json"))
        ]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _registry_dir(self, registry_id: str) -> Path:
        return self._base_dir / _safe_name(registry_id)

    def _state_path(self, registry_id: str) -> Path:
        return self._registry_dir(registry_id) / "state.json"

    @staticmethod
    def _write_json(path: Path, data: dict[str, object]) -> None:
        """Write via a temp file and rename so readers never see a torn file."""
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def _file_lock(self, registry_id: str, expected_version: int) -> "_LockFile":
        return _LockFile(
            self._registry_dir(registry_id) / ".commit.lock",
            registry_id=registry_id,
            expected_version=expected_version,
            timeout=self._lock_timeout,
            stale_after=self._stale_lock_after,
        )


class _LockFile:
    """Exclusive lock file held for the duration of one commit."""

    _POLL_INTERVAL = 0.01

    def __init__(
        self,
        path: Path,
        registry_id: str,
        expected_version: int,
        timeout: float,
        stale_after: float,
    ) -> None:
        self._path = path
        self._registry_id = registry_id
        self._expected_version = expected_version
        self._timeout = timeout
        self._stale_after = stale_after

    def __enter__(self) -> "_LockFile":
        deadline = time.monotonic() + self._timeout
        while True:
            try:
                fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                self._break_if_stale()
                if time.monotonic() >= deadline:
                    raise WriteConflictError(
                        self._registry_id, self._expected_version, None
                    ) from None
                time.sleep(self._POLL_INTERVAL)
                continue
            os.write(fd, str(os.getpid()).encode("ascii"))
            os.close(fd)
            return self

    def __exit__(self, *exc: object) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            logger.warning("Commit lock %s vanished before release", self._path)

    def _break_if_stale(self) -> None:
        """Remove the lock file if it is older than ``stale_after``.

        The lock is first renamed to a private name and its inode compared
        with the one judged stale. A fresh lock that replaced it in between
        is linked back into place rather than deleted.
        """
        try:
            seen = self._path.stat()
        except FileNotFoundError:
            return
        age = time.time() - seen.st_mtime
        if age <= self._stale_after:
            return
        claimed = self._path.with_name(f"{self._path.name}.{os.getpid()}.{uuid.uuid4().hex}")
        try:
            os.rename(self._path, claimed)
        except FileNotFoundError:
            return
        taken = claimed.stat()
        if (taken.st_dev, taken.st_ino) != (seen.st_dev, seen.st_ino):
            try:
                os.link(claimed, self._path)
            except FileExistsError:
                logger.warning("Commit lock %s was replaced while being restored", self._path)
            claimed.unlink()
            return
        logger.warning("Removing stale commit lock %s (age %.1fs)", self._path, age)
        claimed.unlink()


def _safe_name(name: str) -> str:
    return name.replace("/", "_").replace("\\", "_")


__all__ = ["FilesystemRegistryStore", "InMemoryRegistryStore", "RegistryStore"]
