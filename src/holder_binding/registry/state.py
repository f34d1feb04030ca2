"""RegistryState — an immutable snapshot of one deployment's registry.

Transitions never mutate a snapshot; each helper returns a new state with
``version`` bumped by one. A store commits a new state only if the version
it holds still matches the version the new state was derived from, which is
how concurrent writers detect that they raced.
"""
from __future__ import annotations

import datetime
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class RegistryState:
    """Registry snapshot.

    Parameters
    ----------
    registry_id:
        Deployment key the registry lives under.
    admin:
        Address allowed to change policy and trigger compaction. Set once.
    allowed_asset:
        Asset identity eligible for new bindings, or None when no asset has
        been set yet (no binding can succeed until one is).
    active_bindings:
        Refs of the active binding records, in insertion order.
    version:
        Number of committed mutations since initialization.
    created_at:
        When the registry was initialized.
    """

    registry_id: str
    admin: str
    allowed_asset: Optional[str]
    active_bindings: tuple[str, ...] = ()
    version: int = 0
    created_at: datetime.datetime = datetime.datetime.min.replace(
        tzinfo=datetime.timezone.utc
    )

    def __contains__(self, ref: object) -> bool:
        return ref in self.active_bindings

    def __len__(self) -> int:
        return len(self.active_bindings)

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {
            "registry_id": self.registry_id,
            "admin": self.admin,
            "allowed_asset": self.allowed_asset,
            "active_bindings": list(self.active_bindings),
            "version": self.version,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "RegistryState":
        """Rebuild a state from :meth:`to_dict` output."""
        allowed = data.get("allowed_asset")
        return cls(
            registry_id=str(data["registry_id"]),
            admin=str(data["admin"]),
            allowed_asset=None if allowed is None else str(allowed),
            active_bindings=tuple(str(r) for r in data.get("active_bindings") or []),  # type: ignore[union-attr]
            version=int(data.get("version", 0)),  # type: ignore[arg-type]
            created_at=datetime.datetime.fromisoformat(str(data["created_at"])),
        )


def new_registry(
    registry_id: str,
    admin: str,
    allowed_asset: Optional[str],
    created_at: datetime.datetime,
) -> RegistryState:
    """Return a fresh, empty registry at version 0."""
    return RegistryState(
        registry_id=registry_id,
        admin=admin,
        allowed_asset=allowed_asset,
        active_bindings=(),
        version=0,
        created_at=created_at,
    )


def append_binding(state: RegistryState, ref: str) -> RegistryState:
    """Return *state* with *ref* appended to the active set.

    Raises
    ------
    ValueError
        If *ref* is already active.
    """
    if ref in state.active_bindings:
        raise ValueError(f"Binding {ref!r} is already active.")
    return replace(
        state,
        active_bindings=state.active_bindings + (ref,),
        version=state.version + 1,
    )


def set_allowed_asset(state: RegistryState, asset: str) -> RegistryState:
    """Return *state* with ``allowed_asset`` replaced."""
    return replace(state, allowed_asset=asset, version=state.version + 1)


def remove_bindings(state: RegistryState, dropped: Iterable[str]) -> RegistryState:
    """Return *state* without the refs in *dropped*.

    The filter is stable: surviving refs keep their relative order. Refs in
    *dropped* that are not active are ignored.
    """
    dropped_set = frozenset(dropped)
    kept = tuple(ref for ref in state.active_bindings if ref not in dropped_set)
    return replace(state, active_bindings=kept, version=state.version + 1)


__all__ = [
    "RegistryState",
    "append_binding",
    "new_registry",
    "remove_bindings",
    "set_allowed_asset",
]
