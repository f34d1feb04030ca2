"""BindingRecord — one identity/address binding plus its provenance."""
from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass

# Prefix keeps binding refs distinguishable from base58 owner addresses, which
# never contain an underscore. Lookups still fall back to the owner when a
# ref-shaped key matches no active ref.
REF_PREFIX = "bnd_"


def new_binding_ref() -> str:
    """Return a fresh, unique binding reference."""
    return f"{REF_PREFIX}{uuid.uuid4().hex[:24]}"


def is_binding_ref(key: str) -> bool:
    """Return True if *key* has the shape of a binding reference."""
    return key.startswith(REF_PREFIX)


@dataclass(frozen=True)
class BindingRecord:
    """The binding between an external identity and an on-chain address.

    Frozen: none of the fields change after creation. Compaction only removes
    the record's ref from the registry's active set.

    Parameters
    ----------
    ref:
        Unique reference to this record (``bnd_`` + 24 hex characters).
    owner:
        Address that held the qualifying asset at bind time.
    identity:
        External identity string (e.g. a messaging account id).
    bound_at:
        UTC time from the time oracle when the binding was created.
    asset_ref:
        The specific asset instance backing the binding at creation.
    """

    ref: str
    owner: str
    identity: str
    bound_at: datetime.datetime
    asset_ref: str

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {
            "ref": self.ref,
            "owner": self.owner,
            "identity": self.identity,
            "bound_at": self.bound_at.isoformat(),
            "asset_ref": self.asset_ref,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "BindingRecord":
        """Rebuild a record from :meth:`to_dict` output."""
        return cls(
            ref=str(data["ref"]),
            owner=str(data["owner"]),
            identity=str(data["identity"]),
            bound_at=datetime.datetime.fromisoformat(str(data["bound_at"])),
            asset_ref=str(data["asset_ref"]),
        )


__all__ = ["BindingRecord", "REF_PREFIX", "is_binding_ref", "new_binding_ref"]
