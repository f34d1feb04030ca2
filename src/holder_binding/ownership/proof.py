"""Ownership proofs — externally supplied snapshots of asset holdings.

An :class:`OwnershipProof` asserts that a given asset account is owned by
``owner``, holds ``quantity`` units of ``asset_type``, and (optionally) lives
at ``account``. The registry never fetches these itself: callers gather the
current ledger state and pass proofs in, one per bind and a batch keyed by
owner address per compaction.

Authenticity of a proof is the supplier's responsibility. This module only
gives proofs a shape.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OwnershipProof:
    """A point-in-time snapshot of one asset account.

    Parameters
    ----------
    owner:
        Address recorded as the asset account's owner.
    asset_type:
        The asset identity (e.g. NFT mint or collection address) held.
    quantity:
        Units held. A holding exists only when this is greater than zero.
    account:
        Address of the asset account itself, when known. Recorded on new
        bindings as the backing asset reference.
    """

    owner: str
    asset_type: str
    quantity: int
    account: Optional[str] = None

    @property
    def asset_ref(self) -> str:
        """Reference to the specific asset instance backing a binding."""
        return self.account or self.asset_type

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        data: dict[str, object] = {
            "owner": self.owner,
            "asset_type": self.asset_type,
            "quantity": self.quantity,
        }
        if self.account is not None:
            data["account"] = self.account
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "OwnershipProof":
        """Build a proof from a mapping.

        Raises
        ------
        ValueError
            If a required field is missing or has the wrong type.
        """
        try:
            owner = data["owner"]
            asset_type = data["asset_type"]
            quantity = data["quantity"]
        except KeyError as exc:
            raise ValueError(f"Ownership proof is missing field {exc.args[0]!r}") from exc

        proof = cls(
            owner=owner,  # type: ignore[arg-type]
            asset_type=asset_type,  # type: ignore[arg-type]
            quantity=quantity,  # type: ignore[arg-type]
            account=data.get("account"),  # type: ignore[arg-type]
        )
        proof.check()
        return proof

    def check(self) -> None:
        """Validate field types.

        The dataclass itself does not enforce its annotations, so a proof
        built by hand can carry anything.

        Raises
        ------
        ValueError
            If a field has the wrong type.
        """
        if not isinstance(self.owner, str) or not isinstance(self.asset_type, str):
            raise ValueError("Ownership proof 'owner' and 'asset_type' must be strings.")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError("Ownership proof 'quantity' must be an integer.")
        if self.account is not None and not isinstance(self.account, str):
            raise ValueError("Ownership proof 'account' must be a string when present.")


def coerce_proof(proof: object) -> Optional[OwnershipProof]:
    """Return *proof* as an :class:`OwnershipProof`, or None when unusable.

    Accepts an existing proof or a mapping with the proof fields. Anything
    else, including a proof or mapping with mistyped fields, yields None.
    """
    try:
        if isinstance(proof, OwnershipProof):
            proof.check()
            return proof
        if isinstance(proof, Mapping):
            return OwnershipProof.from_dict(proof)
    except ValueError:
        return None
    return None


def parse_proof_batch(raw: object) -> dict[str, object]:
    """Normalize a compaction proof batch into ``{owner_address: proof}``.

    Two shapes are accepted:

    - a mapping of owner address to proof (the canonical form);
    - a list of proofs, keyed here by each proof's own ``owner`` field.

    Individual proofs are passed through untouched (malformed entries are
    kept so that verification, not parsing, decides their fate). Entries in
    a list without a usable ``owner`` are skipped, since nothing could key
    them.

    Raises
    ------
    ValueError
        If *raw* is neither a mapping nor a list.
    """
    if isinstance(raw, Mapping):
        return {str(address): proof for address, proof in raw.items()}
    if isinstance(raw, list):
        batch: dict[str, object] = {}
        for entry in raw:
            proof = coerce_proof(entry)
            if proof is not None:
                batch[proof.owner] = proof
        return batch
    raise ValueError("Proof batch must be a mapping of address to proof or a list of proofs.")


__all__ = ["OwnershipProof", "coerce_proof", "parse_proof_batch"]
