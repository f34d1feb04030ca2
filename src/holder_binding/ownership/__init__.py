"""Ownership proofs and their verification.

Quick start
-----------
::

    from holder_binding.ownership import OwnershipProof, OwnershipVerifier

    proof = OwnershipProof(owner="A", asset_type="X", quantity=1)
    OwnershipVerifier().verify("A", "X", proof)  # True
"""
from __future__ import annotations

from holder_binding.ownership.proof import OwnershipProof, coerce_proof, parse_proof_batch
from holder_binding.ownership.verifier import OwnershipVerifier

__all__ = [
    "OwnershipProof",
    "OwnershipVerifier",
    "coerce_proof",
    "parse_proof_batch",
]
