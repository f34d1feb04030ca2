"""OwnershipVerifier — decides whether a proof backs a claimed holder."""
from __future__ import annotations

import logging
from typing import Optional

from holder_binding.ownership.proof import coerce_proof

logger = logging.getLogger(__name__)


class OwnershipVerifier:
    """Pure predicate over supplied ownership proofs.

    A proof backs ``claimed_owner`` when it names that owner, holds the
    allowed asset, and has a positive quantity. Failing any of these is an
    ordinary negative result: :meth:`verify` never raises, because negative
    results are the normal path during compaction scans.

    Example
    -------
    ::

        verifier = OwnershipVerifier()
        proof = OwnershipProof(owner="A", asset_type="X", quantity=1)
        assert verifier.verify("A", "X", proof)
        assert not verifier.verify("B", "X", proof)
    """

    def verify(
        self,
        claimed_owner: str,
        allowed_asset: Optional[str],
        proof: object,
    ) -> bool:
        """Return True iff *proof* shows *claimed_owner* holding *allowed_asset*.

        Parameters
        ----------
        claimed_owner:
            Address that claims the holding.
        allowed_asset:
            The asset identity currently eligible. ``None`` (no asset set
            yet) never verifies.
        proof:
            An :class:`~holder_binding.ownership.proof.OwnershipProof`, a
            mapping with the same fields, or anything else (which fails).

        Returns
        -------
        bool
        """
        if allowed_asset is None:
            return False

        parsed = coerce_proof(proof)
        if parsed is None:
            logger.debug("Unusable ownership proof for %s", claimed_owner)
            return False

        return (
            parsed.owner == claimed_owner
            and parsed.asset_type == allowed_asset
            and parsed.quantity > 0
        )


__all__ = ["OwnershipVerifier"]
