"""Tests for holder_binding.ownership — OwnershipProof and OwnershipVerifier."""
from __future__ import annotations

import dataclasses

import pytest

from holder_binding.ownership.proof import OwnershipProof, coerce_proof, parse_proof_batch
from holder_binding.ownership.verifier import OwnershipVerifier


@pytest.fixture()
def verifier() -> OwnershipVerifier:
    return OwnershipVerifier()


def _proof(owner: str = "A", asset_type: str = "X", quantity: int = 1) -> OwnershipProof:
    return OwnershipProof(owner=owner, asset_type=asset_type, quantity=quantity)


# ---------------------------------------------------------------------------
# OwnershipProof
# ---------------------------------------------------------------------------


class TestOwnershipProof:
    def test_is_frozen(self) -> None:
        proof = _proof()
        with pytest.raises(dataclasses.FrozenInstanceError):
            proof.quantity = 5  # type: ignore[misc]

    def test_asset_ref_prefers_account(self) -> None:
        proof = OwnershipProof(owner="A", asset_type="X", quantity=1, account="acct-1")
        assert proof.asset_ref == "acct-1"

    def test_asset_ref_falls_back_to_asset_type(self) -> None:
        assert _proof().asset_ref == "X"

    def test_from_dict_reads_all_fields(self) -> None:
        proof = OwnershipProof.from_dict(
            {"owner": "A", "asset_type": "X", "quantity": 3, "account": "acct"}
        )
        assert proof == OwnershipProof(owner="A", asset_type="X", quantity=3, account="acct")

    def test_from_dict_missing_field_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="quantity"):
            OwnershipProof.from_dict({"owner": "A", "asset_type": "X"})

    def test_from_dict_rejects_boolean_quantity(self) -> None:
        with pytest.raises(ValueError):
            OwnershipProof.from_dict({"owner": "A", "asset_type": "X", "quantity": True})

    def test_from_dict_rejects_string_quantity(self) -> None:
        with pytest.raises(ValueError):
            OwnershipProof.from_dict({"owner": "A", "asset_type": "X", "quantity": "1"})

    def test_to_dict_omits_missing_account(self) -> None:
        assert _proof().to_dict() == {"owner": "A", "asset_type": "X", "quantity": 1}


class TestCoerceProof:
    def test_passes_proof_through(self) -> None:
        proof = _proof()
        assert coerce_proof(proof) is proof

    def test_mistyped_proof_object_is_none(self) -> None:
        proof = OwnershipProof(owner="A", asset_type="X", quantity="1")  # type: ignore[arg-type]
        assert coerce_proof(proof) is None

    def test_malformed_mapping_is_none(self) -> None:
        assert coerce_proof({"owner": "A"}) is None

    @pytest.mark.parametrize("value", [None, "proof", 42, ["A", "X", 1]])
    def test_other_types_are_none(self, value: object) -> None:
        assert coerce_proof(value) is None


class TestParseProofBatch:
    def test_mapping_is_kept_by_address(self) -> None:
        batch = parse_proof_batch({"A": {"owner": "A", "asset_type": "X", "quantity": 1}})
        assert list(batch) == ["A"]

    def test_list_is_keyed_by_owner(self) -> None:
        batch = parse_proof_batch(
            [
                {"owner": "A", "asset_type": "X", "quantity": 1},
                {"owner": "B", "asset_type": "X", "quantity": 2},
            ]
        )
        assert set(batch) == {"A", "B"}
        assert isinstance(batch["B"], OwnershipProof)

    def test_list_skips_entries_without_owner(self) -> None:
        batch = parse_proof_batch([{"asset_type": "X", "quantity": 1}])
        assert batch == {}

    def test_other_shapes_raise(self) -> None:
        with pytest.raises(ValueError):
            parse_proof_batch("A")


# ---------------------------------------------------------------------------
# OwnershipVerifier
# ---------------------------------------------------------------------------


class TestOwnershipVerifier:
    def test_valid_proof_verifies(self, verifier: OwnershipVerifier) -> None:
        assert verifier.verify("A", "X", _proof()) is True

    def test_dict_proof_verifies(self, verifier: OwnershipVerifier) -> None:
        proof = {"owner": "A", "asset_type": "X", "quantity": 1}
        assert verifier.verify("A", "X", proof) is True

    def test_owner_mismatch_fails(self, verifier: OwnershipVerifier) -> None:
        assert verifier.verify("B", "X", _proof(owner="A")) is False

    def test_asset_mismatch_fails(self, verifier: OwnershipVerifier) -> None:
        assert verifier.verify("A", "Y", _proof(asset_type="X")) is False

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_fails(
        self, verifier: OwnershipVerifier, quantity: int
    ) -> None:
        assert verifier.verify("A", "X", _proof(quantity=quantity)) is False

    def test_large_quantity_verifies(self, verifier: OwnershipVerifier) -> None:
        assert verifier.verify("A", "X", _proof(quantity=10**12)) is True

    def test_unset_allowed_asset_never_verifies(self, verifier: OwnershipVerifier) -> None:
        assert verifier.verify("A", None, _proof()) is False

    @pytest.mark.parametrize(
        "proof",
        [
            None,
            {},
            {"owner": "A", "asset_type": "X"},
            {"owner": "A", "asset_type": "X", "quantity": "lots"},
            {"owner": 7, "asset_type": "X", "quantity": 1},
            "not a proof",
        ],
    )
    def test_malformed_proof_returns_false_without_raising(
        self, verifier: OwnershipVerifier, proof: object
    ) -> None:
        assert verifier.verify("A", "X", proof) is False

    def test_identity_comparison_is_exact(self, verifier: OwnershipVerifier) -> None:
        assert verifier.verify("a", "X", _proof(owner="A")) is False

    @pytest.mark.parametrize(
        "proof",
        [
            OwnershipProof(owner="A", asset_type="X", quantity=None),  # type: ignore[arg-type]
            OwnershipProof(owner="A", asset_type="X", quantity="1"),  # type: ignore[arg-type]
            OwnershipProof(owner="A", asset_type="X", quantity=True),
            OwnershipProof(owner="A", asset_type=None, quantity=1),  # type: ignore[arg-type]
            OwnershipProof(owner="A", asset_type="X", quantity=1, account=5),  # type: ignore[arg-type]
        ],
    )
    def test_mistyped_proof_object_returns_false_without_raising(
        self, verifier: OwnershipVerifier, proof: OwnershipProof
    ) -> None:
        assert verifier.verify("A", "X", proof) is False
