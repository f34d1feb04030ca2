"""Tests for RegistryService.compact — the global check over active bindings."""
from __future__ import annotations

import pytest

from holder_binding.audit import RegistryAuditLogger
from holder_binding.errors import BindingNotFoundError, UnauthorizedError
from holder_binding.ownership.proof import OwnershipProof
from holder_binding.ownership.verifier import OwnershipVerifier
from holder_binding.registry.service import RegistryService, VerificationStatus


def _proof(owner: str, asset: str = "X", quantity: int = 1) -> OwnershipProof:
    return OwnershipProof(owner=owner, asset_type=asset, quantity=quantity)


@pytest.fixture()
def audit() -> RegistryAuditLogger:
    return RegistryAuditLogger()


@pytest.fixture()
def service(audit: RegistryAuditLogger) -> RegistryService:
    svc = RegistryService(audit_logger=audit)
    svc.initialize(admin="M", allowed_asset="X")
    return svc


def _bind_all(service: RegistryService, *owners: str) -> dict[str, str]:
    return {owner: service.bind(owner, f"id-{owner}", _proof(owner)).ref for owner in owners}


class TestAuthority:
    def test_non_admin_is_unauthorized(self, service: RegistryService) -> None:
        _bind_all(service, "A")
        with pytest.raises(UnauthorizedError):
            service.compact("A", {})
        assert len(service.state()) == 1


class TestFiltering:
    def test_removes_exactly_the_unbacked_bindings(self, service: RegistryService) -> None:
        refs = _bind_all(service, "A", "B", "C")
        result = service.compact("M", {"A": _proof("A"), "C": _proof("C")})

        assert result.removed_count == 1
        assert result.removed == (refs["B"],)
        assert result.retained == (refs["A"], refs["C"])
        assert service.state().active_bindings == (refs["A"], refs["C"])

    def test_missing_proof_is_dropped(self, service: RegistryService) -> None:
        _bind_all(service, "A")
        result = service.compact("M", {})
        assert result.removed_count == 1
        assert service.state().active_bindings == ()

    @pytest.mark.parametrize(
        "proof",
        [
            _proof("A", quantity=0),
            _proof("A", asset="Y"),
            _proof("B"),
            {"owner": "A", "asset_type": "X"},
            None,
        ],
    )
    def test_invalid_proof_is_dropped_silently(
        self, service: RegistryService, proof: object
    ) -> None:
        _bind_all(service, "A")
        result = service.compact("M", {"A": proof})
        assert result.removed_count == 1

    def test_mistyped_proof_drops_only_its_binding(self, service: RegistryService) -> None:
        refs = _bind_all(service, "A", "B")
        batch = {
            "A": _proof("A"),
            "B": OwnershipProof(owner="B", asset_type="X", quantity="1"),  # type: ignore[arg-type]
        }
        result = service.compact("M", batch)
        assert result.removed == (refs["B"],)
        assert service.state().active_bindings == (refs["A"],)

    def test_dict_proofs_are_accepted(self, service: RegistryService) -> None:
        _bind_all(service, "A")
        result = service.compact("M", {"A": {"owner": "A", "asset_type": "X", "quantity": 2}})
        assert result.removed_count == 0

    def test_stable_order_among_survivors(self, service: RegistryService) -> None:
        refs = _bind_all(service, "E", "D", "C", "B", "A")
        batch = {owner: _proof(owner) for owner in ("A", "C", "E")}
        service.compact("M", batch)
        assert service.state().active_bindings == (refs["E"], refs["C"], refs["A"])

    def test_judges_against_current_allowed_asset(self, service: RegistryService) -> None:
        _bind_all(service, "A", "B")
        service.set_allowed_asset("M", "Y")
        result = service.compact("M", {"A": _proof("A", asset="X"), "B": _proof("B", asset="Y")})
        assert result.removed_count == 1
        assert [r.owner for r in service.list_bindings()] == ["B"]

    def test_removed_binding_is_no_longer_queryable(self, service: RegistryService) -> None:
        refs = _bind_all(service, "A")
        service.compact("M", {})
        with pytest.raises(BindingNotFoundError):
            service.query("A", "id-A")
        with pytest.raises(BindingNotFoundError):
            service.query(refs["A"], "id-A")


class TestIdempotence:
    def test_empty_registry_is_a_no_op(self, service: RegistryService) -> None:
        before = service.state()
        result = service.compact("M", {})
        assert result.removed_count == 0
        assert service.state() == before

    def test_second_pass_with_same_valid_batch_removes_nothing(
        self, service: RegistryService
    ) -> None:
        _bind_all(service, "A", "B", "C")
        batch = {owner: _proof(owner) for owner in "ABC"}

        first = service.compact("M", batch)
        second = service.compact("M", batch)

        assert first.removed_count == 0
        assert second.removed_count == 0
        assert first.state.active_bindings == second.state.active_bindings

    def test_all_valid_batch_does_not_bump_version(self, service: RegistryService) -> None:
        _bind_all(service, "A")
        version = service.state().version
        service.compact("M", {"A": _proof("A")})
        assert service.state().version == version


class TestConcurrentBind:
    def test_binding_created_during_scan_is_kept(self) -> None:
        """A bind that lands between the scan and the commit must survive."""
        late: dict[str, str] = {}

        class BindingDuringScan(OwnershipVerifier):
            def __init__(self) -> None:
                self.service: RegistryService | None = None
                self.fired = False

            def verify(self, claimed_owner, allowed_asset, proof):  # type: ignore[no-untyped-def]
                if self.service is not None and not self.fired and proof is None:
                    self.fired = True
                    late["ref"] = self.service.bind("Z", "late", _proof("Z")).ref
                return super().verify(claimed_owner, allowed_asset, proof)

        verifier = BindingDuringScan()
        svc = RegistryService(verifier=verifier)
        svc.initialize(admin="M", allowed_asset="X")
        refs = _bind_all(svc, "A", "B")
        verifier.service = svc

        result = svc.compact("M", {"A": _proof("A")})

        assert result.removed == (refs["B"],)
        assert svc.state().active_bindings == (refs["A"], late["ref"])
        assert svc.query("Z", "late") is VerificationStatus.VERIFIED


class TestAudit:
    def test_compaction_is_audited(
        self, service: RegistryService, audit: RegistryAuditLogger
    ) -> None:
        refs = _bind_all(service, "A", "B")
        service.compact("M", {"A": _proof("A")})
        event = audit.read_events()[-1]
        assert event["event_type"] == "registry_compacted"
        assert event["details"]["removed"] == [refs["B"]]  # type: ignore[index]
        assert event["details"]["removed_count"] == 1  # type: ignore[index]
