"""Tests for holder_binding.server.routes — route handler functions."""
from __future__ import annotations

import pytest

from holder_binding.registry.service import RegistryService
from holder_binding.server import routes


@pytest.fixture(autouse=True)
def reset_server_state() -> None:
    """Reset module-level state before each test."""
    routes.reset_state()


def _proof(owner: str, asset: str = "X", quantity: int = 1) -> dict[str, object]:
    return {"owner": owner, "asset_type": asset, "quantity": quantity}


@pytest.fixture()
def initialized() -> None:
    status, _ = routes.handle_initialize("M", {"allowed_asset": "X"})
    assert status == 201


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestInitialize:
    def test_caller_becomes_admin(self) -> None:
        status, data = routes.handle_initialize("M", {"allowed_asset": "X"})
        assert status == 201
        assert data["admin"] == "M"
        assert data["allowed_asset"] == "X"
        assert data["active_bindings"] == []
        assert data["version"] == 0

    def test_unauthenticated_returns_401(self) -> None:
        status, data = routes.handle_initialize(None, {"allowed_asset": "X"})
        assert status == 401
        assert data["error"] == "Unauthenticated"

    def test_second_initialize_returns_409(self, initialized: None) -> None:
        status, data = routes.handle_initialize("Z", {})
        assert status == 409
        assert data["code"] == "already_initialized"
        assert data["error"] == "AlreadyInitializedError"

    def test_without_asset(self) -> None:
        status, data = routes.handle_initialize("M", {})
        assert status == 201
        assert data["allowed_asset"] is None


class TestGetRegistry:
    def test_not_initialized_returns_404(self) -> None:
        status, data = routes.handle_get_registry()
        assert status == 404
        assert data["code"] == "registry_not_initialized"

    def test_returns_state(self, initialized: None) -> None:
        routes.handle_bind("A", {"identity": "user1", "proof": _proof("A")})
        status, data = routes.handle_get_registry()
        assert status == 200
        assert len(data["active_bindings"]) == 1  # type: ignore[arg-type]
        assert data["version"] == 1


class TestSetAllowedAsset:
    def test_admin_changes_asset(self, initialized: None) -> None:
        status, data = routes.handle_set_allowed_asset("M", {"allowed_asset": "Y"})
        assert status == 200
        assert data["allowed_asset"] == "Y"

    def test_non_admin_returns_403(self, initialized: None) -> None:
        status, data = routes.handle_set_allowed_asset("A", {"allowed_asset": "Y"})
        assert status == 403
        assert data["code"] == "unauthorized"

    def test_empty_asset_returns_422(self, initialized: None) -> None:
        status, data = routes.handle_set_allowed_asset("M", {"allowed_asset": ""})
        assert status == 422
        assert data["error"] == "Validation error"


class TestCompact:
    def test_mapping_batch(self, initialized: None) -> None:
        for owner in ("A", "B", "C"):
            routes.handle_bind(owner, {"identity": f"id-{owner}", "proof": _proof(owner)})
        status, data = routes.handle_compact(
            "M", {"proofs": {"A": _proof("A"), "C": _proof("C")}}
        )
        assert status == 200
        assert data["removed_count"] == 1
        assert len(data["retained"]) == 2  # type: ignore[arg-type]

    def test_list_batch(self, initialized: None) -> None:
        routes.handle_bind("A", {"identity": "id-A", "proof": _proof("A")})
        status, data = routes.handle_compact("M", {"proofs": [_proof("A")]})
        assert status == 200
        assert data["removed_count"] == 0

    def test_missing_batch_drops_everything(self, initialized: None) -> None:
        routes.handle_bind("A", {"identity": "id-A", "proof": _proof("A")})
        status, data = routes.handle_compact("M", {})
        assert status == 200
        assert data["removed_count"] == 1

    def test_non_admin_returns_403(self, initialized: None) -> None:
        status, _ = routes.handle_compact("A", {"proofs": {}})
        assert status == 403

    def test_unauthenticated_returns_401(self, initialized: None) -> None:
        status, _ = routes.handle_compact(None, {"proofs": {}})
        assert status == 401


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


class TestBind:
    def test_bind_returns_record(self, initialized: None) -> None:
        status, data = routes.handle_bind("A", {"identity": "user1", "proof": _proof("A")})
        assert status == 201
        assert data["owner"] == "A"
        assert data["identity"] == "user1"
        assert str(data["ref"]).startswith("bnd_")
        assert data["asset_ref"] == "X"

    def test_invalid_proof_returns_403(self, initialized: None) -> None:
        status, data = routes.handle_bind(
            "A", {"identity": "user1", "proof": _proof("A", quantity=0)}
        )
        assert status == 403
        assert data["code"] == "not_asset_holder"

    def test_missing_proof_returns_403(self, initialized: None) -> None:
        status, _ = routes.handle_bind("A", {"identity": "user1"})
        assert status == 403

    def test_identity_too_long_returns_422(self, initialized: None) -> None:
        status, data = routes.handle_bind("A", {"identity": "x" * 65, "proof": _proof("A")})
        assert status == 422
        assert data["code"] == "identity_too_long"

    def test_duplicate_returns_409(self, initialized: None) -> None:
        routes.handle_bind("A", {"identity": "user1", "proof": _proof("A")})
        status, data = routes.handle_bind("A", {"identity": "user2", "proof": _proof("A")})
        assert status == 409
        assert data["code"] == "duplicate_binding"

    def test_missing_identity_returns_422(self, initialized: None) -> None:
        status, _ = routes.handle_bind("A", {"proof": _proof("A")})
        assert status == 422

    def test_unauthenticated_returns_401(self, initialized: None) -> None:
        status, _ = routes.handle_bind(None, {"identity": "user1", "proof": _proof("A")})
        assert status == 401

    def test_before_initialize_returns_404(self) -> None:
        status, data = routes.handle_bind("A", {"identity": "user1", "proof": _proof("A")})
        assert status == 404
        assert data["code"] == "registry_not_initialized"


class TestReads:
    def test_list_in_insertion_order(self, initialized: None) -> None:
        for owner in ("B", "A"):
            routes.handle_bind(owner, {"identity": f"id-{owner}", "proof": _proof(owner)})
        status, data = routes.handle_list_bindings()
        assert status == 200
        assert data["count"] == 2
        assert [b["owner"] for b in data["bindings"]] == ["B", "A"]  # type: ignore[union-attr,index]

    def test_get_by_owner_and_ref(self, initialized: None) -> None:
        _, created = routes.handle_bind("A", {"identity": "user1", "proof": _proof("A")})
        status, by_owner = routes.handle_get_binding("A")
        assert status == 200
        status, by_ref = routes.handle_get_binding(str(created["ref"]))
        assert status == 200
        assert by_owner == by_ref

    def test_get_unknown_returns_404(self, initialized: None) -> None:
        status, data = routes.handle_get_binding("nobody")
        assert status == 404
        assert data["code"] == "binding_not_found"


class TestQuery:
    def test_verified(self, initialized: None) -> None:
        routes.handle_bind("A", {"identity": "user1", "proof": _proof("A")})
        status, data = routes.handle_query({"key": "A", "identity": "user1"})
        assert status == 200
        assert data == {"key": "A", "status": "verified", "verified": True}

    def test_not_verified(self, initialized: None) -> None:
        routes.handle_bind("A", {"identity": "user1", "proof": _proof("A")})
        status, data = routes.handle_query({"key": "A", "identity": "user2"})
        assert status == 200
        assert data["status"] == "not_verified"
        assert data["verified"] is False

    def test_unknown_key_returns_404(self, initialized: None) -> None:
        status, _ = routes.handle_query({"key": "nobody", "identity": "user1"})
        assert status == 404

    def test_missing_fields_return_422(self) -> None:
        status, _ = routes.handle_query({"key": "A"})
        assert status == 422


# ---------------------------------------------------------------------------
# Health / configure
# ---------------------------------------------------------------------------


class TestHealth:
    def test_uninitialized(self) -> None:
        status, data = routes.handle_health()
        assert status == 200
        assert data["status"] == "ok"
        assert data["service"] == "holder-binding"
        assert data["initialized"] is False
        assert data["binding_count"] == 0

    def test_counts_bindings(self, initialized: None) -> None:
        routes.handle_bind("A", {"identity": "user1", "proof": _proof("A")})
        _, data = routes.handle_health()
        assert data["initialized"] is True
        assert data["binding_count"] == 1


class TestConfigure:
    def test_configure_swaps_service(self) -> None:
        service = RegistryService(registry_id="custom")
        service.initialize(admin="Q", allowed_asset="Z")
        routes.configure(service)
        _, data = routes.handle_get_registry()
        assert data["registry_id"] == "custom"
        assert data["admin"] == "Q"
