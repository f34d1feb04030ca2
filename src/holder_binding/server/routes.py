"""Route handler functions for the holder-binding HTTP server.

Each function accepts the authenticated caller address (where the route
needs one) and parsed request data, and returns a tuple of
(status_code, response_dict). The HTTP handler in app.py authenticates the
caller, calls these functions, and serializes the results to JSON.
"""
from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from holder_binding import __version__
from holder_binding.auth.caller import CallerAuthenticator
from holder_binding.errors import BindingRegistryError, RegistryNotInitializedError
from holder_binding.ownership.proof import parse_proof_batch
from holder_binding.registry.record import BindingRecord
from holder_binding.registry.service import RegistryService, VerificationStatus
from holder_binding.registry.state import RegistryState
from holder_binding.server.models import (
    BindingListResponse,
    BindingResponse,
    BindRequest,
    CompactRequest,
    CompactResponse,
    ErrorResponse,
    HealthResponse,
    InitializeRequest,
    QueryRequest,
    QueryResponse,
    RegistryResponse,
    SetAllowedAssetRequest,
)

_STATUS_BY_CODE: dict[str, int] = {
    "already_initialized": 409,
    "registry_not_initialized": 404,
    "not_asset_holder": 403,
    "identity_too_long": 422,
    "duplicate_binding": 409,
    "binding_not_found": 404,
    "unauthorized": 403,
    "write_conflict": 409,
}

# Module-level shared state
_service: RegistryService = RegistryService()
_authenticator: CallerAuthenticator = CallerAuthenticator()


def configure(
    service: RegistryService,
    authenticator: Optional[CallerAuthenticator] = None,
) -> None:
    """Install the service (and authenticator) the handlers operate on."""
    global _service, _authenticator
    _service = service
    if authenticator is not None:
        _authenticator = authenticator


def reset_state() -> None:
    """Reset all shared state — used in tests and for clean restarts."""
    global _service, _authenticator
    _service = RegistryService()
    _authenticator = CallerAuthenticator()


def get_authenticator() -> CallerAuthenticator:
    return _authenticator


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _state_to_response(state: RegistryState) -> RegistryResponse:
    return RegistryResponse(
        registry_id=state.registry_id,
        admin=state.admin,
        allowed_asset=state.allowed_asset,
        active_bindings=list(state.active_bindings),
        version=state.version,
        created_at=state.created_at.isoformat(),
    )


def _record_to_response(record: BindingRecord) -> BindingResponse:
    return BindingResponse(
        ref=record.ref,
        owner=record.owner,
        identity=record.identity,
        bound_at=record.bound_at.isoformat(),
        asset_ref=record.asset_ref,
    )


def _error(exc: BindingRegistryError) -> tuple[int, dict[str, object]]:
    status = _STATUS_BY_CODE.get(exc.code, 400)
    return status, ErrorResponse(
        error=type(exc).__name__, code=exc.code, detail=str(exc)
    ).model_dump()


def _validation_error(exc: ValidationError) -> tuple[int, dict[str, object]]:
    return 422, ErrorResponse(error="Validation error", detail=str(exc)).model_dump()


def _unauthenticated() -> tuple[int, dict[str, object]]:
    return 401, ErrorResponse(
        error="Unauthenticated", detail="This route requires an authenticated caller."
    ).model_dump()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def handle_initialize(
    caller: Optional[str], body: dict[str, object]
) -> tuple[int, dict[str, object]]:
    """Handle POST /registry. The caller becomes the admin."""
    if not caller:
        return _unauthenticated()
    try:
        request = InitializeRequest.model_validate(body)
    except ValidationError as exc:
        return _validation_error(exc)
    try:
        state = _service.initialize(admin=caller, allowed_asset=request.allowed_asset)
    except BindingRegistryError as exc:
        return _error(exc)
    return 201, _state_to_response(state).model_dump()


def handle_get_registry() -> tuple[int, dict[str, object]]:
    """Handle GET /registry."""
    try:
        state = _service.state()
    except BindingRegistryError as exc:
        return _error(exc)
    return 200, _state_to_response(state).model_dump()


def handle_set_allowed_asset(
    caller: Optional[str], body: dict[str, object]
) -> tuple[int, dict[str, object]]:
    """Handle PUT /registry/allowed-asset."""
    if not caller:
        return _unauthenticated()
    try:
        request = SetAllowedAssetRequest.model_validate(body)
    except ValidationError as exc:
        return _validation_error(exc)
    try:
        state = _service.set_allowed_asset(caller, request.allowed_asset)
    except BindingRegistryError as exc:
        return _error(exc)
    return 200, _state_to_response(state).model_dump()


def handle_compact(
    caller: Optional[str], body: dict[str, object]
) -> tuple[int, dict[str, object]]:
    """Handle POST /registry/compact."""
    if not caller:
        return _unauthenticated()
    try:
        request = CompactRequest.model_validate(body)
    except ValidationError as exc:
        return _validation_error(exc)
    try:
        result = _service.compact(caller, parse_proof_batch(request.proofs))
    except BindingRegistryError as exc:
        return _error(exc)
    response = CompactResponse(
        removed_count=result.removed_count,
        removed=list(result.removed),
        retained=list(result.retained),
        version=result.state.version,
    )
    return 200, response.model_dump()


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


def handle_bind(
    caller: Optional[str], body: dict[str, object]
) -> tuple[int, dict[str, object]]:
    """Handle POST /bindings. The caller becomes the binding owner."""
    if not caller:
        return _unauthenticated()
    try:
        request = BindRequest.model_validate(body)
    except ValidationError as exc:
        return _validation_error(exc)
    try:
        record = _service.bind(caller, request.identity, request.proof)
    except BindingRegistryError as exc:
        return _error(exc)
    return 201, _record_to_response(record).model_dump()


def handle_list_bindings() -> tuple[int, dict[str, object]]:
    """Handle GET /bindings."""
    try:
        records = _service.list_bindings()
    except BindingRegistryError as exc:
        return _error(exc)
    response = BindingListResponse(
        bindings=[_record_to_response(r) for r in records],
        count=len(records),
    )
    return 200, response.model_dump()


def handle_get_binding(key: str) -> tuple[int, dict[str, object]]:
    """Handle GET /bindings/{key}, where key is a ref or owner address."""
    try:
        record = _service.get_binding(key)
    except BindingRegistryError as exc:
        return _error(exc)
    return 200, _record_to_response(record).model_dump()


def handle_query(body: dict[str, object]) -> tuple[int, dict[str, object]]:
    """Handle POST /bindings/query."""
    try:
        request = QueryRequest.model_validate(body)
    except ValidationError as exc:
        return _validation_error(exc)
    try:
        status = _service.query(request.key, request.identity)
    except BindingRegistryError as exc:
        return _error(exc)
    response = QueryResponse(
        key=request.key,
        status=status.value,
        verified=status is VerificationStatus.VERIFIED,
    )
    return 200, response.model_dump()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def handle_health() -> tuple[int, dict[str, object]]:
    """Handle GET /health."""
    try:
        count = len(_service.state())
        initialized = True
    except RegistryNotInitializedError:
        count = 0
        initialized = False
    response = HealthResponse(
        version=__version__, initialized=initialized, binding_count=count
    )
    return 200, response.model_dump()


__all__ = [
    "configure",
    "get_authenticator",
    "handle_bind",
    "handle_compact",
    "handle_get_binding",
    "handle_get_registry",
    "handle_health",
    "handle_initialize",
    "handle_list_bindings",
    "handle_query",
    "handle_set_allowed_asset",
    "reset_state",
]
