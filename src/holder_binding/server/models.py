"""Pydantic request/response models for the holder-binding HTTP server."""
from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, Field


class InitializeRequest(BaseModel):
    """Request body for POST /registry."""

    allowed_asset: Optional[str] = None


class SetAllowedAssetRequest(BaseModel):
    """Request body for PUT /registry/allowed-asset."""

    allowed_asset: str = Field(min_length=1)


class BindRequest(BaseModel):
    """Request body for POST /bindings.

    The proof is passed through untouched; the ownership verifier decides
    whether it is usable.
    """

    identity: str = Field(min_length=1)
    proof: dict[str, Any] = Field(default_factory=dict)


class QueryRequest(BaseModel):
    """Request body for POST /bindings/query."""

    key: str = Field(min_length=1)
    identity: str


class CompactRequest(BaseModel):
    """Request body for POST /registry/compact."""

    proofs: Union[dict[str, Any], list[dict[str, Any]]] = Field(default_factory=dict)


class RegistryResponse(BaseModel):
    """Response body representing the registry state."""

    registry_id: str
    admin: str
    allowed_asset: Optional[str] = None
    active_bindings: list[str] = Field(default_factory=list)
    version: int
    created_at: str


class BindingResponse(BaseModel):
    """Response body representing one binding record."""

    ref: str
    owner: str
    identity: str
    bound_at: str
    asset_ref: str


class BindingListResponse(BaseModel):
    """Response body for GET /bindings."""

    bindings: list[BindingResponse] = Field(default_factory=list)
    count: int = 0


class QueryResponse(BaseModel):
    """Response body for POST /bindings/query."""

    key: str
    status: str
    verified: bool


class CompactResponse(BaseModel):
    """Response body for POST /registry/compact."""

    removed_count: int
    removed: list[str] = Field(default_factory=list)
    retained: list[str] = Field(default_factory=list)
    version: int


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str = "ok"
    service: str = "holder-binding"
    version: str = "0.1.0"
    initialized: bool = False
    binding_count: int = 0


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    code: str = ""
    detail: str = ""


__all__ = [
    "BindRequest",
    "BindingListResponse",
    "BindingResponse",
    "CompactRequest",
    "CompactResponse",
    "ErrorResponse",
    "HealthResponse",
    "InitializeRequest",
    "QueryRequest",
    "QueryResponse",
    "RegistryResponse",
    "SetAllowedAssetRequest",
]
