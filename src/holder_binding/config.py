"""Configuration for holder-binding deployments.

All configuration is pydantic-validated and loaded from:

1. an optional YAML file;
2. ``HOLDER_BINDING_*`` environment variables (overrides).

:func:`build_service` turns a config into a wired :class:`RegistryService`.
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from holder_binding.audit import RegistryAuditLogger
from holder_binding.auth.caller import DEFAULT_MAX_SIGNATURE_AGE
from holder_binding.registry.service import (
    DEFAULT_REGISTRY_ID,
    MAX_IDENTITY_BYTES,
    RegistryService,
)
from holder_binding.registry.store import (
    FilesystemRegistryStore,
    InMemoryRegistryStore,
    RegistryStore,
)

ENV_PREFIX = "HOLDER_BINDING_"


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=0, le=65535)
    # token -> caller address. Empty disables bearer auth.
    bearer_tokens: dict[str, str] = Field(default_factory=dict)
    allow_signed_requests: bool = True
    # seconds a signed X-Timestamp may differ from server time
    max_signature_age: float = Field(default=DEFAULT_MAX_SIGNATURE_AGE, gt=0)


class ServiceConfig(BaseModel):
    """Top-level deployment configuration."""

    registry_id: str = Field(default=DEFAULT_REGISTRY_ID, min_length=1)
    # None keeps state in memory for the life of the process.
    store_dir: Optional[Path] = None
    audit_log_path: Optional[Path] = None
    max_identity_bytes: int = Field(default=MAX_IDENTITY_BYTES, ge=1, le=1024)
    server: ServerConfig = Field(default_factory=ServerConfig)


def load_config(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ServiceConfig:
    """Load configuration from a YAML file, then apply environment overrides.

    Parameters
    ----------
    config_path:
        Optional path to a YAML file. A missing or empty file is treated as
        empty.
    environ:
        Environment mapping; defaults to ``os.environ``.

    Raises
    ------
    pydantic.ValidationError
        If the merged configuration is invalid.
    ValueError
        If the file does not hold a mapping at the top level.
    """
    raw: dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValueError(f"Config file {path} must contain a mapping.")
            raw = loaded

    env = os.environ if environ is None else environ

    if registry_id := env.get(f"{ENV_PREFIX}REGISTRY_ID"):
        raw["registry_id"] = registry_id
    if store_dir := env.get(f"{ENV_PREFIX}STORE_DIR"):
        raw["store_dir"] = store_dir
    if audit_log := env.get(f"{ENV_PREFIX}AUDIT_LOG"):
        raw["audit_log_path"] = audit_log
    if max_bytes := env.get(f"{ENV_PREFIX}MAX_IDENTITY_BYTES"):
        raw["max_identity_bytes"] = int(max_bytes)
    if host := env.get(f"{ENV_PREFIX}HOST"):
        raw.setdefault("server", {})["host"] = host
    if port := env.get(f"{ENV_PREFIX}PORT"):
        raw.setdefault("server", {})["port"] = int(port)
    if tokens := env.get(f"{ENV_PREFIX}BEARER_TOKENS"):
        # token=address pairs, comma separated
        pairs = (item.split("=", 1) for item in tokens.split(",") if "=" in item)
        raw.setdefault("server", {})["bearer_tokens"] = {
            token.strip(): address.strip() for token, address in pairs
        }
    if signed := env.get(f"{ENV_PREFIX}ALLOW_SIGNED_REQUESTS"):
        raw.setdefault("server", {})["allow_signed_requests"] = signed.lower() in (
            "true",
            "1",
            "yes",
        )
    if max_age := env.get(f"{ENV_PREFIX}MAX_SIGNATURE_AGE"):
        raw.setdefault("server", {})["max_signature_age"] = float(max_age)

    return ServiceConfig.model_validate(raw)


def build_store(config: ServiceConfig) -> RegistryStore:
    """Return the store backend described by *config*."""
    if config.store_dir is None:
        return InMemoryRegistryStore()
    return FilesystemRegistryStore(config.store_dir)


def build_service(
    config: ServiceConfig,
    store: RegistryStore | None = None,
) -> RegistryService:
    """Wire a :class:`RegistryService` from *config*."""
    audit = RegistryAuditLogger(config.audit_log_path) if config.audit_log_path else None
    return RegistryService(
        store=store if store is not None else build_store(config),
        registry_id=config.registry_id,
        audit_logger=audit,
        max_identity_bytes=config.max_identity_bytes,
    )


__all__ = [
    "ENV_PREFIX",
    "ServerConfig",
    "ServiceConfig",
    "build_service",
    "build_store",
    "load_config",
]
