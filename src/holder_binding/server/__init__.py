"""HTTP server mode for holder-binding.

Provides a lightweight stdlib-based JSON API over the registry service
without requiring any additional web framework dependencies.
"""
from __future__ import annotations

from holder_binding.server.app import HolderBindingHandler, create_server, run_server

__all__ = ["HolderBindingHandler", "create_server", "run_server"]
