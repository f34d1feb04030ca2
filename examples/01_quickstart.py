#!/usr/bin/env python3
"""Example: Quickstart

Demonstrates the full registry lifecycle: initialize, bind with an ownership
proof, query, change the allowed asset, and compact.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install holder-binding
"""
from __future__ import annotations

import holder_binding
from holder_binding import BindingNotFoundError, OwnershipProof, RegistryService


def main() -> None:
    print(f"holder-binding version: {holder_binding.__version__}")

    # Step 1: Initialize the registry with admin M accepting asset X
    service = RegistryService()
    service.initialize(admin="M", allowed_asset="X")

    # Step 2: A holds X and binds an identity
    record = service.bind("A", "user1", OwnershipProof(owner="A", asset_type="X", quantity=1))
    print(f"Bound {record.identity!r} to {record.owner} (ref={record.ref})")

    # Step 3: Query
    print(f"query(A, 'user1'): {service.query('A', 'user1').value}")
    print(f"query(A, 'user2'): {service.query('A', 'user2').value}")

    # Step 4: Admin switches the allowed asset to Y
    service.set_allowed_asset("M", "Y")

    # Step 5: Compaction with A's (now ineligible) X holding drops the binding
    result = service.compact("M", {"A": OwnershipProof(owner="A", asset_type="X", quantity=1)})
    print(f"Compaction removed {result.removed_count} binding(s)")

    try:
        service.query("A", "user1")
    except BindingNotFoundError as exc:
        print(f"query(A, 'user1'): {exc}")

    print("\nQuickstart complete.")


if __name__ == "__main__":
    main()
