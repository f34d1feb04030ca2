#!/usr/bin/env python3
"""Example: Signed requests

Shows how an HTTP client proves control of its address: the address is the
base58 Ed25519 public key, and each request carries a signature over its
method, path, timestamp and raw body. The route handlers are called directly
so no server is started.

Usage:
    python examples/02_signed_requests.py

Requirements:
    pip install holder-binding
"""
from __future__ import annotations

import json

from holder_binding.auth import AddressKeyManager, CallerAuthenticator, sign_request
from holder_binding.server import routes


def main() -> None:
    keys = AddressKeyManager()
    admin_key, _ = keys.generate_keypair()
    holder_key, holder = keys.generate_keypair()
    authenticator = CallerAuthenticator()

    def signed(
        private_key: bytes, method: str, path: str, payload: dict[str, object]
    ) -> tuple[str | None, dict[str, object]]:
        body = json.dumps(payload).encode("utf-8")
        headers = sign_request(private_key, method, path, body)
        result = authenticator.authenticate_request(headers, body, method, path)
        print(f"  authenticated as {result.address or '(nobody)'} via {result.mechanism.value}")
        return (result.address or None), payload

    print("Initialize (admin signs POST /registry):")
    init = signed(admin_key, "POST", "/registry", {"allowed_asset": "mint-X"})
    status, data = routes.handle_initialize(*init)
    print(f"  {status} admin={data['admin']}")

    print("Bind (holder signs POST /bindings):")
    proof = {"owner": holder, "asset_type": "mint-X", "quantity": 1}
    payload = {"identity": "alice#1234", "proof": proof}
    status, data = routes.handle_bind(*signed(holder_key, "POST", "/bindings", payload))
    print(f"  {status} ref={data.get('ref')}")

    print("Replaying the admin's signature on POST /registry/compact:")
    body = json.dumps({"allowed_asset": "mint-X"}).encode("utf-8")
    replay = authenticator.authenticate_request(
        sign_request(admin_key, "POST", "/registry", body), body, "POST", "/registry/compact"
    )
    print(f"  rejected: {replay.reason}")

    print("Query (no credentials needed):")
    status, data = routes.handle_query({"key": holder, "identity": "alice#1234"})
    print(f"  {status} status={data['status']}")


if __name__ == "__main__":
    main()
