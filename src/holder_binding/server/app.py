"""HTTP server for holder-binding using stdlib http.server.

Routes:
    GET    /health                    — health check
    POST   /registry                  — initialize (caller becomes admin)
    GET    /registry                  — registry state
    PUT    /registry/allowed-asset    — change the allowed asset (admin)
    POST   /registry/compact          — compaction with a proof batch (admin)
    POST   /bindings                  — bind the caller to an identity
    GET    /bindings                  — list active bindings
    GET    /bindings/{key}            — one binding by ref or owner address
    POST   /bindings/query            — verify an identity against a binding

Callers authenticate with ``Authorization: Bearer <token>`` or with the
``X-Caller-Address``, ``X-Timestamp`` and ``X-Signature`` headers (base64
Ed25519 signature over the method, path, timestamp and raw body).

Usage:
    python -m holder_binding.server.app --port 8080
    python -m holder_binding.server.app --config deploy.yaml
"""
from __future__ import annotations

import argparse
import json
import logging
import re
import urllib.parse
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional

from holder_binding.auth.caller import CallerAuthenticator
from holder_binding.config import ServiceConfig, build_service, load_config
from holder_binding.server import routes

logger = logging.getLogger(__name__)

_BINDING_KEY_PATTERN = re.compile(r"^/bindings/([^/]+)$")


class HolderBindingHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the holder-binding server.

    All request bodies and responses use JSON.
    """

    def log_message(self, format: str, *args: object) -> None:
        """Route access logs through the Python logging system."""
        logger.debug(format, *args)

    # ── GET ───────────────────────────────────────────────────────────────────

    def do_GET(self) -> None:
        path = self._path()

        if path == "/health":
            self._send_json(*routes.handle_health())
        elif path == "/registry":
            self._send_json(*routes.handle_get_registry())
        elif path == "/bindings":
            self._send_json(*routes.handle_list_bindings())
        else:
            match = _BINDING_KEY_PATTERN.match(path)
            if match:
                key = urllib.parse.unquote(match.group(1))
                self._send_json(*routes.handle_get_binding(key))
            else:
                self._not_found("GET", path)

    # ── POST ──────────────────────────────────────────────────────────────────

    def do_POST(self) -> None:
        path = self._path()
        raw = self._read_raw_body()
        body = self._parse_json(raw)
        if body is None:
            return

        if path == "/bindings/query":
            self._send_json(*routes.handle_query(body))
        elif path == "/registry":
            self._send_json(*routes.handle_initialize(self._caller(raw), body))
        elif path == "/registry/compact":
            self._send_json(*routes.handle_compact(self._caller(raw), body))
        elif path == "/bindings":
            self._send_json(*routes.handle_bind(self._caller(raw), body))
        else:
            self._not_found("POST", path)

    # ── PUT ───────────────────────────────────────────────────────────────────

    def do_PUT(self) -> None:
        path = self._path()
        raw = self._read_raw_body()
        body = self._parse_json(raw)
        if body is None:
            return

        if path == "/registry/allowed-asset":
            self._send_json(*routes.handle_set_allowed_asset(self._caller(raw), body))
        else:
            self._not_found("PUT", path)

    # ── DELETE ────────────────────────────────────────────────────────────────

    def do_DELETE(self) -> None:
        path = self._path()
        self._send_json(
            405,
            {"error": "Method not allowed", "detail": f"DELETE not supported on {path}"},
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _path(self) -> str:
        return urllib.parse.urlparse(self.path).path.rstrip("/") or "/"

    def _caller(self, raw: bytes) -> Optional[str]:
        """Return the authenticated caller address, or None."""
        result = routes.get_authenticator().authenticate_request(
            dict(self.headers.items()),
            raw,
            method=self.command,
            path=urllib.parse.urlparse(self.path).path,
        )
        if not result.success:
            logger.info("Authentication failed (%s): %s", result.mechanism.value, result.reason)
            return None
        return result.address

    def _not_found(self, method: str, path: str) -> None:
        self._send_json(404, {"error": "Not found", "detail": f"No route for {method} {path}"})

    def _send_json(self, status: int, data: dict[str, object]) -> None:
        """Serialize *data* to JSON and send an HTTP response with *status*."""
        body = json.dumps(data, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_raw_body(self) -> bytes:
        content_length = int(self.headers.get("Content-Length", 0))
        if content_length == 0:
            return b""
        return self.rfile.read(content_length)

    def _parse_json(self, raw: bytes) -> dict[str, object] | None:
        """Parse the JSON request body.

        Returns None (and sends a 400 error response) if parsing fails.
        """
        if not raw:
            return {}
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            self._send_json(400, {"error": "Invalid JSON", "detail": str(exc)})
            return None
        if not isinstance(parsed, dict):
            self._send_json(400, {"error": "Invalid JSON", "detail": "Body must be an object."})
            return None
        return parsed


def create_server(
    host: str = "127.0.0.1",
    port: int = 8080,
    config: Optional[ServiceConfig] = None,
) -> HTTPServer:
    """Create (but do not start) the holder-binding HTTP server.

    When *config* is given, the route handlers are wired to a service and
    authenticator built from it.
    """
    if config is not None:
        routes.configure(
            build_service(config),
            CallerAuthenticator(
                bearer_tokens=config.server.bearer_tokens,
                allow_signed_requests=config.server.allow_signed_requests,
                max_signature_age=config.server.max_signature_age,
            ),
        )
    server = HTTPServer((host, port), HolderBindingHandler)
    logger.info("holder-binding server created at http://%s:%d", host, port)
    return server


def run_server(config: ServiceConfig) -> None:
    """Create and run the server (blocking)."""
    host, port = config.server.host, config.server.port
    server = create_server(host=host, port=port, config=config)
    logger.info("Serving holder-binding on http://%s:%d — press Ctrl-C to stop", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down holder-binding server.")
    finally:
        server.server_close()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="holder-binding HTTP server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    parser.add_argument("--host", default=None, help="Bind address (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="TCP port (overrides config)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


if __name__ == "__main__":
    args = _build_arg_parser().parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level))
    loaded = load_config(args.config)
    if args.host is not None:
        loaded.server.host = args.host
    if args.port is not None:
        loaded.server.port = args.port
    run_server(loaded)
