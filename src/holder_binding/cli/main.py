"""CLI entry point for holder-binding.

Invoked as::

    holder-binding [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m holder_binding.cli.main

Commands
--------
init        Initialize the registry (caller becomes admin)
bind        Bind an identity to an asset-holding address
query       Check an identity against an active binding
show        Show one active binding by ref or owner address
list        List active bindings (--all includes dropped ones)
set-asset   Change the allowed asset (admin)
compact     Drop bindings no longer backed by a proof (admin)
keygen      Generate an Ed25519 keypair and its address
sign        Print signature headers for an HTTP request
serve       Run the HTTP server
version     Show version information

State is kept in a filesystem store (``--store-dir``). The CLI is an
operator tool: it trusts the caller address given on the command line.
"""
from __future__ import annotations

import base64
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table

from holder_binding.config import ServiceConfig, build_service, load_config
from holder_binding.errors import BindingRegistryError
from holder_binding.registry.service import RegistryService, VerificationStatus

console = Console()


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="holder-binding")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a YAML config file.",
)
@click.option(
    "--store-dir",
    type=click.Path(file_okay=False),
    default=None,
    envvar="HOLDER_BINDING_STORE_DIR",
    help="Directory holding registry state. Defaults to ./.holder-binding.",
)
@click.option("--registry-id", default=None, help="Deployment key of the registry.")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[str],
    store_dir: Optional[str],
    registry_id: Optional[str],
) -> None:
    """Bind external identities to addresses holding a designated asset."""
    config = load_config(config_path)
    if store_dir is not None:
        config.store_dir = Path(store_dir)
    elif config.store_dir is None:
        config.store_dir = Path(".holder-binding")
    if registry_id is not None:
        config.registry_id = registry_id
    ctx.obj = config


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from holder_binding import __version__

    console.print(f"[bold]holder-binding[/bold] v{__version__}")


# ------------------------------------------------------------------
# Registry administration
# ------------------------------------------------------------------


@cli.command(name="init")
@click.option("--admin", required=True, help="Address that becomes the registry admin.")
@click.option("--allowed-asset", default=None, help="Asset eligible for bindings.")
@click.pass_obj
def init_command(config: ServiceConfig, admin: str, allowed_asset: Optional[str]) -> None:
    """Initialize the registry."""
    service = _service(config)
    state = _run(lambda: service.initialize(admin=admin, allowed_asset=allowed_asset))
    console.print(f"[green]Initialized[/green] registry [bold]{state.registry_id}[/bold]")
    console.print(f"  Admin:         {state.admin}")
    console.print(f"  Allowed asset: {state.allowed_asset or '(unset)'}")


@cli.command(name="set-asset")
@click.option("--caller", required=True, help="Address of the caller (must be admin).")
@click.argument("asset")
@click.pass_obj
def set_asset_command(config: ServiceConfig, caller: str, asset: str) -> None:
    """Set ASSET as the asset eligible for new bindings."""
    service = _service(config)
    state = _run(lambda: service.set_allowed_asset(caller, asset))
    console.print(f"[green]Allowed asset set[/green] to [bold]{state.allowed_asset}[/bold]")
    console.print("  Existing bindings are re-checked at the next compaction.")


@cli.command(name="compact")
@click.option("--caller", required=True, help="Address of the caller (must be admin).")
@click.option("--proofs", "proofs_json", default=None, help="JSON proof batch.")
@click.option(
    "--proofs-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="File containing the JSON proof batch.",
)
@click.pass_obj
def compact_command(
    config: ServiceConfig,
    caller: str,
    proofs_json: Optional[str],
    proofs_file: Optional[str],
) -> None:
    """Drop bindings whose owner has no valid proof in the batch.

    The batch is either an object mapping owner address to proof, or a list
    of proofs keyed by their ``owner`` field. A batch is required: an empty
    batch drops every binding, so it must be given explicitly as ``{}``.
    """
    from holder_binding.ownership.proof import parse_proof_batch

    if proofs_json is None and proofs_file is None:
        console.print(
            "[red]Error:[/red] a proof batch is required (--proofs or --proofs-file). "
            "Pass --proofs '{}' to drop every binding."
        )
        sys.exit(1)
    raw = _load_json(proofs_json, proofs_file, "proof batch", default={})
    try:
        batch = parse_proof_batch(raw)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    service = _service(config)
    result = _run(lambda: service.compact(caller, batch))
    console.print(
        f"[green]Compacted[/green]: removed {result.removed_count}, "
        f"retained {len(result.retained)}"
    )
    for ref in result.removed:
        console.print(f"  [yellow]-[/yellow] {ref}")


# ------------------------------------------------------------------
# Bindings
# ------------------------------------------------------------------


@cli.command(name="bind")
@click.option("--caller", required=True, help="Address of the caller; becomes the owner.")
@click.argument("identity")
@click.option("--proof", "proof_json", default=None, help="JSON ownership proof.")
@click.option(
    "--proof-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="File containing the JSON ownership proof.",
)
@click.pass_obj
def bind_command(
    config: ServiceConfig,
    caller: str,
    identity: str,
    proof_json: Optional[str],
    proof_file: Optional[str],
) -> None:
    """Bind IDENTITY to the caller's address."""
    proof = _load_json(proof_json, proof_file, "proof", default=None)
    service = _service(config)
    record = _run(lambda: service.bind(caller, identity, proof))
    console.print(f"[green]Bound[/green] [bold]{record.identity}[/bold] to {record.owner}")
    console.print(f"  Ref:       {record.ref}")
    console.print(f"  Asset ref: {record.asset_ref}")
    console.print(f"  Bound at:  {record.bound_at.isoformat()}")


@cli.command(name="query")
@click.argument("key")
@click.argument("identity")
@click.pass_obj
def query_command(config: ServiceConfig, key: str, identity: str) -> None:
    """Check IDENTITY against the active binding for KEY (ref or owner)."""
    service = _service(config)
    status = _run(lambda: service.query(key, identity))
    if status is VerificationStatus.VERIFIED:
        console.print(f"[green]Verified[/green]: {key} is bound to {identity!r}")
    else:
        console.print(f"[red]Not verified[/red]: {key} is not bound to {identity!r}")


@cli.command(name="show")
@click.argument("key")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON.")
@click.pass_obj
def show_command(config: ServiceConfig, key: str, as_json: bool) -> None:
    """Show the active binding for KEY (ref or owner address)."""
    service = _service(config)
    record = _run(lambda: service.get_binding(key))
    if as_json:
        click.echo(json.dumps(record.to_dict(), indent=2))
        return
    for field_name, value in record.to_dict().items():
        console.print(f"  {field_name:<10} {value}")


@cli.command(name="list")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON.")
@click.option(
    "--all",
    "include_dropped",
    is_flag=True,
    default=False,
    help="Include bindings dropped by compaction.",
)
@click.pass_obj
def list_command(config: ServiceConfig, as_json: bool, include_dropped: bool) -> None:
    """List active bindings in insertion order.

    With ``--all``, every stored binding is listed oldest first, including
    those dropped by compaction, with its status.
    """
    service = _service(config)
    records = _run(service.list_bindings)
    active = {r.ref for r in records}
    if include_dropped:
        records = _run(service.binding_history)

    if as_json:
        rows = [r.to_dict() for r in records]
        if include_dropped:
            for row in rows:
                row["active"] = row["ref"] in active
        click.echo(json.dumps(rows, indent=2))
        return

    title = "All bindings" if include_dropped else "Active bindings"
    table = Table(title=f"{title} — {config.registry_id}")
    table.add_column("Ref", style="dim")
    table.add_column("Owner")
    table.add_column("Identity", style="bold")
    table.add_column("Asset ref")
    table.add_column("Bound at")
    if include_dropped:
        table.add_column("Status")
    for record in records:
        row = [
            record.ref,
            record.owner,
            record.identity,
            record.asset_ref,
            record.bound_at.isoformat(),
        ]
        if include_dropped:
            row.append("[green]active[/green]" if record.ref in active else "[dim]dropped[/dim]")
        table.add_row(*row)
    console.print(table)
    console.print(f"\nTotal: {len(records)} binding(s)")


# ------------------------------------------------------------------
# Keys / server
# ------------------------------------------------------------------


@cli.command(name="keygen")
def keygen_command() -> None:
    """Generate an Ed25519 keypair for signing HTTP requests."""
    from holder_binding.auth.keys import AddressKeyManager

    private_bytes, address = AddressKeyManager().generate_keypair()
    console.print(f"Address:     [bold]{address}[/bold]")
    console.print(f"Private key: {base64.b64encode(private_bytes).decode('ascii')}")
    console.print("[yellow]Store the private key securely; it is not saved.[/yellow]")


@cli.command(name="sign")
@click.argument("method")
@click.argument("path")
@click.option(
    "--private-key",
    required=True,
    envvar="HOLDER_BINDING_PRIVATE_KEY",
    help="Base64 private key, as printed by keygen.",
)
@click.option("--body", default="", help="Exact request body that will be sent.")
def sign_command(method: str, path: str, private_key: str, body: str) -> None:
    """Print the signature headers for a METHOD request to PATH.

    The headers are valid for one request inside the server's freshness
    window.
    """
    from holder_binding.auth.caller import sign_request

    try:
        raw_key = base64.b64decode(private_key, validate=True)
        headers = sign_request(raw_key, method, path, body.encode("utf-8"))
    except ValueError as exc:
        console.print(f"[red]Error:[/red] invalid private key: {exc}")
        sys.exit(1)
    for name, value in headers.items():
        click.echo(f"{name}: {value}")


@cli.command(name="serve")
@click.option("--host", default=None, help="Bind address (overrides config).")
@click.option("--port", type=int, default=None, help="TCP port (overrides config).")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level.",
)
@click.pass_obj
def serve_command(
    config: ServiceConfig, host: Optional[str], port: Optional[int], log_level: str
) -> None:
    """Run the HTTP server (blocking)."""
    from holder_binding.server.app import run_server

    logging.basicConfig(level=getattr(logging, log_level))
    if host is not None:
        config.server.host = host
    if port is not None:
        config.server.port = port
    run_server(config)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _service(config: ServiceConfig) -> RegistryService:
    return build_service(config)


def _run(operation: Any) -> Any:
    """Call *operation*, turning registry errors into a message and exit 1."""
    try:
        return operation()
    except BindingRegistryError as exc:
        console.print(f"[red]Error ({exc.code}):[/red] {exc}")
        sys.exit(1)


def _load_json(
    inline: Optional[str], path: Optional[str], what: str, default: object
) -> Any:
    """Parse JSON given inline or in a file; exit 1 on malformed input."""
    if inline is not None and path is not None:
        console.print(f"[red]Error:[/red] give the {what} inline or as a file, not both.")
        sys.exit(1)
    if inline is None and path is None:
        return default
    text = inline if inline is not None else Path(path).read_text(encoding="utf-8")  # type: ignore[arg-type]
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Error:[/red] {what} is not valid JSON: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
