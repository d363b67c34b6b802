"""CLI entry point for capshare.

Invoked as::

    capshare [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m capshare.cli.main

Commands
--------
version   Show version information
keygen    Generate an issuer signing key
inspect   Decode a delegation proof and check its signature
serve     Run the HTTP server
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console()


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="capshare")
def cli() -> None:
    """Scoped, time-bounded capability delegation for content-addressed objects"""


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from capshare import __version__

    console.print(f"[bold]capshare[/bold] v{__version__}")


# ------------------------------------------------------------------
# keygen
# ------------------------------------------------------------------


@cli.command(name="keygen")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing key file.")
def keygen_command(output: Path, force: bool) -> None:
    """Generate an Ed25519 issuer key and write it to OUTPUT."""
    from capshare.delegation import IssuerKey

    if output.exists() and not force:
        console.print(f"[red]Error:[/red] {output} already exists (use --force to overwrite).")
        sys.exit(1)

    key = IssuerKey.generate()
    key.to_file(output)
    console.print(f"[green]Wrote issuer key to[/green] {output}")
    console.print(f"  Issuer: [bold]{key.did}[/bold]")


# ------------------------------------------------------------------
# inspect
# ------------------------------------------------------------------


@cli.command(name="inspect")
@click.argument("proof")
@click.option(
    "--issuer",
    default=None,
    help="Expected issuer did:key; fail if the proof names another issuer.",
)
def inspect_command(proof: str, issuer: str | None) -> None:
    """Decode PROOF, check its signature, and show its claims.

    This checks only the proof itself. Whether the delegation is still
    live (not revoked, not expired, not superseded) is decided by the
    issuing service.
    """
    from capshare.delegation import DelegationProof
    from capshare.errors import MalformedProofError

    try:
        decoded = DelegationProof.decode(proof.strip())
    except MalformedProofError as exc:
        console.print(f"[red]FAIL[/red]  {escape(str(exc))}")
        sys.exit(1)

    table = Table(title="Delegation proof", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Version", str(decoded.version))
    table.add_row("Subject", decoded.subject_id)
    table.add_row("Grantee", decoded.grantee)
    table.add_row("Capabilities", ", ".join(sorted(c.value for c in decoded.capabilities)))
    table.add_row("Issued", decoded.issued_at.isoformat())
    table.add_row("Expires", decoded.expires_at.isoformat())
    table.add_row("Issuer", decoded.issuer)
    console.print(table)

    if issuer is not None and decoded.issuer != issuer:
        console.print(f"  [red]FAIL[/red]  Issuer mismatch: expected {issuer!r}.")
        sys.exit(1)
    console.print("  [green]PASS[/green]  Signature is valid.")


# ------------------------------------------------------------------
# serve
# ------------------------------------------------------------------


@cli.command(name="serve")
@click.option("--host", default="0.0.0.0", show_default=True, help="Bind address.")
@click.option("--port", type=int, default=8080, show_default=True, help="TCP port.")
@click.option(
    "--key-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Issuer key file (created if missing).",
)
@click.option(
    "--storage-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the filesystem blob store.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level (defaults to CAPSHARE_LOG_LEVEL or INFO).",
)
def serve_command(
    host: str,
    port: int,
    key_file: Path | None,
    storage_dir: Path | None,
    log_level: str | None,
) -> None:
    """Run the capshare HTTP server."""
    from pydantic import ValidationError

    from capshare.config import CapShareConfig
    from capshare.server.app import run_server
    from capshare.service import ShareService

    overrides: dict[str, object] = {}
    if key_file is not None:
        overrides["issuer_key_path"] = key_file
    if storage_dir is not None:
        overrides["storage_dir"] = storage_dir
    if log_level is not None:
        overrides["log_level"] = log_level
    try:
        config = CapShareConfig(**overrides)
    except ValidationError as exc:
        console.print(
            "[red]Error:[/red] invalid configuration (check CAPSHARE_* variables): "
            f"{escape(str(exc))}"
        )
        sys.exit(1)

    logging.basicConfig(level=getattr(logging, config.log_level))
    service = ShareService.from_config(config)
    console.print(f"[bold]capshare[/bold] issuer {service.issuer}")
    run_server(service, host=host, port=port)


if __name__ == "__main__":
    cli()
