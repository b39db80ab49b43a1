"""
Command-line interface for vc-auth.

Usage:
    vc-auth create-token --holder did:nda:testnet:0x... --vc-file vc.jwt
    vc-auth verify-token eyJhbGciOiJFUzI1NksiLC...
    cat token.jwt | vc-auth verify-token -
    vc-auth store-key
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from vc_auth.errors import (
    ClaimExtractionError,
    CredentialParseError,
    MalformedPresentationError,
    TokenVerificationError,
    VCAuthError,
)
from vc_auth.jwt_codec import JWTCodec
from vc_auth.models import VcClaims
from vc_auth.provider import VaultProvider
from vc_auth.service import TokenService
from vc_auth.vault import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT


console = Console()
err_console = Console(stderr=True)

VERIFICATION_ERRORS = (
    TokenVerificationError,
    MalformedPresentationError,
    CredentialParseError,
    ClaimExtractionError,
)


def format_claims(claims: list[VcClaims]) -> None:
    """Print one panel per verified credential."""
    console.print(f"[bold green]VALID[/] presentation with {len(claims)} credential(s)")
    for position, claim in enumerate(claims, start=1):
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Field", style="dim")
        table.add_column("Value")
        table.add_row("Issuer", claim.issuer)
        for key, value in claim.subject.items():
            table.add_row(str(key), str(value))
        console.print(Panel(table, title=f"Credential {position}", border_style="green"))


def read_token(source: str) -> str:
    """Read a token from the argument itself, a file, or stdin ("-")."""
    if source == "-":
        return sys.stdin.read().strip()
    try:
        is_file = Path(source).is_file()
    except OSError:
        # Token literals run past the file name length limit
        is_file = False
    if is_file:
        return Path(source).read_text().strip()
    return source.strip()


class _NoSigner:
    async def sign(self, payload: bytes, options: object = None) -> bytes:
        raise click.UsageError("verify-token does not sign")


def _build_provider(ctx: click.Context) -> VaultProvider:
    settings = ctx.obj
    if not settings["vault_address"] or not settings["vault_token"]:
        raise click.UsageError("--vault-address and --vault-token (or VAULT_ADDR/VAULT_TOKEN) are required")
    return VaultProvider.from_settings(
        settings["vault_address"],
        settings["vault_token"],
        max_retries=settings["max_retries"],
        timeout=settings["timeout"],
    )


def _build_codec(ctx: click.Context) -> JWTCodec:
    did_url = ctx.obj["did_url"]
    if not did_url:
        raise click.UsageError("--did-url (or VC_AUTH_DID_URL) is required")
    return JWTCodec.from_did_url(did_url)


@click.group()
@click.option("--vault-address", envvar="VAULT_ADDR", help="Vault base URL")
@click.option("--vault-token", envvar="VAULT_TOKEN", help="Vault authentication token")
@click.option("--did-url", envvar="VC_AUTH_DID_URL", help="DID resolution endpoint")
@click.option(
    "--max-retries",
    envvar="VC_AUTH_MAX_RETRIES",
    type=int,
    default=DEFAULT_MAX_RETRIES,
    show_default=True,
    help="Retries when Vault answers 429/503",
)
@click.option(
    "--timeout",
    type=float,
    default=DEFAULT_TIMEOUT,
    show_default=True,
    help="Per-request HTTP timeout in seconds",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(package_name="vc-auth")
@click.pass_context
def main(
    ctx: click.Context,
    vault_address: str | None,
    vault_token: str | None,
    did_url: str | None,
    max_retries: int,
    timeout: float,
    verbose: bool,
) -> None:
    """Create and verify verifiable presentation tokens."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    ctx.obj = {
        "vault_address": vault_address,
        "vault_token": vault_token,
        "did_url": did_url,
        "max_retries": max_retries,
        "timeout": timeout,
    }


@main.command("create-token")
@click.option("--holder", required=True, help="Holder DID")
@click.option("--vc", "vcs", multiple=True, help="Credential JWT (repeatable)")
@click.option(
    "--vc-file",
    "vc_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File holding one credential JWT (repeatable)",
)
@click.pass_context
def create_token(
    ctx: click.Context,
    holder: str,
    vcs: tuple[str, ...],
    vc_files: tuple[Path, ...],
) -> None:
    """Create a presentation token for HOLDER from credential JWTs."""
    credentials = list(vcs) + [path.read_text().strip() for path in vc_files]
    codec = _build_codec(ctx)
    service = TokenService(_build_provider(ctx), codec)

    async def run() -> str:
        async with service:
            return await service.create_token(credentials, holder)

    try:
        token = asyncio.run(run())
    except VCAuthError as e:
        err_console.print(f"[red]Error:[/] {e}")
        sys.exit(2)

    click.echo(token)


@main.command("verify-token")
@click.argument("source", required=True)
@click.option("--json-output", is_flag=True, help="Output claims as JSON")
@click.pass_context
def verify_token(ctx: click.Context, source: str, json_output: bool) -> None:
    """Verify a presentation token and print its credential claims.

    SOURCE can be the token itself, a file holding it, or "-" for stdin.
    Exits 1 when the token cannot be verified, including when the DID
    resolver is unreachable, and 2 on usage errors.
    """
    codec = _build_codec(ctx)
    token = read_token(source)

    try:
        # Verification needs no signer
        claims = asyncio.run(TokenService(_NoSigner(), codec).verify_token(token))
    except VERIFICATION_ERRORS as e:
        if json_output:
            console.print_json(data={"valid": False, "error": str(e)})
        else:
            console.print(f"[bold red]INVALID[/] {e}")
        sys.exit(1)
    except VCAuthError as e:
        err_console.print(f"[red]Error:[/] {e}")
        sys.exit(2)

    if json_output:
        console.print_json(data={"valid": True, "claims": [c.to_dict() for c in claims]})
    else:
        format_claims(claims)


@main.command("store-key")
@click.option(
    "--private-key",
    prompt=True,
    hide_input=True,
    envvar="VC_AUTH_PRIVATE_KEY",
    help="Hex-encoded secp256k1 private key",
)
@click.pass_context
def store_key(ctx: click.Context, private_key: str) -> None:
    """Store a private key in Vault and print the new signer address."""
    provider = _build_provider(ctx)

    async def run() -> str:
        try:
            return await provider.store_private_key(private_key)
        finally:
            await provider.aclose()

    try:
        address = asyncio.run(run())
    except VCAuthError as e:
        err_console.print(f"[red]Error:[/] {e}")
        sys.exit(2)

    click.echo(address)


if __name__ == "__main__":
    main()
