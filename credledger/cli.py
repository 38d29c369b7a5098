"""
CLI entry point for credledger.

Chain commands talk to a deployed IdentityRegistry contract using
REGISTRY_CONTRACT, EVM_RPC_URL and PRIVATE_KEY from the environment.
"""

import json
import time
from pathlib import Path
from typing import Any, Optional

import structlog
import typer
from dotenv import load_dotenv
from web3.exceptions import ContractLogicError

from .config import get_settings
from .evm import RegistryContractClient, SubmitResult
from .identity import (
    CredentialPayload,
    create_credential_hash,
    format_did,
    hash_to_hex,
)
from .metadata import GatewayMetadataFetcher, MetadataError, check_metadata_binding

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

app = typer.Typer(
    name="credledger",
    help="Credential registry, DID directory and verification",
    add_completion=False,
)

SECONDS_PER_DAY = 86_400


def _load_payload(path: Path) -> CredentialPayload:
    try:
        data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        typer.echo(f"Cannot read payload {path}: {e}", err=True)
        raise typer.Exit(1)

    # Accept both the camelCase document form and snake_case.
    if "graduationDate" in data:
        data["graduation_date"] = data.pop("graduationDate")
    try:
        return CredentialPayload(**data)
    except TypeError as e:
        typer.echo(f"Invalid payload {path}: {e}", err=True)
        raise typer.Exit(1)


def _client(rpc_url: Optional[str], contract: Optional[str], signing: bool = False) -> RegistryContractClient:
    settings = get_settings()
    contract = contract or settings.registry_contract
    if not contract:
        typer.echo("Error: registry contract not set (REGISTRY_CONTRACT or --contract)", err=True)
        raise typer.Exit(1)
    if signing and not settings.private_key:
        typer.echo("Error: PRIVATE_KEY is required to send transactions", err=True)
        raise typer.Exit(1)

    try:
        return RegistryContractClient(
            rpc_url=rpc_url or settings.evm_rpc_url,
            contract_address=contract,
            private_key=settings.private_key if signing else None,
            chain_id=settings.chain_id,
            receipt_timeout=settings.receipt_timeout_seconds,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _report(result: SubmitResult) -> None:
    if result.success:
        typer.echo(f"✓ Confirmed: {result.tx_hash}")
        typer.echo(f"  Block: {result.block_number}")
        typer.echo(f"  Gas used: {result.gas_used}")
        return
    typer.echo(f"✗ Failed [{result.error_code or 'error'}]: {result.error}", err=True)
    raise typer.Exit(1)


rpc_option = typer.Option(None, "--rpc", help="EVM RPC URL (default: EVM_RPC_URL)")
contract_option = typer.Option(None, "--contract", help="Registry contract address")


@app.command()
def serve() -> None:
    """Run the HTTP API server."""
    from .main import run

    run()


@app.command("hash")
def hash_payload(
    payload_path: Path = typer.Argument(..., help="JSON file with the credential payload"),
) -> None:
    """
    Compute the credential hash of a payload file.
    """
    payload = _load_payload(payload_path)
    typer.echo(hash_to_hex(create_credential_hash(payload)))


@app.command()
def verify(
    credential_hash: str = typer.Argument(..., help="Credential hash (0x...)"),
    check_metadata: bool = typer.Option(
        False,
        "--check-metadata",
        help="Fetch the metadata document and check it matches the hash",
    ),
    rpc_url: Optional[str] = rpc_option,
    contract: Optional[str] = contract_option,
) -> None:
    """
    Verify a credential against the on-chain registry.
    """
    client = _client(rpc_url, contract)
    try:
        result = client.verify_credential(credential_hash)
    except (ValueError, ContractLogicError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Credential: {credential_hash}")
    typer.echo(f"  Valid: {result.is_valid}")
    typer.echo(f"  Status: {result.status.value}")
    typer.echo(f"  Issuer: {result.issuer}")
    typer.echo(f"  Subject: {result.subject}")
    typer.echo(f"  Issued at: {result.issued_at}")
    typer.echo(f"  Expires at: {result.expires_at}")
    typer.echo(f"  Metadata: {result.metadata_uri or '-'}")

    if check_metadata and result.metadata_uri:
        fetcher = GatewayMetadataFetcher(get_settings().metadata_gateway_url)
        try:
            document = fetcher.get(result.metadata_uri)
        except MetadataError as e:
            typer.echo(f"  Metadata binding: unavailable ({e})")
            raise typer.Exit(1)
        bound = check_metadata_binding(document, credential_hash)
        typer.echo(f"  Metadata binding: {'ok' if bound else 'MISMATCH'}")
        if not bound:
            raise typer.Exit(1)

    if not result.is_valid:
        raise typer.Exit(1)


@app.command()
def did(
    address: str = typer.Argument(..., help="EVM address of the DID owner"),
    rpc_url: Optional[str] = rpc_option,
    contract: Optional[str] = contract_option,
) -> None:
    """Show the DID document registered for an address."""
    from .errors import NotFound

    client = _client(rpc_url, contract)
    try:
        record = client.get_did(address)
    except (NotFound, ValueError, ContractLogicError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"DID: {format_did(record.owner)}")
    typer.echo(f"  Created at: {record.created_at}")
    typer.echo(f"  Active: {record.active}")
    typer.echo(f"  Document: {record.document}")


@app.command()
def issue(
    subject: str = typer.Argument(..., help="Subject EVM address"),
    credential_type: str = typer.Argument(..., help="Credential type, e.g. \"Bachelor's Degree\""),
    credential_hash: Optional[str] = typer.Option(None, "--hash", help="Precomputed credential hash"),
    payload_path: Optional[Path] = typer.Option(
        None, "--payload", help="Payload JSON file to hash instead of --hash"
    ),
    expires_in_days: int = typer.Option(365, "--expires-in-days", help="Validity period"),
    metadata_uri: str = typer.Option("", "--metadata-uri", help="Metadata document URI"),
    rpc_url: Optional[str] = rpc_option,
    contract: Optional[str] = contract_option,
) -> None:
    """
    Issue a credential on-chain (sender must be an authorized issuer).
    """
    if payload_path:
        credential_hash = hash_to_hex(create_credential_hash(_load_payload(payload_path)))
    if not credential_hash:
        typer.echo("Error: pass --hash or --payload", err=True)
        raise typer.Exit(1)

    expires_at = int(time.time()) + expires_in_days * SECONDS_PER_DAY
    client = _client(rpc_url, contract, signing=True)
    typer.echo(f"Issuing {credential_hash} to {subject} (expires {expires_at})")
    try:
        result = client.issue_credential(credential_hash, subject, credential_type, expires_at, metadata_uri)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _report(result)


@app.command()
def revoke(
    credential_hash: str = typer.Argument(..., help="Credential hash (0x...)"),
    rpc_url: Optional[str] = rpc_option,
    contract: Optional[str] = contract_option,
) -> None:
    """Revoke a credential (sender must be its issuer)."""
    client = _client(rpc_url, contract, signing=True)
    try:
        result = client.revoke_credential(credential_hash)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _report(result)


@app.command("add-issuer")
def add_issuer(
    address: str = typer.Argument(..., help="Issuer EVM address"),
    rpc_url: Optional[str] = rpc_option,
    contract: Optional[str] = contract_option,
) -> None:
    """Authorize an issuer (sender must be the contract owner)."""
    client = _client(rpc_url, contract, signing=True)
    try:
        result = client.add_issuer(address)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _report(result)


@app.command("remove-issuer")
def remove_issuer(
    address: str = typer.Argument(..., help="Issuer EVM address"),
    rpc_url: Optional[str] = rpc_option,
    contract: Optional[str] = contract_option,
) -> None:
    """Deauthorize an issuer (sender must be the contract owner)."""
    client = _client(rpc_url, contract, signing=True)
    try:
        result = client.remove_issuer(address)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _report(result)


@app.command("register-did")
def register_did(
    document_path: Path = typer.Argument(..., help="DID document file"),
    rpc_url: Optional[str] = rpc_option,
    contract: Optional[str] = contract_option,
) -> None:
    """Register a DID document for the sender's address."""
    try:
        document = document_path.read_text(encoding="utf-8")
    except OSError as e:
        typer.echo(f"Cannot read {document_path}: {e}", err=True)
        raise typer.Exit(1)

    client = _client(rpc_url, contract, signing=True)
    typer.echo(f"Registering {format_did(client.address)}")
    _report(client.register_did(document))


@app.command()
def version() -> None:
    """Show the credledger version."""
    from credledger import __version__
    typer.echo(f"credledger v{__version__}")


def main() -> None:
    """Main entry point."""
    load_dotenv()
    app()


if __name__ == "__main__":
    main()
