# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Contract Provider CLI

Commands:
- run: obtain an identity and synchronize contracts once or on an interval
- show: print the contracts currently held by the configured store

Every option can also be set through the environment variable named in
its help text.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Optional

import click
from cryptography import x509
from cryptography.x509.oid import NameOID
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from contractprovider import __version__
from contractprovider.config import (
    DEFAULT_COMMON_NAME,
    DEFAULT_LOCAL_PATH,
    DEFAULT_SECRET_NAME,
    ProviderConfig,
    StorageBackend,
)
from contractprovider.exceptions import StoreError
from contractprovider.models import Contract
from contractprovider.provider import run_provider
from contractprovider.storage import (
    AbstractContractStore,
    KubernetesSecretContractStore,
    LocalFileContractStore,
)

console = Console()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(debug: bool) -> None:
    """Log provider messages at INFO (DEBUG with ``debug``), others at WARNING."""
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)
    logging.getLogger("contractprovider").setLevel(logging.DEBUG if debug else logging.INFO)


def _output_json(data: object) -> None:
    """Print data as JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def _format_datetime(dt: Optional[datetime]) -> str:
    if dt is None:
        return "N/A"
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def _describe(contract: Contract) -> dict:
    """Summarize a stored contract for display."""
    try:
        cert = x509.load_pem_x509_certificate(contract.certificate)
    except ValueError:
        return {"id": contract.id, "trust_zone": contract.trust_zone, "subject": None, "expires": None}
    cn = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return {
        "id": contract.id,
        "trust_zone": contract.trust_zone,
        "subject": str(cn[0].value) if cn else cert.subject.rfc4514_string(),
        "expires": cert.not_valid_after_utc,
    }


storage_option = click.option(
    "--storage", "-s",
    type=click.Choice([b.value for b in StorageBackend]),
    default=StorageBackend.LOCAL.value,
    envvar="STORAGE",
    show_default=True,
    help="Storage adapter: local file or Kubernetes secret. [env: STORAGE]",
)
secret_name_option = click.option(
    "--secret-name",
    default=DEFAULT_SECRET_NAME,
    envvar="SECRET_NAME",
    show_default=True,
    help="Name of the Kubernetes secret (kubernetes storage). [env: SECRET_NAME]",
)
local_path_option = click.option(
    "--local-path",
    default=DEFAULT_LOCAL_PATH,
    envvar="LOCAL_PATH",
    show_default=True,
    help="Path of the contract bundle (local storage). [env: LOCAL_PATH]",
)


@click.group()
@click.version_option(__version__, prog_name="contract-provider")
def cli():
    """WirePact contract provider.

    Fetches all valid contracts of the own trust zone from the contract
    repository and stores them in a local file or a Kubernetes secret.
    """


@cli.command()
@storage_option
@secret_name_option
@local_path_option
@click.option(
    "--common-name",
    default=DEFAULT_COMMON_NAME,
    envvar="COMMON_NAME",
    show_default=True,
    help="Common name of the private certificate for this provider. [env: COMMON_NAME]",
)
@click.option(
    "--pki-address", required=True, envvar="PKI_ADDRESS",
    help="Address of the home PKI. [env: PKI_ADDRESS]",
)
@click.option("--pki-api-key", envvar="PKI_API_KEY", help="API key for the PKI. [env: PKI_API_KEY]")
@click.option(
    "--repo-address", required=True, envvar="REPO_ADDRESS",
    help="Address of the contract repository. [env: REPO_ADDRESS]",
)
@click.option(
    "--repo-api-key", envvar="REPO_API_KEY",
    help="API key for the contract repository. [env: REPO_API_KEY]",
)
@click.option(
    "--repo-ca-path", envvar="REPO_CA_PATH",
    help="Extra CA bundle to verify the repository server. [env: REPO_CA_PATH]",
)
@click.option(
    "--fetch-interval", envvar="FETCH_INTERVAL",
    help="Time between two fetches, e.g. '5min'. Omit to fetch once and quit. [env: FETCH_INTERVAL]",
)
@click.option(
    "--fetch-jitter", envvar="FETCH_JITTER",
    help="Random extra delay added to each interval, e.g. '30s'. [env: FETCH_JITTER]",
)
@click.option(
    "--identity-path", envvar="IDENTITY_PATH",
    help="Directory to keep the provider identity in across restarts. [env: IDENTITY_PATH]",
)
@click.option(
    "--request-timeout", envvar="REQUEST_TIMEOUT", default="30s", show_default=True,
    help="Timeout for PKI and repository calls. [env: REQUEST_TIMEOUT]",
)
@click.option(
    "--conflict-retries", envvar="CONFLICT_RETRIES", type=int, default=3, show_default=True,
    help="Retries after a conflicting secret update. [env: CONFLICT_RETRIES]",
)
@click.option(
    "--fetch-concurrency", envvar="FETCH_CONCURRENCY", type=int, default=8, show_default=True,
    help="Parallel certificate downloads per fetch. [env: FETCH_CONCURRENCY]",
)
@click.option("--debug", "-d", is_flag=True, envvar="DEBUG", help="Print debug messages. [env: DEBUG]")
def run(**options):
    """Obtain an identity and synchronize contracts into the store."""
    settings = {key: value for key, value in options.items() if value is not None}
    try:
        config = ProviderConfig(**settings)
    except ValidationError as exc:
        raise click.UsageError(f"Invalid configuration: {exc}") from exc

    configure_logging(config.debug)
    raise SystemExit(run_provider(config))


def _open_store(storage: str, secret_name: str, local_path: str, namespace: Optional[str]) -> AbstractContractStore:
    if storage == StorageBackend.KUBERNETES.value:
        return KubernetesSecretContractStore(secret_name, namespace=namespace)
    return LocalFileContractStore(local_path)


async def _read_store(store: AbstractContractStore):
    await store.connect()
    try:
        return await store.read()
    finally:
        await store.disconnect()


@cli.command()
@storage_option
@secret_name_option
@local_path_option
@click.option("--namespace", "-n", help="Kubernetes namespace (defaults to the current one).")
@click.option("--json", "json_flag", is_flag=True, help="Output as JSON.")
def show(storage: str, secret_name: str, local_path: str, namespace: Optional[str], json_flag: bool):
    """Show the contracts currently held by the store."""
    store = _open_store(storage, secret_name, local_path, namespace)
    try:
        contract_set = asyncio.run(_read_store(store))
    except StoreError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)

    rows = [_describe(c) for c in contract_set.sorted_contracts()] if contract_set is not None else []

    if json_flag:
        _output_json({
            "store": str(store.handle),
            "revision": contract_set.revision if contract_set is not None else None,
            "contracts": rows,
        })
        return

    if contract_set is None:
        console.print(f"\n[yellow]No contracts stored in {store.handle}[/yellow]\n")
        return

    console.print(f"\n[bold blue]Contracts in {store.handle}[/bold blue]\n")
    table = Table(box=box.ROUNDED)
    table.add_column("Contract ID", style="cyan", no_wrap=True)
    table.add_column("Trust Zone", style="dim")
    table.add_column("Subject")
    table.add_column("Expires", style="dim")
    for row in rows:
        table.add_row(
            row["id"],
            (row["trust_zone"] or "N/A")[:16],
            row["subject"] or "[red]unreadable[/red]",
            _format_datetime(row["expires"]),
        )
    console.print(table)
    console.print(f"\n  Total contracts: {len(rows)}")
    if contract_set.revision:
        console.print(f"  Revision: {contract_set.revision}")
    console.print()


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
