# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Local File Contract Store.

Stores the contract set as a PEM bundle that TLS stacks can load as a CA
file directly. Each certificate block is preceded by comment lines naming
its contract id and trust zone:

    # contract: <id>
    # trust-zone: <zone>
    -----BEGIN CERTIFICATE-----
    ...
    -----END CERTIFICATE-----

A contract whose certificate is a chain keeps all of its blocks under
the one header.

Writes go to a temporary file in the same directory which then replaces
the bundle, so readers see either the old or the new set.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from ..exceptions import StoreError, StoreErrorKind
from ..models import Contract, ContractSet
from .provider import AbstractContractStore, StorageHandle

logger = logging.getLogger(__name__)

BUNDLE_HEADER = "# WirePact contracts, managed by contract-provider. Do not edit."
BEGIN_MARKER = "-----BEGIN CERTIFICATE-----"
END_MARKER = "-----END CERTIFICATE-----"
HEADER_PREFIX = "# "
HEADER_SEPARATOR = ": "


class BundleFormatError(ValueError):
    """The bundle file does not follow the contract bundle layout."""


def render_bundle(contract_set: ContractSet) -> bytes:
    """Serialize a contract set. Identical sets render to identical bytes."""
    lines = [BUNDLE_HEADER]
    if contract_set.revision is not None:
        lines.append(f"{HEADER_PREFIX}revision{HEADER_SEPARATOR}{contract_set.revision}")
    for contract in contract_set.sorted_contracts():
        lines.append(f"{HEADER_PREFIX}contract{HEADER_SEPARATOR}{contract.id}")
        lines.append(f"{HEADER_PREFIX}trust-zone{HEADER_SEPARATOR}{contract.trust_zone}")
        lines.append(contract.certificate.decode().strip())
    return ("\n".join(lines) + "\n").encode()


def parse_bundle(data: bytes) -> ContractSet:
    """Parse a bundle written by :func:`render_bundle`.

    Header values are taken verbatim after ``": "``. Certificate blocks
    following one ``# contract:`` header all belong to that contract, so
    chains survive a round trip.

    Raises:
        BundleFormatError: If the bundle is truncated or a block has no id.
    """
    revision: Optional[str] = None
    entries: list[dict] = []
    current: Optional[dict] = None
    block: Optional[list[str]] = None

    for raw in data.decode().splitlines():
        line = raw.strip()
        if block is not None:
            block.append(line)
            if line == END_MARKER:
                if current is None:
                    raise BundleFormatError("Certificate block without contract id")
                current["blocks"].append("\n".join(block))
                block = None
            continue
        if line == BEGIN_MARKER:
            block = [line]
        elif raw.startswith(HEADER_PREFIX) and HEADER_SEPARATOR in raw:
            key, _, value = raw[len(HEADER_PREFIX):].partition(HEADER_SEPARATOR)
            if key == "revision":
                revision = value
            elif key == "contract":
                current = {"id": value, "trust_zone": "", "blocks": []}
                entries.append(current)
            elif key == "trust-zone" and current is not None:
                current["trust_zone"] = value
        elif line and not line.startswith("#"):
            raise BundleFormatError(f"Unexpected content: {line[:40]!r}")

    if block is not None:
        raise BundleFormatError("Truncated certificate block")

    contracts = []
    for entry in entries:
        if not entry["blocks"]:
            raise BundleFormatError(f"Contract {entry['id']!r} has no certificate")
        contracts.append(Contract(
            id=entry["id"],
            trust_zone=entry["trust_zone"],
            certificate="\n".join(entry["blocks"]).encode(),
        ))

    try:
        return ContractSet(contracts=contracts, revision=revision)
    except ValueError as exc:
        raise BundleFormatError(str(exc)) from exc


def _store_error(action: str, path: Path, exc: OSError) -> StoreError:
    if isinstance(exc, PermissionError):
        return StoreError(StoreErrorKind.FORBIDDEN, f"Permission denied to {action} {path}: {exc}")
    return StoreError(StoreErrorKind.UNREACHABLE, f"Could not {action} {path}: {exc}")


class LocalFileContractStore(AbstractContractStore):
    """
    Contract store backed by a PEM bundle on the local filesystem.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    @property
    def handle(self) -> StorageHandle:
        return StorageHandle(backend="local", location=str(self.path))

    async def connect(self) -> None:
        """Ensure the bundle directory exists."""
        logger.debug("Create local storage adapter and ensure directory %s", self.path.parent)
        try:
            await asyncio.to_thread(self.path.parent.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise _store_error("create directory for", self.path, exc) from exc

    async def read(self) -> Optional[ContractSet]:
        """Read the bundle; a missing or unparseable bundle counts as empty."""
        try:
            data = await asyncio.to_thread(self.path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise _store_error("read", self.path, exc) from exc

        try:
            return parse_bundle(data)
        except ValueError as exc:
            logger.warning("Ignoring unreadable contract bundle %s: %s", self.path, exc)
            return None

    async def write(self, contract_set: ContractSet) -> None:
        """Atomically replace the bundle with ``contract_set``."""
        data = render_bundle(contract_set)
        try:
            await asyncio.to_thread(self._replace, data)
        except OSError as exc:
            raise _store_error("write", self.path, exc) from exc
        logger.debug("Wrote %d contracts to %s", len(contract_set), self.path)

    def _replace(self, data: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, 0o644)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
