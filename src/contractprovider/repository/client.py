# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Contract Repository Client

Lists the contracts visible to the provider's trust zone and retrieves
each contract's certificate. Parsing is strict: one bad entry fails the
whole fetch, nothing is applied partially.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from pydantic import ValidationError

from ..exceptions import FetchError, FetchErrorKind
from ..identity import Identity, create_client_ssl_context
from ..models import Contract, ContractSet

logger = logging.getLogger(__name__)


def _malformed(message: str) -> FetchError:
    return FetchError(FetchErrorKind.MALFORMED_RESPONSE, message)


def _has_control_characters(value: str) -> bool:
    return any(ch < " " or ch == "\x7f" for ch in value)


def _canonical_pem(contract_id: str, certificate: str) -> bytes:
    """Re-encode every certificate of a payload as plain PEM blocks."""
    try:
        certs = x509.load_pem_x509_certificates(certificate.encode())
    except ValueError as exc:
        raise _malformed(f"Contract {contract_id} has an invalid certificate") from exc
    return b"".join(c.public_bytes(serialization.Encoding.PEM) for c in certs)


class RepositoryClient:
    """Authenticated client for the contract repository.

    The identity is borrowed per call and never modified.
    """

    def __init__(
        self,
        repo_address: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        concurrency: int = 8,
        ca_bundle_path: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.repo_address = repo_address.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.concurrency = concurrency
        self.ca_bundle_path = ca_bundle_path
        self._transport = transport

    def _client(self, identity: Identity) -> httpx.AsyncClient:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["authorization"] = self.api_key
        verify: Any = True
        if self.repo_address.startswith("https://") and self._transport is None:
            try:
                verify = create_client_ssl_context(identity, self.ca_bundle_path)
            except OSError as exc:
                raise FetchError(
                    FetchErrorKind.UNREACHABLE, f"Could not set up TLS for {self.repo_address}: {exc}"
                ) from exc
        return httpx.AsyncClient(
            base_url=self.repo_address,
            headers=headers,
            timeout=self.timeout,
            verify=verify,
            transport=self._transport,
        )

    async def fetch_contracts(self, identity: Identity) -> ContractSet:
        """Fetch the complete contract set of the identity's trust zone.

        Raises:
            FetchError: UNREACHABLE on network failure or server errors,
                UNAUTHORIZED when the request is refused, MALFORMED_RESPONSE
                when any part of the payload is invalid.
        """
        trust_zone = identity.trust_zone
        logger.debug("Listing contracts for trust zone %s at %s", trust_zone, self.repo_address)

        async with self._client(identity) as client:
            listing = await self._get_json(client, "/contracts", params={"participant": trust_zone})
            entries, revision = self._parse_listing(listing)

            pending = [e for e in entries if e.get("certificate") is None]
            if pending:
                logger.debug("Retrieving %d certificates", len(pending))
                semaphore = asyncio.Semaphore(self.concurrency)

                async def retrieve(entry: dict) -> None:
                    async with semaphore:
                        entry["certificate"] = await self._fetch_certificate(client, entry["id"])

                # Collect every result before building the set
                results = await asyncio.gather(
                    *(retrieve(e) for e in pending), return_exceptions=True
                )
                for result in results:
                    if isinstance(result, BaseException):
                        raise result

        contracts = []
        for entry in entries:
            zone = entry.get("trustZone", trust_zone)
            if zone != trust_zone:
                raise _malformed(f"Contract {entry['id']} belongs to foreign trust zone {zone}")
            certificate = entry["certificate"]
            if not isinstance(certificate, str):
                raise _malformed(f"Contract {entry['id']} has a non-string certificate")
            pem = _canonical_pem(entry["id"], certificate)
            contracts.append({"id": entry["id"], "certificate": pem, "trust_zone": zone})

        try:
            contract_set = ContractSet(
                contracts=[Contract(**c) for c in contracts],
                revision=revision,
            )
        except ValidationError as exc:
            raise _malformed(f"Invalid contract set: {exc}") from exc

        logger.info("Fetched %d contracts (revision %s)", len(contract_set), revision or "n/a")
        return contract_set

    def _parse_listing(self, listing: Any) -> tuple[list[dict], Optional[str]]:
        if not isinstance(listing, dict) or not isinstance(listing.get("contracts"), list):
            raise _malformed("Contract listing has no 'contracts' list")
        revision = listing.get("revision")
        if revision is not None and (
            not isinstance(revision, (str, int)) or _has_control_characters(str(revision))
        ):
            raise _malformed("Contract listing has an invalid revision")

        entries = []
        for raw in listing["contracts"]:
            if not isinstance(raw, dict):
                raise _malformed("Contract entry is not an object")
            contract_id = raw.get("id")
            if not isinstance(contract_id, str) or not contract_id:
                raise _malformed("Contract entry without 'id'")
            if _has_control_characters(contract_id):
                raise _malformed(f"Contract id {contract_id!r} contains control characters")
            entries.append(dict(raw))
        return entries, str(revision) if revision is not None else None

    async def _fetch_certificate(self, client: httpx.AsyncClient, contract_id: str) -> str:
        path = f"/contracts/{quote(contract_id, safe='')}/certificate"
        try:
            payload = await self._get_json(client, path)
        except FetchError as exc:
            if exc.status_code == 404:
                raise _malformed(f"Listed contract {contract_id} does not exist") from exc
            raise
        certificate = payload.get("certificate") if isinstance(payload, dict) else None
        if not isinstance(certificate, str) or not certificate:
            raise _malformed(f"Contract {contract_id} without 'certificate'")
        return certificate

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        try:
            response = await client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise FetchError(
                FetchErrorKind.UNREACHABLE, f"Repository {self.repo_address} unreachable: {exc}"
            ) from exc

        status = response.status_code
        if status >= 500:
            raise FetchError(
                FetchErrorKind.UNREACHABLE, f"GET {path} failed with status {status}", status
            )
        if status >= 400:
            raise FetchError(
                FetchErrorKind.UNAUTHORIZED, f"GET {path} refused with status {status}", status
            )

        try:
            return response.json()
        except ValueError as exc:
            raise _malformed(f"GET {path} returned invalid JSON") from exc
