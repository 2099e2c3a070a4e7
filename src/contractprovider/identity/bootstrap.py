# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Identity Bootstrapper

Obtains the provider's client identity from the home PKI:

1. Fetch the PKI's public CA certificate (defines the trust zone)
2. Generate an RSA key and a CSR under the configured common name
3. Have the PKI sign the CSR

With an identity directory configured, a previously issued identity is
reused across restarts as long as it is intact and not expired.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Optional

import httpx
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from ..exceptions import IdentityError, IdentityErrorKind
from .identity import Identity, create_csr

logger = logging.getLogger(__name__)

CERT_FILE = "cert.crt"
KEY_FILE = "cert.key"
CA_FILE = "ca.crt"

RENEW_BEFORE = timedelta(minutes=5)


class IdentityBootstrapper:
    """Owns the provider identity for the lifetime of the process.

    Callers borrow the identity through :meth:`current`, which renews it
    when the certificate is about to expire.
    """

    def __init__(
        self,
        pki_address: str,
        api_key: Optional[str] = None,
        common_name: str = "wirepact-contract-provider",
        identity_path: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.pki_address = pki_address.rstrip("/")
        self.api_key = api_key
        self.common_name = common_name
        self.identity_path = Path(identity_path) if identity_path else None
        self.timeout = timeout
        self._transport = transport
        self._identity: Optional[Identity] = None

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    async def obtain_identity(self) -> Identity:
        """Obtain or reuse the provider identity.

        Raises:
            IdentityError: If the PKI is unreachable or rejects the request.
        """
        if self.identity_path is not None:
            stored = self._load_persisted()
            if stored is not None:
                logger.info(
                    "Reusing identity '%s' from %s (valid until %s)",
                    stored.common_name, self.identity_path, stored.not_valid_after,
                )
                self._identity = stored
                return stored

        return await self._renew()

    async def current(self) -> Identity:
        """Return the held identity, renewing it if it is expired or expiring."""
        if self._identity is None or self._identity.is_expired(margin=RENEW_BEFORE):
            if self._identity is not None:
                logger.info("Identity certificate expires at %s, renewing", self._identity.not_valid_after)
            return await self._renew()
        return self._identity

    async def _renew(self) -> Identity:
        identity = await self._issue()
        if self.identity_path is not None:
            self._persist(identity)
        self._identity = identity
        return identity

    # ------------------------------------------------------------------
    # PKI calls
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        if self.api_key:
            return {"authorization": self.api_key}
        return {}

    async def _issue(self) -> Identity:
        async with httpx.AsyncClient(
            base_url=self.pki_address,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            logger.debug("Fetching PKI public certificate from %s", self.pki_address)
            ca_pem = await self._request_certificate(client, "GET", "/ca")

            logger.info("Signing private certificate for '%s'", self.common_name)
            key, csr = create_csr(self.common_name)
            csr_pem = csr.public_bytes(serialization.Encoding.PEM).decode()
            cert_pem = await self._request_certificate(client, "POST", "/csr", json={"csr": csr_pem})

        identity = Identity(
            private_key_pem=key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ),
            certificate_pem=cert_pem,
            ca_certificate_pem=ca_pem,
        )
        if not identity.key_matches_certificate():
            raise IdentityError(
                IdentityErrorKind.REJECTED,
                "PKI returned a certificate that does not match the generated key",
            )
        logger.info(
            "Obtained identity '%s' for trust zone %s (valid until %s)",
            identity.common_name, identity.trust_zone, identity.not_valid_after,
        )
        return identity

    async def _request_certificate(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        json: Optional[dict] = None,
    ) -> bytes:
        try:
            response = await client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise IdentityError(
                IdentityErrorKind.UNREACHABLE, f"PKI {self.pki_address} unreachable: {exc}"
            ) from exc

        if response.status_code >= 500:
            raise IdentityError(
                IdentityErrorKind.UNREACHABLE,
                f"PKI {method} {path} failed with status {response.status_code}",
            )
        if response.status_code >= 400:
            raise IdentityError(
                IdentityErrorKind.REJECTED,
                f"PKI {method} {path} rejected with status {response.status_code}",
            )

        try:
            pem = response.json()["certificate"].encode()
            x509.load_pem_x509_certificate(pem)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise IdentityError(
                IdentityErrorKind.REJECTED, f"PKI {method} {path} returned no valid certificate"
            ) from exc
        return pem

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_persisted(self) -> Optional[Identity]:
        paths = [self.identity_path / name for name in (KEY_FILE, CERT_FILE, CA_FILE)]
        if not all(p.exists() for p in paths):
            return None
        try:
            identity = Identity(
                private_key_pem=paths[0].read_bytes(),
                certificate_pem=paths[1].read_bytes(),
                ca_certificate_pem=paths[2].read_bytes(),
            )
            usable = (
                identity.key_matches_certificate()
                and not identity.is_expired(margin=RENEW_BEFORE)
                and identity.common_name == self.common_name
            )
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Ignoring unreadable identity in %s: %s", self.identity_path, exc)
            return None
        if not usable:
            logger.info("Stored identity in %s is not usable, issuing a new one", self.identity_path)
            return None
        return identity

    def _persist(self, identity: Identity) -> None:
        try:
            self.identity_path.mkdir(parents=True, exist_ok=True)
            _write_atomic(self.identity_path / KEY_FILE, identity.private_key_pem, mode=0o600)
            _write_atomic(self.identity_path / CERT_FILE, identity.certificate_pem)
            _write_atomic(self.identity_path / CA_FILE, identity.ca_certificate_pem)
        except OSError as exc:
            logger.warning("Could not persist identity to %s: %s", self.identity_path, exc)
            return
        logger.debug("Persisted identity to %s", self.identity_path)


def _write_atomic(path: Path, data: bytes, mode: int = 0o644) -> None:
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        os.fchmod(fd, mode)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
