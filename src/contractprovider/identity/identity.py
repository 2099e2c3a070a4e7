# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Provider Identity

The provider's own private key and CA-issued certificate, plus the CA
certificate of the home PKI. The trust zone is derived from the CA.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from pydantic import BaseModel, Field

ORGANIZATION_NAME = "WirePact PKI"


def certificate_fingerprint(cert_pem: bytes) -> str:
    """Return the lowercase hex SHA-256 fingerprint of a PEM certificate."""
    cert = x509.load_pem_x509_certificate(cert_pem)
    return cert.fingerprint(hashes.SHA256()).hex()


def create_csr(common_name: str) -> tuple[rsa.RSAPrivateKey, x509.CertificateSigningRequest]:
    """Generate an RSA key and a certificate signing request for it.

    Args:
        common_name: Subject common name of the requested certificate.

    Returns:
        Tuple of (private_key, csr).
    """
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION_NAME),
        ]))
        .sign(key, hashes.SHA256())
    )
    return key, csr


class Identity(BaseModel):
    """Client identity used for all repository calls.

    Attributes:
        private_key_pem: PKCS#8 PEM private key.
        certificate_pem: PEM certificate signed by the PKI.
        ca_certificate_pem: PEM certificate of the PKI itself.
    """

    private_key_pem: bytes = Field(..., repr=False)
    certificate_pem: bytes
    ca_certificate_pem: bytes

    @property
    def trust_zone(self) -> str:
        """Trust zone id: SHA-256 fingerprint of the home CA."""
        return certificate_fingerprint(self.ca_certificate_pem)

    @property
    def certificate(self) -> x509.Certificate:
        return x509.load_pem_x509_certificate(self.certificate_pem)

    @property
    def common_name(self) -> str:
        attrs = self.certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        return str(attrs[0].value) if attrs else ""

    @property
    def not_valid_after(self) -> datetime:
        return self.certificate.not_valid_after_utc

    def is_expired(self, now: Optional[datetime] = None, margin: timedelta = timedelta(0)) -> bool:
        """Check whether the certificate is expired or expires within ``margin``."""
        now = now or datetime.now(timezone.utc)
        cert = self.certificate
        return now < cert.not_valid_before_utc or now + margin >= cert.not_valid_after_utc

    def key_matches_certificate(self) -> bool:
        """Check that the private key belongs to the certificate."""
        key = serialization.load_pem_private_key(self.private_key_pem, password=None)
        spki = serialization.PublicFormat.SubjectPublicKeyInfo
        ours = key.public_key().public_bytes(serialization.Encoding.PEM, spki)
        theirs = self.certificate.public_key().public_bytes(serialization.Encoding.PEM, spki)
        return ours == theirs
