"""Shared fixtures: a throwaway CA, certificates and fake HTTP services."""

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from contractprovider.identity import Identity, create_csr
from contractprovider.models import Contract, ContractSet


class FakeCA:
    """Minimal certificate authority for tests."""

    def __init__(self, name: str = "Test PKI CA"):
        self.key = ec.generate_private_key(ec.SECP256R1())
        now = datetime.now(timezone.utc)
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)])
        self.certificate = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(self.key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=365))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(self.key, hashes.SHA256())
        )

    @property
    def pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    @property
    def trust_zone(self) -> str:
        return self.certificate.fingerprint(hashes.SHA256()).hex()

    def issue(self, public_key, common_name: str, valid_for: timedelta = timedelta(days=30)) -> bytes:
        now = datetime.now(timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
            .issuer_name(self.certificate.subject)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + valid_for)
            .sign(self.key, hashes.SHA256())
        )
        return cert.public_bytes(serialization.Encoding.PEM)

    def sign_csr(self, csr_pem: bytes, valid_for: timedelta = timedelta(days=30)) -> bytes:
        csr = x509.load_pem_x509_csr(csr_pem)
        cn = csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
        return self.issue(csr.public_key(), cn, valid_for)

    def participant_certificate(self, common_name: str) -> bytes:
        key = ec.generate_private_key(ec.SECP256R1())
        return self.issue(key.public_key(), common_name)


@pytest.fixture(scope="session")
def ca() -> FakeCA:
    return FakeCA()


@pytest.fixture(scope="session")
def cert_a(ca: FakeCA) -> bytes:
    return ca.participant_certificate("participant-a")


@pytest.fixture(scope="session")
def cert_b(ca: FakeCA) -> bytes:
    return ca.participant_certificate("participant-b")


@pytest.fixture(scope="session")
def cert_b2(ca: FakeCA) -> bytes:
    return ca.participant_certificate("participant-b-renewed")


@pytest.fixture(scope="session")
def identity(ca: FakeCA) -> Identity:
    key, csr = create_csr("wirepact-contract-provider")
    return Identity(
        private_key_pem=key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ),
        certificate_pem=ca.sign_csr(csr.public_bytes(serialization.Encoding.PEM)),
        ca_certificate_pem=ca.pem,
    )


@pytest.fixture()
def make_set(ca: FakeCA) -> Callable[..., ContractSet]:
    """Build a contract set from an id -> certificate mapping."""

    def _make(mapping: dict[str, bytes], revision: Optional[str] = None) -> ContractSet:
        return ContractSet(
            contracts=[
                Contract(id=cid, certificate=cert, trust_zone=ca.trust_zone)
                for cid, cert in mapping.items()
            ],
            revision=revision,
        )

    return _make


class FakePKI:
    """In-process PKI speaking the /ca and /csr JSON API."""

    def __init__(self, ca: FakeCA):
        self.ca = ca
        self.requests: list[httpx.Request] = []
        self.status: int = 200
        self.valid_for = timedelta(days=30)
        self.certificate_override: Optional[bytes] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": "nope"})
        if request.method == "GET" and request.url.path == "/ca":
            return httpx.Response(200, json={"certificate": self.ca.pem.decode()})
        if request.method == "POST" and request.url.path == "/csr":
            csr_pem = json.loads(request.content)["csr"].encode()
            cert = self.certificate_override or self.ca.sign_csr(csr_pem, self.valid_for)
            return httpx.Response(200, json={"certificate": cert.decode()})
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture()
def fake_pki(ca: FakeCA) -> FakePKI:
    return FakePKI(ca)


class FakeRepository:
    """In-process contract repository.

    ``listing`` is returned verbatim for /contracts; ``certificates`` serves
    /contracts/{id}/certificate.
    """

    def __init__(self):
        self.listing: object = {"revision": None, "contracts": []}
        self.certificates: dict[str, object] = {}
        self.requests: list[httpx.Request] = []
        self.status: int = 200
        self.error: Optional[Exception] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.status != 200:
            return httpx.Response(self.status)
        path = request.url.path
        if path == "/contracts":
            return httpx.Response(200, json=self.listing)
        if path.startswith("/contracts/") and path.endswith("/certificate"):
            contract_id = path[len("/contracts/"):-len("/certificate")]
            if contract_id not in self.certificates:
                return httpx.Response(404)
            return httpx.Response(200, json=self.certificates[contract_id])
        return httpx.Response(404)

    def serve(self, mapping: dict[str, bytes], revision: Optional[str] = None, inline: bool = False):
        """Publish contracts, inline in the listing or behind detail calls."""
        entries = []
        self.certificates = {}
        for cid, cert in mapping.items():
            entry = {"id": cid}
            if inline:
                entry["certificate"] = cert.decode()
            else:
                self.certificates[cid] = {"certificate": cert.decode()}
            entries.append(entry)
        self.listing = {"revision": revision, "contracts": entries}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture()
def fake_repo() -> FakeRepository:
    return FakeRepository()
