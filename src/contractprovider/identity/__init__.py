"""
Provider Identity

- Identity: private key, PKI-issued certificate and home CA
- IdentityBootstrapper: obtains, reuses and renews the identity
- create_client_ssl_context: mTLS client context for repository calls
"""

from .identity import Identity, create_csr, certificate_fingerprint
from .bootstrap import IdentityBootstrapper
from .mtls import create_client_ssl_context

__all__ = [
    "Identity",
    "create_csr",
    "certificate_fingerprint",
    "IdentityBootstrapper",
    "create_client_ssl_context",
]
