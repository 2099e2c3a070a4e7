"""
WirePact Contract Provider

Periodically fetches the contracts of the own trust zone from the contract
repository, authenticated with a PKI-issued client identity, and publishes
them to a local file or a Kubernetes secret for mTLS validation.

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import ProviderConfig, StorageBackend, parse_duration
from .models import Contract, ContractSet

from .exceptions import (
    ContractProviderError,
    ConfigurationError,
    IdentityError,
    IdentityErrorKind,
    FetchError,
    FetchErrorKind,
    StoreError,
    StoreErrorKind,
)

__all__ = [
    "__version__",
    "ProviderConfig",
    "StorageBackend",
    "parse_duration",
    "Contract",
    "ContractSet",
    "ContractProviderError",
    "ConfigurationError",
    "IdentityError",
    "IdentityErrorKind",
    "FetchError",
    "FetchErrorKind",
    "StoreError",
    "StoreErrorKind",
]
