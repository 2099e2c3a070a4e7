# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""Centralized exception hierarchy for the contract provider.

All provider exceptions inherit from ContractProviderError. The three
operational errors carry a ``kind`` so callers can tell a transient outage
from a refusal without parsing messages.
"""

from enum import Enum
from typing import Optional


class IdentityErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    REJECTED = "rejected"


class FetchErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    UNAUTHORIZED = "unauthorized"
    MALFORMED_RESPONSE = "malformed_response"


class StoreErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INVALID = "invalid"


class ContractProviderError(Exception):
    """Base exception for all contract provider errors."""


class ConfigurationError(ContractProviderError):
    """Invalid or incomplete configuration."""


class IdentityError(ContractProviderError):
    """The provider identity could not be obtained from the PKI."""

    def __init__(self, kind: IdentityErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class FetchError(ContractProviderError):
    """Contracts could not be fetched from the repository."""

    def __init__(self, kind: FetchErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class StoreError(ContractProviderError):
    """The contract set could not be read from or written to the sink."""

    def __init__(self, kind: StoreErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


__all__ = [
    "ContractProviderError",
    "ConfigurationError",
    "IdentityError",
    "IdentityErrorKind",
    "FetchError",
    "FetchErrorKind",
    "StoreError",
    "StoreErrorKind",
]
