# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Provider Configuration

Validated runtime options. Durations are given as human-readable strings
(``5min``, ``1h 30m``) and stored as seconds.
"""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from .exceptions import ConfigurationError

DEFAULT_SECRET_NAME = "wirepact-contracts"
DEFAULT_COMMON_NAME = "wirepact-contract-provider"
DEFAULT_LOCAL_PATH = "data/contracts.pem"

_DURATION_TERM = re.compile(r"(\d+(?:\.\d+)?)\s*([a-zA-Z]*)")

_UNIT_SECONDS = {
    "ms": 0.001,
    "": 1.0,
    "s": 1.0,
    "sec": 1.0,
    "secs": 1.0,
    "second": 1.0,
    "seconds": 1.0,
    "m": 60.0,
    "min": 60.0,
    "mins": 60.0,
    "minute": 60.0,
    "minutes": 60.0,
    "h": 3600.0,
    "hr": 3600.0,
    "hrs": 3600.0,
    "hour": 3600.0,
    "hours": 3600.0,
    "d": 86400.0,
    "day": 86400.0,
    "days": 86400.0,
}


def parse_duration(value: str, allow_zero: bool = False) -> float:
    """Parse a duration string into seconds.

    Args:
        value: Duration such as ``"5min"``, ``"30s"``, ``"1h 30m"`` or ``"90"``.
        allow_zero: Accept a zero duration such as ``"0"`` or ``"0s"``.

    Returns:
        The duration in seconds.

    Raises:
        ConfigurationError: If the string is empty, malformed or zero
            without ``allow_zero``.
    """
    text = value.strip().lower()
    if not text:
        raise ConfigurationError("Empty duration")

    total = 0.0
    pos = 0
    while pos < len(text):
        if text[pos].isspace():
            pos += 1
            continue
        match = _DURATION_TERM.match(text, pos)
        if match is None:
            raise ConfigurationError(f"Invalid duration: {value!r}")
        amount, unit = match.groups()
        if unit not in _UNIT_SECONDS:
            raise ConfigurationError(f"Unknown duration unit {unit!r} in {value!r}")
        total += float(amount) * _UNIT_SECONDS[unit]
        pos = match.end()

    if total == 0 and not allow_zero:
        raise ConfigurationError(f"Duration must be positive: {value!r}")
    return total


class StorageBackend(str, Enum):
    LOCAL = "local"
    KUBERNETES = "kubernetes"


class ProviderConfig(BaseModel):
    """Configuration for the contract provider.

    Attributes:
        storage: Sink for the reconciled contract set.
        secret_name: Secret name for the kubernetes sink.
        local_path: File path for the local sink.
        common_name: Subject common name of the provider identity.
        pki_address: Base URL of the PKI.
        pki_api_key: Optional API key for the PKI.
        repo_address: Base URL of the contract repository.
        repo_api_key: Optional API key for the repository.
        fetch_interval: Seconds between cycles, None for a single run.
        fetch_jitter: Upper bound of random seconds added to each wait.
        identity_path: Directory to persist and reuse the identity in.
        repo_ca_path: Extra CA bundle for verifying the repository server.
        request_timeout: Timeout in seconds for PKI and repository calls.
        conflict_retries: Retries of the read-reconcile-write step on conflict.
        fetch_concurrency: Parallel certificate retrievals per cycle.
        debug: Enable debug logging.
    """

    storage: StorageBackend = Field(default=StorageBackend.LOCAL)
    secret_name: str = Field(default=DEFAULT_SECRET_NAME, min_length=1)
    local_path: str = Field(default=DEFAULT_LOCAL_PATH, min_length=1)
    common_name: str = Field(default=DEFAULT_COMMON_NAME, min_length=1)
    pki_address: str = Field(..., min_length=1)
    pki_api_key: Optional[str] = None
    repo_address: str = Field(..., min_length=1)
    repo_api_key: Optional[str] = None
    fetch_interval: Optional[float] = Field(default=None, gt=0)
    fetch_jitter: float = Field(default=0.0, ge=0)
    identity_path: Optional[str] = None
    repo_ca_path: Optional[str] = None
    request_timeout: float = Field(default=30.0, gt=0)
    conflict_retries: int = Field(default=3, ge=0, le=20)
    fetch_concurrency: int = Field(default=8, ge=1, le=64)
    debug: bool = False

    @field_validator("fetch_interval", "fetch_jitter", "request_timeout", mode="before")
    @classmethod
    def _parse_durations(cls, value, info: ValidationInfo):
        if isinstance(value, str):
            try:
                return parse_duration(value, allow_zero=info.field_name == "fetch_jitter")
            except ConfigurationError as exc:
                raise ValueError(str(exc)) from exc
        return value

    @field_validator("pki_address", "repo_address")
    @classmethod
    def _normalize_address(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"Address must be an http(s) URL: {value!r}")
        return value.rstrip("/")

    @property
    def one_shot(self) -> bool:
        return self.fetch_interval is None
