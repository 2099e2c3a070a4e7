# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Contract Data Model

A contract binds a participant to its public certificate within a trust
zone. A contract set is the full collection fetched for one trust zone and
is compared by its id -> certificate mapping only.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Contract(BaseModel):
    """One participant's trust-zone membership proof."""

    id: str = Field(..., min_length=1, description="Identifier, unique within a trust zone")
    certificate: bytes = Field(..., min_length=1, description="PEM-encoded public certificate")
    trust_zone: str = Field(..., description="Trust zone the contract belongs to")

    @field_validator("certificate")
    @classmethod
    def _normalize_certificate(cls, value: bytes) -> bytes:
        # Line endings and trailing whitespace differ between sinks
        return value.replace(b"\r\n", b"\n").strip() + b"\n"


class ContractSet(BaseModel):
    """Collection of contracts, tagged with fetch time and revision.

    Ids must be unique. A set with duplicate ids is rejected instead of
    being silently deduplicated.
    """

    contracts: list[Contract] = Field(default_factory=list)
    revision: Optional[str] = Field(None, description="Revision marker supplied by the repository")
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _unique_ids(self) -> "ContractSet":
        seen: set[str] = set()
        duplicates: set[str] = set()
        for contract in self.contracts:
            if contract.id in seen:
                duplicates.add(contract.id)
            seen.add(contract.id)
        if duplicates:
            raise ValueError(f"Duplicate contract ids: {', '.join(sorted(duplicates))}")
        return self

    def mapping(self) -> dict[str, bytes]:
        """Return the id -> certificate mapping used for comparison."""
        return {c.id: c.certificate for c in self.contracts}

    def ids(self) -> list[str]:
        return sorted(c.id for c in self.contracts)

    def sorted_contracts(self) -> list[Contract]:
        return sorted(self.contracts, key=lambda c: c.id)

    def __len__(self) -> int:
        return len(self.contracts)

    def same_contracts(self, other: "ContractSet") -> bool:
        """Order-independent equality over id -> certificate."""
        return self.mapping() == other.mapping()
