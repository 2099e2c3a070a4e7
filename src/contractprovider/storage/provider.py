# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Abstract Contract Store Interface.

Defines the contract that all contract sinks must implement.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from ..models import ContractSet


class StorageHandle(BaseModel):
    """Where the contract set lives: a file path or a Secret name + namespace."""

    backend: str = Field(..., description="Storage backend type")
    location: str = Field(..., description="File path or secret name")
    namespace: Optional[str] = Field(default=None, description="Kubernetes namespace")

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.backend}:{self.namespace}/{self.location}"
        return f"{self.backend}:{self.location}"


class AbstractContractStore(ABC):
    """
    Abstract contract store.

    A store holds exactly one contract set and replaces it wholesale:
    - read() returns the current set, or None if nothing was stored yet
    - write() atomically replaces the stored set

    Implementations translate their failures into StoreError.
    """

    async def connect(self) -> None:
        """Prepare the connection to the sink."""

    async def disconnect(self) -> None:
        """Release the connection to the sink."""

    @property
    @abstractmethod
    def handle(self) -> StorageHandle:
        """Describe where the contract set is stored."""

    @abstractmethod
    async def read(self) -> Optional[ContractSet]:
        """Read the currently stored contract set."""

    @abstractmethod
    async def write(self, contract_set: ContractSet) -> None:
        """Replace the stored contract set."""
