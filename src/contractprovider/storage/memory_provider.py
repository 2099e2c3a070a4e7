# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
In-Memory Contract Store.

Simple in-memory implementation for development and testing.
"""

from typing import Optional

from ..models import ContractSet
from .provider import AbstractContractStore, StorageHandle


class MemoryContractStore(AbstractContractStore):
    """
    In-memory contract store.

    Data is lost on restart. Suitable for development and testing only.
    """

    def __init__(self, initial: Optional[ContractSet] = None):
        self._contract_set = initial.model_copy(deep=True) if initial is not None else None
        self.write_count = 0

    @property
    def handle(self) -> StorageHandle:
        return StorageHandle(backend="memory", location="memory")

    async def read(self) -> Optional[ContractSet]:
        if self._contract_set is None:
            return None
        return self._contract_set.model_copy(deep=True)

    async def write(self, contract_set: ContractSet) -> None:
        self._contract_set = contract_set.model_copy(deep=True)
        self.write_count += 1
