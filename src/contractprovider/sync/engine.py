# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Synchronization Engine

One cycle: borrow the identity, fetch the contract set, read the stored
set, reconcile, write if changed. A write conflict restarts the
read-reconcile-write step with a fresh read.
"""

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..exceptions import StoreError, StoreErrorKind
from ..identity import IdentityBootstrapper
from ..repository import RepositoryClient
from ..storage import AbstractContractStore
from .reconciler import reconcile

logger = logging.getLogger(__name__)


class CyclePhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    STORING = "storing"


class CycleOutcome(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class CycleReport(BaseModel):
    """Result of one successful synchronization cycle."""

    outcome: CycleOutcome
    contracts: int = Field(..., ge=0)
    revision: Optional[str] = None
    attempts: int = Field(default=1, ge=1)


class ContractSynchronizer:
    """
    Runs fetch -> reconcile -> store cycles against one store.

    Cycles are strictly sequential; the scheduler never overlaps them.
    """

    def __init__(
        self,
        identity_source: IdentityBootstrapper,
        repository: RepositoryClient,
        store: AbstractContractStore,
        conflict_retries: int = 3,
    ):
        self.identity_source = identity_source
        self.repository = repository
        self.store = store
        self.conflict_retries = conflict_retries
        self.phase = CyclePhase.IDLE

    async def run_cycle(self) -> CycleReport:
        """Run one synchronization cycle.

        Returns:
            Report describing whether the store was updated.

        Raises:
            IdentityError: If an expiring identity could not be renewed.
            FetchError: If the repository call failed; the store is untouched.
            StoreError: If the store could not be read or written.
        """
        try:
            self.phase = CyclePhase.FETCHING
            identity = await self.identity_source.current()
            fetched = await self.repository.fetch_contracts(identity)

            attempt = 1
            while True:
                self.phase = CyclePhase.RECONCILING
                current = await self.store.read()
                action = reconcile(current, fetched)
                if action.is_skip:
                    logger.debug("Stored contracts are up to date (%d)", len(fetched))
                    return CycleReport(
                        outcome=CycleOutcome.UNCHANGED,
                        contracts=len(fetched),
                        revision=fetched.revision,
                        attempts=attempt,
                    )

                self.phase = CyclePhase.STORING
                try:
                    await self.store.write(action.contract_set)
                except StoreError as exc:
                    if exc.kind is StoreErrorKind.CONFLICT and attempt <= self.conflict_retries:
                        logger.warning(
                            "Conflict writing to %s (attempt %d), retrying with a fresh read",
                            self.store.handle, attempt,
                        )
                        attempt += 1
                        continue
                    raise

                logger.info(
                    "Stored %d contracts in %s (added: %d, removed: %d, changed: %d)",
                    len(fetched), self.store.handle,
                    len(action.added), len(action.removed), len(action.changed),
                )
                return CycleReport(
                    outcome=CycleOutcome.UPDATED,
                    contracts=len(fetched),
                    revision=fetched.revision,
                    attempts=attempt,
                )
        finally:
            self.phase = CyclePhase.IDLE
