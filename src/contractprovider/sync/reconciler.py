# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Reconciler

Decides whether a freshly fetched contract set must replace the stored
one. Always the full set, never a patch.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import ContractSet


class ActionKind(str, Enum):
    SKIP = "skip"
    REPLACE = "replace"


@dataclass(frozen=True)
class Action:
    """Outcome of a reconciliation."""

    kind: ActionKind
    contract_set: Optional[ContractSet] = None
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    changed: tuple[str, ...] = ()

    @property
    def is_skip(self) -> bool:
        return self.kind is ActionKind.SKIP


def reconcile(current: Optional[ContractSet], fetched: ContractSet) -> Action:
    """Compare ``fetched`` against ``current`` by id -> certificate.

    Returns:
        SKIP if both hold the same contracts, otherwise REPLACE carrying
        the full fetched set. A missing current set is replaced even if
        the fetched set is empty, so the sink always exists afterwards.
    """
    if current is None:
        return Action(ActionKind.REPLACE, fetched, added=tuple(fetched.ids()))

    old = current.mapping()
    new = fetched.mapping()
    if old == new:
        return Action(ActionKind.SKIP)

    return Action(
        ActionKind.REPLACE,
        fetched,
        added=tuple(sorted(new.keys() - old.keys())),
        removed=tuple(sorted(old.keys() - new.keys())),
        changed=tuple(sorted(k for k in new.keys() & old.keys() if new[k] != old[k])),
    )
