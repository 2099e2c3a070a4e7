"""
Synchronization

- reconcile: decide between skipping and replacing the stored set
- ContractSynchronizer: one fetch -> reconcile -> store cycle
- Scheduler: one-shot or fixed-interval driver
"""

from .reconciler import Action, ActionKind, reconcile
from .engine import ContractSynchronizer, CycleOutcome, CyclePhase, CycleReport
from .scheduler import Scheduler, SchedulerState

__all__ = [
    "Action",
    "ActionKind",
    "reconcile",
    "ContractSynchronizer",
    "CycleOutcome",
    "CyclePhase",
    "CycleReport",
    "Scheduler",
    "SchedulerState",
]
