# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Scheduler

Drives synchronization cycles either once or forever at a fixed delay.
Cycles never overlap: the wait starts after the previous cycle resolved.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Optional

from ..exceptions import ContractProviderError
from .engine import ContractSynchronizer

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    WAITING = "waiting"
    DONE = "done"


class Scheduler:
    """Runs the synchronizer in one-shot or continuous mode.

    Args:
        synchronizer: Engine executing a single cycle.
        interval: Seconds between cycles; None runs exactly one cycle.
        jitter: Upper bound of random seconds added to each wait.
    """

    def __init__(
        self,
        synchronizer: ContractSynchronizer,
        interval: Optional[float] = None,
        jitter: float = 0.0,
    ):
        self.synchronizer = synchronizer
        self.interval = interval
        self.jitter = jitter
        self.state = SchedulerState.IDLE
        self.cycles = 0
        self.failures = 0
        self._stop = asyncio.Event()

    @property
    def one_shot(self) -> bool:
        return self.interval is None

    def request_stop(self) -> None:
        """Stop after the running cycle, or immediately while waiting."""
        if not self._stop.is_set():
            logger.info("Signal received. Shutting down.")
        self._stop.set()

    def next_delay(self) -> float:
        delay = self.interval or 0.0
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    async def run(self) -> int:
        """Run until done and return the process exit code."""
        try:
            if self.one_shot:
                return await self._run_once()
            await self._run_forever()
            return 0
        finally:
            self.state = SchedulerState.DONE

    async def _run_once(self) -> int:
        self.state = SchedulerState.RUNNING
        try:
            await self._cycle()
        except ContractProviderError as exc:
            logger.error("Could not fetch contracts: %s", exc)
            return 1
        return 0

    async def _run_forever(self) -> None:
        while not self._stop.is_set():
            self.state = SchedulerState.RUNNING
            try:
                await self._cycle()
            except ContractProviderError as exc:
                logger.error("Could not fetch contracts: %s", exc)

            if self._stop.is_set():
                break

            delay = self.next_delay()
            logger.debug("Waiting for %.0fs.", delay)
            self.state = SchedulerState.WAITING
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                continue

    async def _cycle(self) -> None:
        self.cycles += 1
        try:
            report = await self.synchronizer.run_cycle()
        except ContractProviderError:
            self.failures += 1
            raise
        logger.debug("Cycle %d finished: %s", self.cycles, report.outcome.value)
