# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Contract Provider

Wires identity, repository, store and scheduler together for one run.
"""

import asyncio
import logging
import signal
from typing import Optional

from .config import ProviderConfig
from .exceptions import IdentityError, StoreError
from .identity import IdentityBootstrapper
from .repository import RepositoryClient
from .storage import AbstractContractStore, create_store
from .sync import ContractSynchronizer, Scheduler

logger = logging.getLogger(__name__)


class ContractProvider:
    """A configured provider process.

    Args:
        config: Validated provider configuration.
        store: Store to use instead of the one selected by ``config``.
        bootstrapper: Identity bootstrapper to use instead of the default.
        repository: Repository client to use instead of the default.
    """

    def __init__(
        self,
        config: ProviderConfig,
        store: Optional[AbstractContractStore] = None,
        bootstrapper: Optional[IdentityBootstrapper] = None,
        repository: Optional[RepositoryClient] = None,
    ):
        self.config = config
        self.store = store or create_store(config)
        self.bootstrapper = bootstrapper or IdentityBootstrapper(
            pki_address=config.pki_address,
            api_key=config.pki_api_key,
            common_name=config.common_name,
            identity_path=config.identity_path,
            timeout=config.request_timeout,
        )
        self.repository = repository or RepositoryClient(
            repo_address=config.repo_address,
            api_key=config.repo_api_key,
            timeout=config.request_timeout,
            concurrency=config.fetch_concurrency,
            ca_bundle_path=config.repo_ca_path,
        )
        self.scheduler = Scheduler(
            ContractSynchronizer(
                self.bootstrapper,
                self.repository,
                self.store,
                conflict_retries=config.conflict_retries,
            ),
            interval=config.fetch_interval,
            jitter=config.fetch_jitter,
        )

    async def run(self) -> int:
        """Bootstrap the identity and run the scheduler.

        Returns:
            Process exit code: 0 on success or clean shutdown, 1 otherwise.
        """
        logger.info("Starting contract provider.")
        logger.info("Own PKI address: %s.", self.config.pki_address)

        try:
            await self.bootstrapper.obtain_identity()
        except IdentityError as exc:
            logger.error("Could not obtain provider identity (%s): %s", exc.kind.value, exc)
            return 1

        try:
            await self.store.connect()
        except StoreError as exc:
            logger.error("Could not open %s storage: %s", self.config.storage.value, exc)
            return 1

        if self.config.one_shot:
            logger.info(
                "No interval is given. Only fetch contracts from '%s' once.", self.config.repo_address
            )
        else:
            logger.info(
                "Fetching from repository '%s' every %.0fs.",
                self.config.repo_address, self.config.fetch_interval,
            )

        self._install_signal_handlers()
        try:
            return await self.scheduler.run()
        finally:
            self._remove_signal_handlers()
            await self.store.disconnect()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.scheduler.request_stop)
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal handler for %s not supported here", sig.name)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass


def run_provider(config: ProviderConfig) -> int:
    """Run the provider to completion and return the exit code."""
    return asyncio.run(ContractProvider(config).run())
