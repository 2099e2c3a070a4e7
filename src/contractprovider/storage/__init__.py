"""
Contract stores.

Provides the abstract store interface, the local file and Kubernetes
Secret sinks, and the factory that selects one from configuration.
"""

from ..config import ProviderConfig, StorageBackend
from .provider import AbstractContractStore, StorageHandle
from .memory_provider import MemoryContractStore
from .local_provider import LocalFileContractStore, parse_bundle, render_bundle
from .kubernetes_provider import KubernetesSecretContractStore


def create_store(config: ProviderConfig) -> AbstractContractStore:
    """Select the contract store for this run."""
    if config.storage is StorageBackend.KUBERNETES:
        return KubernetesSecretContractStore(config.secret_name)
    return LocalFileContractStore(config.local_path)


__all__ = [
    "AbstractContractStore",
    "StorageHandle",
    "MemoryContractStore",
    "LocalFileContractStore",
    "KubernetesSecretContractStore",
    "parse_bundle",
    "render_bundle",
    "create_store",
]
