"""
Contract Repository

Authenticated access to the remote contract repository.
"""

from .client import RepositoryClient

__all__ = ["RepositoryClient"]
