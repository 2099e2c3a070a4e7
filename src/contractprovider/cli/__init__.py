"""Command-line interface for the contract provider."""

from .main import cli

__all__ = ["cli"]
