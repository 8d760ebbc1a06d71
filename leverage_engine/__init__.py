"""Rebalance execution helpers for leveraged vaults."""

__version__ = "0.1.0"
