"""Rebalance executors."""
from .base import BaseLeverageExecutor
from .decrease import DecreaseLeverageExecutor
from .increase import IncreaseLeverageExecutor

__all__ = ["BaseLeverageExecutor", "DecreaseLeverageExecutor", "IncreaseLeverageExecutor"]
