"""Service modules"""
from .keeper import Keeper
from .quoter import RebalanceQuoter

__all__ = ["Keeper", "RebalanceQuoter"]
