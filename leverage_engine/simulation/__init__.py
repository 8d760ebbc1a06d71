"""In-memory collaborators backed by the ``Ledger``."""
from .dex import FixedRateVenue
from .flash import FlashMintProvider
from .lending_pool import LendingPool
from .scenario import Simulation, build_simulation, run_rebalance
from .vault import LeveragedVault

__all__ = [
    "FixedRateVenue",
    "FlashMintProvider",
    "LendingPool",
    "LeveragedVault",
    "Simulation",
    "build_simulation",
    "run_rebalance",
]
