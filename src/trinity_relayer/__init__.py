"""
Trinity relayer package.

Cross-chain proof relay for the Trinity 2-of-3 consensus verifier.
"""

from .config import RelayerConfig
from .models import ChainRole, CrossChainProof, Operation, RelayerStats
from .relayer import TrinityRelayer

__all__ = ["RelayerConfig", "TrinityRelayer", "ChainRole", "CrossChainProof", "Operation", "RelayerStats"]
__version__ = "0.1.0"
