"""
PiSwap Tokens

Multi-asset ledger / market registry and the NFT collections markets are
created on.
"""

from .registry import COLLATERAL_ID, TokenRegistry
from .nft import MultiBalanceCollection, SingleOwnerCollection

__all__ = [
    "COLLATERAL_ID",
    "TokenRegistry",
    "MultiBalanceCollection",
    "SingleOwnerCollection",
]
