"""
PiSwap Market Engine

Per-asset valuation market:
  - Issuance curve (paired bull/bear claims against collateral)
  - Virtual-reserve constant-product swap pool
  - Liquidity provisioning with protocol-owned liquidity
  - Per-block price oracle gating settlement
  - NFT buy/sell settlement with capped royalty
  - Same-block repeat-action guard
"""

from .types import (
    AssetModel,
    Reserves,
    SwapKind,
    TokenType,
    UnderlyingAsset,
)
from .curve import BondingCurve
from .oracle import Observation, PriceOracle
from .guard import FlashloanGuard
from .market import Market, MarketProxy, MarketState

__all__ = [
    "AssetModel",
    "Reserves",
    "SwapKind",
    "TokenType",
    "UnderlyingAsset",
    "BondingCurve",
    "Observation",
    "PriceOracle",
    "FlashloanGuard",
    "Market",
    "MarketProxy",
    "MarketState",
]
