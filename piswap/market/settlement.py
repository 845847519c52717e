"""
PiSwap Settlement Engine

Prices NFT sales to and purchases from a market at the oracle's
accumulated valuation. Sales pay the asset's declared royalty, capped at a
fraction of the gross price; purchases carry no royalty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..constants import FEE_DENOMINATOR, ROYALTY_CAP_BPS
from ..exceptions import InsufficientLockedCollateral, InvalidAmount, SlippageExceeded
from .types import AssetModel, UnderlyingAsset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleQuote:
    """Holder sells *amount* units to the market."""
    amount: int
    gross: int
    royalty: int
    royalty_receiver: Optional[str]
    proceeds: int


@dataclass(frozen=True)
class PurchaseQuote:
    """Holder buys *amount* units out of the market's inventory."""
    amount: int
    cost: int


def validate_amount(asset: UnderlyingAsset, amount: int) -> None:
    if amount <= 0:
        raise InvalidAmount("NFT amount must be greater than zero")
    if asset.model == AssetModel.SINGLE_OWNER and amount != 1:
        raise InvalidAmount("Single-owner assets settle one unit at a time")


def cap_royalty(gross: int, declared: int, cap_bps: int = ROYALTY_CAP_BPS) -> int:
    return min(declared, gross * cap_bps // FEE_DENOMINATOR)


def quote_sale(
    unit_value: int,
    amount: int,
    min_price: int,
    locked: int,
    royalty_receiver: Optional[str] = None,
    declared_royalty: int = 0,
    cap_bps: int = ROYALTY_CAP_BPS,
) -> SaleQuote:
    """
    Price a sale. *min_price* is per unit and applies to the proceeds after
    royalty; the gross price must be covered by *locked* collateral.
    """
    gross = unit_value * amount
    royalty = 0
    if royalty_receiver is not None and declared_royalty > 0:
        royalty = cap_royalty(gross, declared_royalty, cap_bps)
    proceeds = gross - royalty

    if proceeds < min_price * amount:
        raise SlippageExceeded(
            f"Proceeds {proceeds} below minimum {min_price * amount}"
        )
    if gross > locked:
        raise InsufficientLockedCollateral(
            f"Sale of {gross} exceeds locked collateral {locked}"
        )
    return SaleQuote(
        amount=amount,
        gross=gross,
        royalty=royalty,
        royalty_receiver=royalty_receiver if royalty else None,
        proceeds=proceeds,
    )


def quote_purchase(unit_value: int, amount: int, max_price: int, inventory: int) -> PurchaseQuote:
    """Price a purchase. *max_price* is per unit."""
    if amount > inventory:
        raise InvalidAmount(f"Market holds {inventory} units, {amount} requested")
    if unit_value > max_price:
        raise SlippageExceeded(f"Unit price {unit_value} exceeds maximum {max_price}")
    return PurchaseQuote(amount=amount, cost=unit_value * amount)
