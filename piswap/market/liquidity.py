"""
PiSwap Liquidity Engine

Proportional add/remove of the three pooled reserves, the protocol-owned
liquidity lock driven by swap price impact, and the valuation of the
market-owned share (locked collateral) that backs NFT settlement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..exceptions import (
    InsufficientBalance,
    ReserveUninitialized,
    SlippageExceeded,
    ZeroAmount,
)
from ..mathutil import ceil_div, isqrt
from .curve import BondingCurve
from .swap import SwapQuote
from .types import Reserves, TokenType, other_claim

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiquidityDeposit:
    liquidity: int
    collateral: int
    bull: int
    bear: int


@dataclass(frozen=True)
class LiquidityWithdrawal:
    liquidity: int
    collateral: int
    bull: int
    bear: int


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------

def quote_add(
    reserves: Reserves,
    liquidity_supply: int,
    amount_collateral: int,
    max_bull: int,
    max_bear: int,
    min_liquidity: int = 0,
) -> LiquidityDeposit:
    """
    Amounts for a deposit of *amount_collateral*.

    The first provider sets the ratio and deposits the maxima exactly; later
    providers deposit claims in proportion to the collateral reserve.
    """
    if amount_collateral == 0:
        raise ZeroAmount("Collateral amount must be greater than zero")

    if liquidity_supply == 0:
        if max_bull == 0 or max_bear == 0:
            raise ZeroAmount("Initial liquidity needs bull and bear")
        liquidity = amount_collateral
        bull, bear = max_bull, max_bear
    else:
        if reserves.collateral == 0:
            raise ReserveUninitialized("Collateral reserve is empty")
        bull = ceil_div(amount_collateral * reserves.bull, reserves.collateral)
        bear = ceil_div(amount_collateral * reserves.bear, reserves.collateral)
        liquidity = amount_collateral * liquidity_supply // reserves.collateral
        if bull > max_bull:
            raise SlippageExceeded(f"Bull required {bull} exceeds maximum {max_bull}")
        if bear > max_bear:
            raise SlippageExceeded(f"Bear required {bear} exceeds maximum {max_bear}")
        if liquidity == 0:
            raise ZeroAmount("Deposit too small to mint liquidity")

    if liquidity < min_liquidity:
        raise SlippageExceeded(f"Liquidity {liquidity} below minimum {min_liquidity}")
    return LiquidityDeposit(liquidity, amount_collateral, bull, bear)


def quote_remove(
    reserves: Reserves,
    liquidity_supply: int,
    amount_liquidity: int,
    min_collateral: int = 0,
    min_bull: int = 0,
    min_bear: int = 0,
) -> LiquidityWithdrawal:
    """Pro-rata share of every reserve for *amount_liquidity*."""
    if liquidity_supply == 0:
        raise ReserveUninitialized("Pool has no liquidity")
    if amount_liquidity == 0:
        raise ZeroAmount("Liquidity amount must be greater than zero")
    if amount_liquidity > liquidity_supply:
        raise InsufficientBalance(
            f"Cannot remove {amount_liquidity} of {liquidity_supply} liquidity"
        )

    collateral = reserves.collateral * amount_liquidity // liquidity_supply
    bull = reserves.bull * amount_liquidity // liquidity_supply
    bear = reserves.bear * amount_liquidity // liquidity_supply

    if collateral < min_collateral:
        raise SlippageExceeded(f"Collateral {collateral} below minimum {min_collateral}")
    if bull < min_bull:
        raise SlippageExceeded(f"Bull {bull} below minimum {min_bull}")
    if bear < min_bear:
        raise SlippageExceeded(f"Bear {bear} below minimum {min_bear}")
    return LiquidityWithdrawal(amount_liquidity, collateral, bull, bear)


# ---------------------------------------------------------------------------
# Protocol-owned liquidity
# ---------------------------------------------------------------------------

def _adjusted_collateral(reserves: Reserves, claim: TokenType) -> int:
    """Collateral backing *claim*'s side: Rc * R_claim / (R_claim + R_other)."""
    r_claim = reserves.get(claim)
    r_other = reserves.get(other_claim(claim))
    if r_claim + r_other == 0:
        return 0
    return reserves.collateral * r_claim // (r_claim + r_other)


def lock_amount(
    before: Reserves,
    after: Reserves,
    swap: SwapQuote,
    liquidity_supply: int,
) -> int:
    """
    Liquidity the market mints to itself after *swap*.

    Sized by the price impact on the adjusted collateral reserve:
    ``supply * (post / pre - 1)``. Bull <-> bear trades lock nothing.
    """
    if TokenType.COLLATERAL not in (swap.token_in, swap.token_out):
        return 0
    claim = swap.token_out if swap.token_in == TokenType.COLLATERAL else swap.token_in
    pre = _adjusted_collateral(before, claim)
    post = _adjusted_collateral(after, claim)
    if pre == 0 or post <= pre:
        return 0
    return liquidity_supply * (post - pre) // pre


def locked_collateral(
    reserves: Reserves,
    liquidity_supply: int,
    owned_liquidity: int,
    curve: BondingCurve,
    deposited: int,
    pair_supply: int,
    settlement_balance: int,
) -> int:
    """
    Collateral-equivalent value of the market-owned liquidity share.

    The owned share of the claim reserves is rebalanced along the constant
    product into equal bull and bear (p**2 = bull * bear), the pairs are
    valued by burning them on the curve, and the collateral share plus the
    net settlement balance is added on top.
    """
    value = settlement_balance
    if liquidity_supply > 0 and owned_liquidity > 0:
        collateral = reserves.collateral * owned_liquidity // liquidity_supply
        bull = reserves.bull * owned_liquidity // liquidity_supply
        bear = reserves.bear * owned_liquidity // liquidity_supply
        pairs = min(isqrt(bull * bear), pair_supply)
        value += collateral
        if pairs > 0:
            value += curve.burn_out_given_in(deposited, pair_supply, pairs)
    return max(value, 0)
