"""
PiSwap Swap Engine

Constant-product pricing over three pooled reserves (collateral, bull,
bear). For trades between collateral and a claim the collateral side is a
virtual reserve blended with the other claim:

    Rc_eff = Rc * R_other / (R_claim + R_other)

which ties the secondary price to the bull/bear relationship of the
issuance curve. Bull <-> bear trades price on the raw claim reserves.

    given-in :  eff = a*Rin/(a+Rin)          out = Rout*eff/(Rin+eff)
    given-out:  eff = ceil(Rin*out/(Rout-out))  a = ceil(eff*Rin/(Rin-eff))

Rounding always favours the pool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from ..exceptions import (
    DisallowedAssetSwap,
    MaxReserveExceeded,
    ReserveUninitialized,
    ZeroAmount,
)
from ..mathutil import ceil_div, check_uint256, fee_of, gross_up
from .types import Reserves, SwapKind, TokenType, other_claim

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapQuote:
    """Priced swap, before any state is touched."""
    token_in: TokenType
    token_out: TokenType
    amount_in: int   # gross, fee included
    amount_out: int
    fee: int


def validate_pair(token_in: TokenType, token_out: TokenType) -> None:
    if token_in == token_out:
        raise DisallowedAssetSwap(f"Cannot swap {token_in.name} for itself")
    if TokenType.LIQUIDITY in (token_in, token_out):
        raise DisallowedAssetSwap("Liquidity tokens cannot be swapped")


def virtual_collateral(reserves: Reserves, claim: TokenType) -> int:
    """Collateral reserve as seen by a trade against *claim*."""
    r_claim = reserves.get(claim)
    r_other = reserves.get(other_claim(claim))
    return reserves.collateral * r_other // (r_claim + r_other)


def pricing_reserves(
    reserves: Reserves, token_in: TokenType, token_out: TokenType
) -> Tuple[int, int]:
    """(Rin, Rout) used to price a trade."""
    validate_pair(token_in, token_out)
    if not reserves.initialized:
        raise ReserveUninitialized("Pool has no liquidity")

    if token_in == TokenType.COLLATERAL:
        r_in, r_out = virtual_collateral(reserves, token_out), reserves.get(token_out)
    elif token_out == TokenType.COLLATERAL:
        r_in, r_out = reserves.get(token_in), virtual_collateral(reserves, token_in)
    else:
        r_in, r_out = reserves.get(token_in), reserves.get(token_out)

    if r_in == 0 or r_out == 0:
        raise ReserveUninitialized("Pool reserves are too small to price a trade")
    return r_in, r_out


def out_given_in(r_in: int, r_out: int, amount_in: int) -> int:
    """Output for a fee-free input."""
    if amount_in == 0:
        raise ZeroAmount("Swap amount must be greater than zero")
    check_uint256(amount_in + r_in, amount_in * r_in)
    effective = amount_in * r_in // (amount_in + r_in)
    return r_out * effective // (r_in + effective)


def in_given_out(r_in: int, r_out: int, amount_out: int) -> int:
    """Fee-free input needed for *amount_out*."""
    if amount_out == 0:
        raise ZeroAmount("Swap amount must be greater than zero")
    if amount_out >= r_out:
        raise MaxReserveExceeded(
            f"Requested output {amount_out} must be below reserve {r_out}"
        )
    effective = ceil_div(r_in * amount_out, r_out - amount_out)
    if effective >= r_in:
        raise MaxReserveExceeded(
            f"Requested output {amount_out} needs more input than the curve allows"
        )
    return ceil_div(effective * r_in, r_in - effective)


def quote(
    reserves: Reserves,
    amount: int,
    token_in: TokenType,
    token_out: TokenType,
    kind: SwapKind,
    fee: int,
    denominator: int,
) -> SwapQuote:
    """Price a swap with fee. The fee is charged on the input side."""
    if amount == 0:
        raise ZeroAmount("Swap amount must be greater than zero")
    r_in, r_out = pricing_reserves(reserves, token_in, token_out)

    if kind == SwapKind.GIVEN_IN:
        fee_amount = fee_of(amount, fee, denominator)
        net = amount - fee_amount
        amount_out = out_given_in(r_in, r_out, net) if net > 0 else 0
        if amount_out == 0:
            raise ZeroAmount("Swap output rounds to zero")
        return SwapQuote(token_in, token_out, amount, amount_out, fee_amount)

    net = in_given_out(r_in, r_out, amount)
    gross = gross_up(net, fee, denominator)
    return SwapQuote(token_in, token_out, gross, amount, gross - net)


def apply(reserves: Reserves, swap: SwapQuote) -> Reserves:
    """Reserves after the swap. The fee stays in the pool."""
    after = Reserves(reserves.collateral, reserves.bull, reserves.bear)
    after.add(swap.token_in, swap.amount_in)
    after.sub(swap.token_out, swap.amount_out)
    return after


def constant_product(reserves: Reserves, token_in: TokenType, token_out: TokenType) -> int:
    """Product of the pricing reserves of a pair."""
    r_in, r_out = pricing_reserves(reserves, token_in, token_out)
    return r_in * r_out
