"""
PiSwap Issuance Curve

Pairs of bull/bear claims are issued along

    E(T) = M*S / (M - T) - S        collateral required for supply T
    T(E) = M - M*S / (E + S)        supply backed by collateral E

where M is the maximum pair supply (never reached) and S the curve offset.
Every rounding favours the market: supply is rounded down, collateral up,
so the recorded pair supply never exceeds T(deposited).
"""

from __future__ import annotations

import logging

from ..constants import CURVE_OFFSET, MAX_SUPPLY
from ..exceptions import InsufficientSupplyToBurn, MaxSupplyExceeded, ZeroAmount
from ..mathutil import ceil_div, check_uint256

logger = logging.getLogger(__name__)


class BondingCurve:
    """Integer bonding curve with fixed constants."""

    def __init__(self, max_supply: int = MAX_SUPPLY, offset: int = CURVE_OFFSET) -> None:
        if max_supply <= 0 or offset <= 0:
            raise ValueError("max_supply and offset must be positive")
        check_uint256(max_supply * offset)
        self.max_supply = max_supply
        self.offset = offset

    # -- Forward / inverse --------------------------------------------------

    def supply_for_deposit(self, deposit: int) -> int:
        """T(E), rounded down."""
        check_uint256(deposit + self.offset)
        return self.max_supply - ceil_div(self.max_supply * self.offset, deposit + self.offset)

    def deposit_for_supply(self, supply: int) -> int:
        """E(T), rounded up."""
        if supply >= self.max_supply:
            raise MaxSupplyExceeded(
                f"Pair supply {supply} would reach max supply {self.max_supply}"
            )
        return ceil_div(self.max_supply * self.offset, self.max_supply - supply) - self.offset

    # -- Mint ---------------------------------------------------------------

    def mint_out_given_in(self, deposited: int, supply: int, amount_in: int) -> int:
        """Pairs issued for *amount_in* collateral."""
        if amount_in == 0:
            raise ZeroAmount("Mint amount must be greater than zero")
        minted = self.supply_for_deposit(deposited + amount_in) - supply
        return max(minted, 0)

    def mint_in_given_out(self, deposited: int, supply: int, amount_out: int) -> int:
        """Collateral needed to issue *amount_out* pairs (at least one unit)."""
        if amount_out == 0:
            raise ZeroAmount("Mint amount must be greater than zero")
        check_uint256(supply + amount_out)
        required = self.deposit_for_supply(supply + amount_out) - deposited
        return max(required, 1)

    # -- Burn ---------------------------------------------------------------

    def burn_out_given_in(self, deposited: int, supply: int, amount_in: int) -> int:
        """Collateral released by burning *amount_in* pairs."""
        if amount_in == 0:
            raise ZeroAmount("Burn amount must be greater than zero")
        if amount_in > supply:
            raise InsufficientSupplyToBurn(
                f"Cannot burn {amount_in} pairs, supply is {supply}"
            )
        return deposited - self.deposit_for_supply(supply - amount_in)

    def burn_in_given_out(self, deposited: int, supply: int, amount_out: int) -> int:
        """Pairs to burn to release *amount_out* collateral (at least one unit)."""
        if amount_out == 0:
            raise ZeroAmount("Burn amount must be greater than zero")
        if amount_out > deposited:
            raise InsufficientSupplyToBurn(
                f"Cannot release {amount_out} collateral, deposit is {deposited}"
            )
        required = max(supply - self.supply_for_deposit(deposited - amount_out), 1)
        if required > supply:
            raise InsufficientSupplyToBurn(
                f"Cannot burn {required} pairs, supply is {supply}"
            )
        return required
