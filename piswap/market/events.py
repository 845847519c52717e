"""
Market notification records.

Every state change of a market appends one of these to the registry's
event log. Amounts are rendered as strings in ``to_dict`` since they
routinely exceed 64 bits.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class Minted:
    """Pairs issued against deposited collateral."""
    market: str
    sender: str
    recipient: str
    amount_in: int
    amount_out: int
    fee: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Minted",
            "market": self.market,
            "sender": self.sender,
            "recipient": self.recipient,
            "amountIn": str(self.amount_in),
            "amountOut": str(self.amount_out),
            "fee": str(self.fee),
            "block": self.block,
        }


@dataclass(frozen=True)
class Burned:
    """Pairs redeemed for collateral."""
    market: str
    sender: str
    recipient: str
    amount_in: int
    amount_out: int
    fee: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Burned",
            "market": self.market,
            "sender": self.sender,
            "recipient": self.recipient,
            "amountIn": str(self.amount_in),
            "amountOut": str(self.amount_out),
            "fee": str(self.fee),
            "block": self.block,
        }


@dataclass(frozen=True)
class Swapped:
    market: str
    sender: str
    recipient: str
    token_in: int
    token_out: int
    amount_in: int
    amount_out: int
    fee: int
    locked_liquidity: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Swapped",
            "market": self.market,
            "sender": self.sender,
            "recipient": self.recipient,
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "amountIn": str(self.amount_in),
            "amountOut": str(self.amount_out),
            "fee": str(self.fee),
            "lockedLiquidity": str(self.locked_liquidity),
            "block": self.block,
        }


@dataclass(frozen=True)
class LiquidityAdded:
    market: str
    sender: str
    recipient: str
    liquidity: int
    amount_collateral: int
    amount_bull: int
    amount_bear: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "LiquidityAdded",
            "market": self.market,
            "sender": self.sender,
            "recipient": self.recipient,
            "liquidity": str(self.liquidity),
            "amountCollateral": str(self.amount_collateral),
            "amountBull": str(self.amount_bull),
            "amountBear": str(self.amount_bear),
            "block": self.block,
        }


@dataclass(frozen=True)
class LiquidityRemoved:
    market: str
    sender: str
    recipient: str
    liquidity: int
    amount_collateral: int
    amount_bull: int
    amount_bear: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "LiquidityRemoved",
            "market": self.market,
            "sender": self.sender,
            "recipient": self.recipient,
            "liquidity": str(self.liquidity),
            "amountCollateral": str(self.amount_collateral),
            "amountBull": str(self.amount_bull),
            "amountBear": str(self.amount_bear),
            "block": self.block,
        }


@dataclass(frozen=True)
class NFTSold:
    """The market bought the underlying asset from a holder."""
    market: str
    seller: str
    recipient: str
    amount: int
    gross: int
    proceeds: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "NFTSold",
            "market": self.market,
            "seller": self.seller,
            "recipient": self.recipient,
            "amount": self.amount,
            "gross": str(self.gross),
            "proceeds": str(self.proceeds),
            "block": self.block,
        }


@dataclass(frozen=True)
class NFTPurchased:
    """The market sold the underlying asset out of its inventory."""
    market: str
    buyer: str
    recipient: str
    amount: int
    cost: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "NFTPurchased",
            "market": self.market,
            "buyer": self.buyer,
            "recipient": self.recipient,
            "amount": self.amount,
            "cost": str(self.cost),
            "block": self.block,
        }


@dataclass(frozen=True)
class RoyaltyPaid:
    market: str
    receiver: str
    amount: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "RoyaltyPaid",
            "market": self.market,
            "receiver": self.receiver,
            "amount": str(self.amount),
            "block": self.block,
        }
