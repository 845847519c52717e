"""
Market value types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class TokenType(IntEnum):
    """Asset kinds held per market. Values match the on-ledger encoding."""
    COLLATERAL = 0
    BULL = 1
    BEAR = 2
    LIQUIDITY = 3


class SwapKind(IntEnum):
    """Which side of a trade the caller fixes."""
    GIVEN_IN = 0
    GIVEN_OUT = 1


class AssetModel(IntEnum):
    """Ownership model of the underlying collection."""
    SINGLE_OWNER = 0   # one owner per token id
    MULTI_BALANCE = 1  # fungible balances per token id


@dataclass(frozen=True)
class UnderlyingAsset:
    """The non-fungible asset a market values."""
    contract: str
    token_id: int
    model: AssetModel

    def to_dict(self) -> dict:
        return {
            "contract": self.contract,
            "token_id": self.token_id,
            "model": self.model.name,
        }


@dataclass
class Reserves:
    """Pooled reserves of one market."""
    collateral: int = 0
    bull: int = 0
    bear: int = 0

    def get(self, kind: TokenType) -> int:
        if kind == TokenType.COLLATERAL:
            return self.collateral
        if kind == TokenType.BULL:
            return self.bull
        if kind == TokenType.BEAR:
            return self.bear
        raise ValueError(f"No pooled reserve for {kind.name}")

    def add(self, kind: TokenType, amount: int) -> None:
        self._set(kind, self.get(kind) + amount)

    def sub(self, kind: TokenType, amount: int) -> None:
        value = self.get(kind) - amount
        if value < 0:
            raise ValueError(f"{kind.name} reserve would go negative")
        self._set(kind, value)

    def _set(self, kind: TokenType, value: int) -> None:
        if kind == TokenType.COLLATERAL:
            self.collateral = value
        elif kind == TokenType.BULL:
            self.bull = value
        elif kind == TokenType.BEAR:
            self.bear = value
        else:
            raise ValueError(f"No pooled reserve for {kind.name}")

    @property
    def initialized(self) -> bool:
        return self.collateral > 0 and self.bull > 0 and self.bear > 0

    def to_dict(self) -> dict:
        return {
            "collateral": self.collateral,
            "bull": self.bull,
            "bear": self.bear,
        }


def other_claim(kind: TokenType) -> TokenType:
    """BULL <-> BEAR."""
    if kind == TokenType.BULL:
        return TokenType.BEAR
    if kind == TokenType.BEAR:
        return TokenType.BULL
    raise ValueError(f"{kind.name} is not a claim token")
