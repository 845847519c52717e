"""
PiSwap Router

Batches native-currency wrapping with a market operation so users never
hold the collateral claim directly:

    mint              native -> pairs
    burn              pairs -> native
    swap_from_native  native -> bull / bear
    swap_to_native    bull / bear -> native
    add_liquidity     native + bull + bear -> liquidity (unused claims refunded)

The router is the direct caller of every market operation and the user is
the originating caller, so the market's same-block guard sees both.
Claims are pulled from the user through a ledger approval
(``registry.set_approval_for_all(user, router.address, True)``).
"""

from __future__ import annotations

from typing import Optional, Tuple

from eth_utils import keccak, to_canonical_address, to_checksum_address

from .exceptions import DisallowedAssetSwap
from .logger import get_logger
from .market.types import SwapKind, TokenType
from .tokens.registry import TokenRegistry

logger = get_logger(__name__)


class Router:

    def __init__(self, registry: TokenRegistry, address: Optional[str] = None):
        self.registry = registry
        self.chain = registry.chain
        if address is None:
            address = keccak(b"piswap.router" + to_canonical_address(registry.address))[-20:]
        self.address = self.chain.register(to_checksum_address(address), self)

    def _market(self, market: str):
        return self.registry.get_market(market)

    def _pull_claim(self, sender: str, market: str, kind: TokenType, amount: int) -> None:
        asset_id = self.registry.asset_id(market, kind)
        self.registry.transfer(self.address, sender, self.address, asset_id, amount)

    def _refund_claim(self, recipient: str, market: str, kind: TokenType) -> None:
        asset_id = self.registry.asset_id(market, kind)
        leftover = self.registry.balance_of(self.address, asset_id)
        if leftover:
            self.registry.transfer(self.address, self.address, recipient, asset_id, leftover)

    # -- Issuance -------------------------------------------------------------

    def mint(
        self,
        sender: str,
        market: str,
        amount: int,
        *,
        deadline: int,
        slippage: Optional[int] = None,
        recipient: Optional[str] = None,
    ) -> Tuple[int, int]:
        """Mint pairs with *amount* native currency."""
        with self.chain.atomic():
            self.registry.deposit(sender, amount, recipient=self.address)
            result = self._market(market).mint(
                self.address, amount, SwapKind.GIVEN_IN,
                deadline=deadline, recipient=recipient or sender,
                slippage=slippage, origin=sender,
            )
        logger.debug(f"Router mint on {market} for {sender}: {result}")
        return result

    def burn(
        self,
        sender: str,
        market: str,
        amount: int,
        *,
        deadline: int,
        slippage: Optional[int] = None,
        recipient: Optional[str] = None,
    ) -> Tuple[int, int]:
        """Burn *amount* pairs into native currency."""
        with self.chain.atomic():
            self._pull_claim(sender, market, TokenType.BULL, amount)
            self._pull_claim(sender, market, TokenType.BEAR, amount)
            amount_in, amount_out = self._market(market).burn(
                self.address, amount, SwapKind.GIVEN_IN,
                deadline=deadline, recipient=self.address,
                slippage=slippage, origin=sender,
            )
            self.registry.withdraw(self.address, amount_out, recipient=recipient or sender)
        return amount_in, amount_out

    # -- Swaps ----------------------------------------------------------------

    def swap_from_native(
        self,
        sender: str,
        market: str,
        amount: int,
        token_out: TokenType,
        *,
        deadline: int,
        slippage: Optional[int] = None,
        recipient: Optional[str] = None,
    ) -> Tuple[int, int]:
        """Swap *amount* native currency for a claim."""
        if token_out not in (TokenType.BULL, TokenType.BEAR):
            raise DisallowedAssetSwap("Native swaps buy bull or bear")
        with self.chain.atomic():
            self.registry.deposit(sender, amount, recipient=self.address)
            return self._market(market).swap(
                self.address, amount, TokenType.COLLATERAL, token_out, SwapKind.GIVEN_IN,
                deadline=deadline, recipient=recipient or sender,
                slippage=slippage, origin=sender,
            )

    def swap_to_native(
        self,
        sender: str,
        market: str,
        amount: int,
        token_in: TokenType,
        *,
        deadline: int,
        slippage: Optional[int] = None,
        recipient: Optional[str] = None,
    ) -> Tuple[int, int]:
        """Swap *amount* of a claim for native currency."""
        if token_in not in (TokenType.BULL, TokenType.BEAR):
            raise DisallowedAssetSwap("Native swaps sell bull or bear")
        with self.chain.atomic():
            self._pull_claim(sender, market, token_in, amount)
            amount_in, amount_out = self._market(market).swap(
                self.address, amount, token_in, TokenType.COLLATERAL, SwapKind.GIVEN_IN,
                deadline=deadline, recipient=self.address,
                slippage=slippage, origin=sender,
            )
            self.registry.withdraw(self.address, amount_out, recipient=recipient or sender)
        return amount_in, amount_out

    # -- Liquidity ------------------------------------------------------------

    def add_liquidity(
        self,
        sender: str,
        market: str,
        amount: int,
        max_bull: int,
        max_bear: int,
        *,
        deadline: int,
        min_liquidity: int = 0,
        recipient: Optional[str] = None,
    ) -> Tuple[int, int, int, int]:
        """Provide liquidity with native collateral; unused claims go back to *sender*."""
        with self.chain.atomic():
            self.registry.deposit(sender, amount, recipient=self.address)
            self._pull_claim(sender, market, TokenType.BULL, max_bull)
            self._pull_claim(sender, market, TokenType.BEAR, max_bear)
            result = self._market(market).add_liquidity(
                self.address, amount, max_bull, max_bear,
                deadline=deadline, min_liquidity=min_liquidity,
                recipient=recipient or sender, origin=sender,
            )
            self._refund_claim(sender, market, TokenType.BULL)
            self._refund_claim(sender, market, TokenType.BEAR)
        return result
