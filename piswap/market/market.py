"""
PiSwap Market

One market per (asset contract, token id). ``MarketState`` is the data the
registry owns; ``Market`` is the logic bound to it for a single call, built
from the registry's current implementation so upgrades apply immediately.
``MarketProxy`` is what the chain directory holds at the market address.

Every public operation:
  1. runs inside ``Chain.atomic()``, journaling a checkpoint of its own
     state only, and rejects re-entry
  2. checks the deadline before anything else
  3. captures the oracle's pre-operation sample for the block
  4. prices, checks slippage, moves ledger balances
  5. records the block against sender and origin in the guard
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional, Tuple

from ..constants import FEE_DENOMINATOR
from ..exceptions import (
    DisallowedAssetSwap,
    ExpiredDeadline,
    InvalidAmount,
    ReentrancyError,
    SettlementDisabled,
    SlippageExceeded,
    UnsupportedUnderlyingAsset,
    ZeroAmount,
)
from ..mathutil import fee_of, gross_up
from . import liquidity as liquidity_engine
from . import settlement as settlement_engine
from . import swap as swap_engine
from .curve import BondingCurve
from .events import (
    Burned,
    LiquidityAdded,
    LiquidityRemoved,
    Minted,
    NFTPurchased,
    NFTSold,
    RoyaltyPaid,
    Swapped,
)
from .guard import FlashloanGuard
from .oracle import Observation, PriceOracle
from .types import AssetModel, Reserves, SwapKind, TokenType, UnderlyingAsset

if TYPE_CHECKING:
    from ..tokens.registry import TokenRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

@dataclass
class MarketState:
    """Everything a market persists between calls."""
    address: str
    underlying: UnderlyingAsset
    max_supply: int
    curve_offset: int
    oracle: PriceOracle
    deposited: int = 0
    reserves: Reserves = field(default_factory=Reserves)
    settlement_balance: int = 0   # signed: buys add, sells subtract
    guard: FlashloanGuard = field(default_factory=FlashloanGuard)
    entered: bool = False
    created_block: int = 0

    def checkpoint(self) -> Callable[[], None]:
        """
        Undo callback putting this state back as it is now.

        Copies only what one operation can change: scalar fields, the
        reserves, the guard records and the oracle slot a sample may take.
        """
        saved = dict(self.__dict__)
        saved["reserves"] = Reserves(self.reserves.collateral, self.reserves.bull, self.reserves.bear)
        saved["guard"] = self.guard.copy()
        oracle = self.oracle.checkpoint()

        def restore() -> None:
            self.__dict__.update(saved)
            self.oracle.restore(oracle)

        return restore


# ---------------------------------------------------------------------------
# Market logic
# ---------------------------------------------------------------------------

class Market:
    """
    Market operations over a ``MarketState``.

    Amounts are base units. *sender* is the direct caller and pays; *origin*
    is the account that started the call chain (defaults to *sender*);
    *recipient* receives the output (defaults to *sender*).
    """

    def __init__(self, state: MarketState, registry: "TokenRegistry") -> None:
        self._state = state
        self._registry = registry
        self._chain = registry.chain
        self.curve = BondingCurve(state.max_supply, state.curve_offset)

    # -- Identity -------------------------------------------------------------

    @property
    def address(self) -> str:
        return self._state.address

    @property
    def underlying(self) -> UnderlyingAsset:
        return self._state.underlying

    @property
    def registry(self) -> "TokenRegistry":
        return self._registry

    def asset_id(self, kind: TokenType) -> int:
        return self._registry.asset_id(self.address, kind)

    # -- Curve views ----------------------------------------------------------

    @property
    def deposited(self) -> int:
        return self._state.deposited

    @property
    def pair_supply(self) -> int:
        return self._registry.total_supply(self.asset_id(TokenType.BULL))

    @property
    def liquidity_supply(self) -> int:
        return self._registry.total_supply(self.asset_id(TokenType.LIQUIDITY))

    def mint_out_given_in(self, amount_in: int) -> int:
        return self.curve.mint_out_given_in(self.deposited, self.pair_supply, amount_in)

    def mint_in_given_out(self, amount_out: int) -> int:
        return self.curve.mint_in_given_out(self.deposited, self.pair_supply, amount_out)

    def burn_out_given_in(self, amount_in: int) -> int:
        return self.curve.burn_out_given_in(self.deposited, self.pair_supply, amount_in)

    def burn_in_given_out(self, amount_out: int) -> int:
        return self.curve.burn_in_given_out(self.deposited, self.pair_supply, amount_out)

    # -- Pool views -----------------------------------------------------------

    @property
    def reserves(self) -> Reserves:
        r = self._state.reserves
        return Reserves(r.collateral, r.bull, r.bear)

    def get_reserve(self, kind: TokenType) -> int:
        kind = TokenType(kind)
        if kind == TokenType.LIQUIDITY:
            raise DisallowedAssetSwap("Liquidity tokens are not pooled")
        return self._state.reserves.get(kind)

    def get_swap_reserves(self, token_in: TokenType, token_out: TokenType) -> Tuple[int, int]:
        return swap_engine.pricing_reserves(
            self._state.reserves, TokenType(token_in), TokenType(token_out)
        )

    def swap_out_given_in(self, amount_in: int, token_in: TokenType, token_out: TokenType) -> int:
        return self._quote_swap(amount_in, token_in, token_out, SwapKind.GIVEN_IN).amount_out

    def swap_in_given_out(self, amount_out: int, token_in: TokenType, token_out: TokenType) -> int:
        return self._quote_swap(amount_out, token_in, token_out, SwapKind.GIVEN_OUT).amount_in

    def locked_collateral(self) -> int:
        state = self._state
        return liquidity_engine.locked_collateral(
            state.reserves,
            self.liquidity_supply,
            self._registry.balance_of(self.address, self.asset_id(TokenType.LIQUIDITY)),
            self.curve,
            state.deposited,
            self.pair_supply,
            state.settlement_balance,
        )

    # -- Oracle views ---------------------------------------------------------

    def asset_value(self) -> int:
        return self._state.oracle.value(self._state.reserves)

    def asset_value_average(self, n: int) -> int:
        return self._state.oracle.average(n)

    def asset_value_accumulated(self) -> int:
        return self._state.oracle.average(self._registry.oracle_length)

    def oracle_length(self) -> int:
        """Number of retained samples."""
        return self._state.oracle.count

    def oracle_sample(self, index: int) -> Observation:
        return self._state.oracle.sample(index)

    def swap_enabled(self) -> bool:
        """Whether NFT settlement is open."""
        if not self._state.oracle.ready(self._registry.oracle_length):
            return False
        margin = self._registry.settlement_margin
        return self.locked_collateral() >= margin * self.asset_value_accumulated()

    def inventory(self) -> int:
        """Units of the underlying asset the market holds."""
        return self._collection().balance_of(self.address, self.underlying.token_id)

    # -- Operation plumbing ---------------------------------------------------

    @contextmanager
    def _operation(self, sender: str, origin: Optional[str], deadline: int) -> Iterator[int]:
        state = self._state
        if state.entered:
            raise ReentrancyError(f"Market {self.address} is already executing")
        with self._chain.atomic():
            self._chain.journal(state.checkpoint())
            if self._chain.timestamp > deadline:
                raise ExpiredDeadline(
                    f"Deadline {deadline} passed (now {self._chain.timestamp})"
                )
            block = self._chain.block_number
            pending = state.oracle.pending_sample(block, state.reserves)
            state.entered = True
            try:
                yield block
            finally:
                state.entered = False
            state.guard.record(block, sender, origin or sender)
            if pending is not None:
                state.oracle.record(block, pending)

    def _pull(self, sender: str, kind: TokenType, amount: int) -> None:
        self._registry.transfer(self.address, sender, self.address, self.asset_id(kind), amount)

    def _push(self, recipient: str, kind: TokenType, amount: int) -> None:
        self._registry.transfer(self.address, self.address, recipient, self.asset_id(kind), amount)

    def _collection(self) -> Any:
        collection = self._chain.lookup(self.underlying.contract)
        if collection is None:
            raise UnsupportedUnderlyingAsset(f"No collection at {self.underlying.contract}")
        return collection

    def _quote_swap(self, amount: int, token_in: TokenType, token_out: TokenType, kind: SwapKind):
        return swap_engine.quote(
            self._state.reserves,
            amount,
            TokenType(token_in),
            TokenType(token_out),
            SwapKind(kind),
            self._registry.fee,
            FEE_DENOMINATOR,
        )

    # -- Issuance -------------------------------------------------------------

    def mint(
        self,
        sender: str,
        amount: int,
        kind: SwapKind = SwapKind.GIVEN_IN,
        *,
        deadline: int,
        recipient: Optional[str] = None,
        slippage: Optional[int] = None,
        user_data: bytes = b"",
        origin: Optional[str] = None,
    ) -> Tuple[int, int]:
        """
        Issue bull/bear pairs for collateral.

        GIVEN_IN: *amount* is collateral in, *slippage* the minimum pairs out.
        GIVEN_OUT: *amount* is pairs out, *slippage* the maximum collateral in.

        Returns:
            (collateral in, pairs out)
        """
        recipient = recipient or sender
        fee_rate = self._registry.fee
        with self._operation(sender, origin, deadline) as block:
            if SwapKind(kind) == SwapKind.GIVEN_IN:
                amount_in = amount
                if amount_in == 0:
                    raise ZeroAmount("Mint amount must be greater than zero")
                fee = fee_of(amount_in, fee_rate, FEE_DENOMINATOR)
                net = amount_in - fee
                amount_out = self.curve.mint_out_given_in(self.deposited, self.pair_supply, net) if net else 0
                if amount_out == 0:
                    raise ZeroAmount("Mint output rounds to zero")
                if slippage is not None and amount_out < slippage:
                    raise SlippageExceeded(f"Mint output {amount_out} below minimum {slippage}")
            else:
                amount_out = amount
                net = self.curve.mint_in_given_out(self.deposited, self.pair_supply, amount_out)
                amount_in = gross_up(net, fee_rate, FEE_DENOMINATOR)
                fee = amount_in - net
                if slippage is not None and amount_in > slippage:
                    raise SlippageExceeded(f"Mint input {amount_in} exceeds maximum {slippage}")

            self._pull(sender, TokenType.COLLATERAL, net)
            if fee:
                self._registry.transfer(
                    self.address, sender, self._registry.beneficiary,
                    self.asset_id(TokenType.COLLATERAL), fee,
                )
            self._state.deposited += net
            self._registry.mint(self.address, recipient, TokenType.BULL, amount_out)
            self._registry.mint(self.address, recipient, TokenType.BEAR, amount_out)
            self._registry.emit(
                Minted(self.address, sender, recipient, amount_in, amount_out, fee, block)
            )

        logger.debug("Minted %d pairs for %d collateral on %s", amount_out, amount_in, self.address)
        return amount_in, amount_out

    def burn(
        self,
        sender: str,
        amount: int,
        kind: SwapKind = SwapKind.GIVEN_IN,
        *,
        deadline: int,
        recipient: Optional[str] = None,
        slippage: Optional[int] = None,
        user_data: bytes = b"",
        origin: Optional[str] = None,
    ) -> Tuple[int, int]:
        """
        Redeem bull/bear pairs for collateral. The fee is taken from the
        collateral released.

        GIVEN_IN: *amount* is pairs in, *slippage* the minimum collateral out.
        GIVEN_OUT: *amount* is collateral out, *slippage* the maximum pairs in.

        Returns:
            (pairs in, collateral out)
        """
        recipient = recipient or sender
        fee_rate = self._registry.fee
        with self._operation(sender, origin, deadline) as block:
            if SwapKind(kind) == SwapKind.GIVEN_IN:
                amount_in = amount
                released = self.curve.burn_out_given_in(self.deposited, self.pair_supply, amount_in)
                fee = fee_of(released, fee_rate, FEE_DENOMINATOR)
                amount_out = released - fee
                if amount_out == 0:
                    raise ZeroAmount("Burn output rounds to zero")
                if slippage is not None and amount_out < slippage:
                    raise SlippageExceeded(f"Burn output {amount_out} below minimum {slippage}")
            else:
                amount_out = amount
                if amount_out == 0:
                    raise ZeroAmount("Burn amount must be greater than zero")
                released = gross_up(amount_out, fee_rate, FEE_DENOMINATOR)
                fee = released - amount_out
                amount_in = self.curve.burn_in_given_out(self.deposited, self.pair_supply, released)
                if slippage is not None and amount_in > slippage:
                    raise SlippageExceeded(f"Burn input {amount_in} exceeds maximum {slippage}")

            self._registry.burn(self.address, sender, TokenType.BULL, amount_in)
            self._registry.burn(self.address, sender, TokenType.BEAR, amount_in)
            self._state.deposited -= released
            self._push(recipient, TokenType.COLLATERAL, amount_out)
            if fee:
                self._push(self._registry.beneficiary, TokenType.COLLATERAL, fee)
            self._registry.emit(
                Burned(self.address, sender, recipient, amount_in, amount_out, fee, block)
            )

        logger.debug("Burned %d pairs for %d collateral on %s", amount_in, amount_out, self.address)
        return amount_in, amount_out

    # -- Secondary market -----------------------------------------------------

    def swap(
        self,
        sender: str,
        amount: int,
        token_in: TokenType,
        token_out: TokenType,
        kind: SwapKind = SwapKind.GIVEN_IN,
        *,
        deadline: int,
        recipient: Optional[str] = None,
        slippage: Optional[int] = None,
        user_data: bytes = b"",
        origin: Optional[str] = None,
    ) -> Tuple[int, int]:
        """
        Swap between collateral, bull and bear.

        GIVEN_IN: *slippage* is the minimum output. GIVEN_OUT: the maximum input.

        Returns:
            (amount in, amount out)
        """
        recipient = recipient or sender
        with self._operation(sender, origin, deadline) as block:
            state = self._state
            quote = self._quote_swap(amount, token_in, token_out, kind)
            if slippage is not None:
                if SwapKind(kind) == SwapKind.GIVEN_IN and quote.amount_out < slippage:
                    raise SlippageExceeded(
                        f"Swap output {quote.amount_out} below minimum {slippage}"
                    )
                if SwapKind(kind) == SwapKind.GIVEN_OUT and quote.amount_in > slippage:
                    raise SlippageExceeded(
                        f"Swap input {quote.amount_in} exceeds maximum {slippage}"
                    )

            self._pull(sender, quote.token_in, quote.amount_in)
            self._push(recipient, quote.token_out, quote.amount_out)

            before = state.reserves
            after = swap_engine.apply(before, quote)
            locked = liquidity_engine.lock_amount(before, after, quote, self.liquidity_supply)
            state.reserves = after
            if locked:
                self._registry.mint(self.address, self.address, TokenType.LIQUIDITY, locked)

            self._registry.emit(
                Swapped(
                    self.address, sender, recipient,
                    int(quote.token_in), int(quote.token_out),
                    quote.amount_in, quote.amount_out, quote.fee, locked, block,
                )
            )

        logger.debug(
            "Swapped %d %s for %d %s on %s (locked %d)",
            quote.amount_in, quote.token_in.name, quote.amount_out, quote.token_out.name,
            self.address, locked,
        )
        return quote.amount_in, quote.amount_out

    # -- Liquidity ------------------------------------------------------------

    def add_liquidity(
        self,
        sender: str,
        amount_collateral: int,
        max_bull: int,
        max_bear: int,
        *,
        deadline: int,
        min_liquidity: int = 0,
        recipient: Optional[str] = None,
        user_data: bytes = b"",
        origin: Optional[str] = None,
    ) -> Tuple[int, int, int, int]:
        """
        Deposit collateral, bull and bear in the pool's ratio.

        Returns:
            (liquidity minted, collateral in, bull in, bear in)
        """
        recipient = recipient or sender
        with self._operation(sender, origin, deadline) as block:
            state = self._state
            deposit = liquidity_engine.quote_add(
                state.reserves, self.liquidity_supply,
                amount_collateral, max_bull, max_bear, min_liquidity,
            )
            self._pull(sender, TokenType.COLLATERAL, deposit.collateral)
            self._pull(sender, TokenType.BULL, deposit.bull)
            self._pull(sender, TokenType.BEAR, deposit.bear)
            state.reserves.add(TokenType.COLLATERAL, deposit.collateral)
            state.reserves.add(TokenType.BULL, deposit.bull)
            state.reserves.add(TokenType.BEAR, deposit.bear)
            self._registry.mint(self.address, recipient, TokenType.LIQUIDITY, deposit.liquidity)
            self._registry.emit(
                LiquidityAdded(
                    self.address, sender, recipient, deposit.liquidity,
                    deposit.collateral, deposit.bull, deposit.bear, block,
                )
            )

        logger.debug("Added %d liquidity on %s", deposit.liquidity, self.address)
        return deposit.liquidity, deposit.collateral, deposit.bull, deposit.bear

    def remove_liquidity(
        self,
        sender: str,
        amount_liquidity: int,
        *,
        deadline: int,
        min_collateral: int = 0,
        min_bull: int = 0,
        min_bear: int = 0,
        recipient: Optional[str] = None,
        user_data: bytes = b"",
        origin: Optional[str] = None,
    ) -> Tuple[int, int, int]:
        """
        Burn liquidity for a pro-rata share of every reserve.

        Returns:
            (collateral out, bull out, bear out)
        """
        recipient = recipient or sender
        with self._operation(sender, origin, deadline) as block:
            state = self._state
            withdrawal = liquidity_engine.quote_remove(
                state.reserves, self.liquidity_supply,
                amount_liquidity, min_collateral, min_bull, min_bear,
            )
            self._registry.burn(self.address, sender, TokenType.LIQUIDITY, amount_liquidity)
            state.reserves.sub(TokenType.COLLATERAL, withdrawal.collateral)
            state.reserves.sub(TokenType.BULL, withdrawal.bull)
            state.reserves.sub(TokenType.BEAR, withdrawal.bear)
            self._push(recipient, TokenType.COLLATERAL, withdrawal.collateral)
            self._push(recipient, TokenType.BULL, withdrawal.bull)
            self._push(recipient, TokenType.BEAR, withdrawal.bear)
            self._registry.emit(
                LiquidityRemoved(
                    self.address, sender, recipient, amount_liquidity,
                    withdrawal.collateral, withdrawal.bull, withdrawal.bear, block,
                )
            )

        logger.debug("Removed %d liquidity on %s", amount_liquidity, self.address)
        return withdrawal.collateral, withdrawal.bull, withdrawal.bear

    # -- NFT settlement -------------------------------------------------------

    def _require_settlement(self, block: int, sender: str, origin: Optional[str], amount: int) -> int:
        """Shared checks; returns the accumulated unit value."""
        settlement_engine.validate_amount(self.underlying, amount)
        self._state.guard.check(block, sender, origin or sender)
        if not self.swap_enabled():
            raise SettlementDisabled(f"Settlement is disabled on {self.address}")
        return self.asset_value_accumulated()

    def sell_nft(
        self,
        sender: str,
        amount: int,
        *,
        deadline: int,
        min_price: int = 0,
        recipient: Optional[str] = None,
        user_data: bytes = b"",
        origin: Optional[str] = None,
    ) -> int:
        """
        Sell *amount* units of the underlying asset to the market at the
        accumulated oracle value. *min_price* is per unit, after royalty.
        The seller must have approved the market on the collection.

        Returns:
            collateral paid to *recipient*
        """
        recipient = recipient or sender
        with self._operation(sender, origin, deadline) as block:
            unit_value = self._require_settlement(block, sender, origin, amount)
            collection = self._collection()
            receiver, declared = collection.royalty_info(self.underlying.token_id, unit_value * amount)
            sale = settlement_engine.quote_sale(
                unit_value, amount, min_price, self.locked_collateral(),
                receiver, declared, self._registry.royalty_cap_bps,
            )
            collection.safe_transfer_from(
                self.address, sender, self.address, self.underlying.token_id, amount, user_data
            )
            self._push(recipient, TokenType.COLLATERAL, sale.proceeds)
            if sale.royalty:
                self._push(sale.royalty_receiver, TokenType.COLLATERAL, sale.royalty)
                self._registry.emit(
                    RoyaltyPaid(self.address, sale.royalty_receiver, sale.royalty, block)
                )
            self._state.settlement_balance -= sale.gross
            self._registry.emit(
                NFTSold(self.address, sender, recipient, amount, sale.gross, sale.proceeds, block)
            )

        logger.info(
            "NFTSold %d unit(s) on %s for %d (royalty %d)",
            amount, self.address, sale.proceeds, sale.royalty,
        )
        return sale.proceeds

    def buy_nft(
        self,
        sender: str,
        amount: int,
        *,
        deadline: int,
        max_price: int,
        recipient: Optional[str] = None,
        user_data: bytes = b"",
        origin: Optional[str] = None,
    ) -> int:
        """
        Buy *amount* units of the underlying asset out of the market's
        inventory. *max_price* is per unit.

        Returns:
            collateral paid by *sender*
        """
        recipient = recipient or sender
        with self._operation(sender, origin, deadline) as block:
            unit_value = self._require_settlement(block, sender, origin, amount)
            purchase = settlement_engine.quote_purchase(unit_value, amount, max_price, self.inventory())
            self._pull(sender, TokenType.COLLATERAL, purchase.cost)
            self._collection().safe_transfer_from(
                self.address, self.address, recipient, self.underlying.token_id, amount, user_data
            )
            self._state.settlement_balance += purchase.cost
            self._registry.emit(
                NFTPurchased(self.address, sender, recipient, amount, purchase.cost, block)
            )

        logger.info("NFTPurchased %d unit(s) on %s for %d", amount, self.address, purchase.cost)
        return purchase.cost

    # -- Asset receipt hooks --------------------------------------------------

    def on_asset_received(
        self,
        caller: str,
        operator: str,
        sender: str,
        token_id: int,
        amount: int,
        data: bytes = b"",
    ) -> bool:
        """
        Accept the underlying asset. *caller* is the collection delivering it.
        Direct donations are accepted and add to the inventory.
        """
        underlying = self.underlying
        if caller != underlying.contract or token_id != underlying.token_id:
            raise UnsupportedUnderlyingAsset(
                f"Market {self.address} only accepts {underlying.contract} #{underlying.token_id}"
            )
        collection = self._collection()
        if collection.asset_model != underlying.model:
            raise UnsupportedUnderlyingAsset("Collection ownership model changed")
        if underlying.model == AssetModel.SINGLE_OWNER and amount != 1:
            raise InvalidAmount("Single-owner assets are received one unit at a time")
        return True

    def on_asset_batch_received(self, caller: str, operator: str, sender: str, token_ids, amounts, data: bytes = b"") -> bool:
        raise UnsupportedUnderlyingAsset("Batch transfers are not accepted")


# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------

class MarketProxy:
    """
    Chain-directory entry for a market address.

    Attribute access resolves the registry's current implementation on
    every call.
    """

    def __init__(self, registry: "TokenRegistry", address: str) -> None:
        self._registry = registry
        self._address = address

    @property
    def address(self) -> str:
        return self._address

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._registry.get_market(self._address), name)

    def __repr__(self) -> str:
        return f"MarketProxy({self._address})"
