"""
Test suite for PiSwap NFT settlement.

Covers:
  - Selling the underlying asset at the accumulated oracle value
  - Royalty capping and payment
  - Buying back out of the market's inventory
  - Settlement gate (oracle readiness, locked collateral margin)
  - Same-block guard for direct and originating callers
  - Multi-balance assets
"""

import pytest

from piswap.constants import ONE
from piswap.exceptions import (
    ExpiredDeadline,
    FlashloanGuardTriggered,
    InsufficientBalance,
    InsufficientLockedCollateral,
    InvalidAmount,
    SettlementDisabled,
    SlippageExceeded,
    Unauthorized,
)
from piswap.market import settlement as settlement_engine
from piswap.market.events import NFTPurchased, NFTSold, RoyaltyPaid
from piswap.market.types import AssetModel, TokenType, UnderlyingAsset

from conftest import ALICE, ARTIST, BOB, CAROL, NFT_ADDRESS, TOKEN_ID, World

SINGLE = UnderlyingAsset(NFT_ADDRESS, TOKEN_ID, AssetModel.SINGLE_OWNER)
MULTI = UnderlyingAsset(NFT_ADDRESS, TOKEN_ID, AssetModel.MULTI_BALANCE)


def _open_world(**kwargs) -> World:
    w = World(**kwargs)
    w.seed_pool(10 * ONE, 1000 * ONE, 10 * ONE)
    w.open_settlement()
    w.next_block()
    w.nft.set_approval_for_all(ALICE, w.market_address, True)
    return w


# ============================================================================
#  PURE ENGINE
# ============================================================================

class TestSettlementEngine:

    def test_validate_amount(self):
        settlement_engine.validate_amount(SINGLE, 1)
        settlement_engine.validate_amount(MULTI, 5)
        for asset, amount in ((SINGLE, 0), (SINGLE, 2), (MULTI, 0), (MULTI, -1)):
            with pytest.raises(InvalidAmount):
                settlement_engine.validate_amount(asset, amount)

    def test_royalty_capped(self):
        assert settlement_engine.cap_royalty(1000, 250) == 100
        assert settlement_engine.cap_royalty(1000, 50) == 50
        assert settlement_engine.cap_royalty(1000, 250, cap_bps=0) == 0

    def test_quote_sale(self):
        sale = settlement_engine.quote_sale(1000, 2, 0, 5000, ARTIST, 500)
        assert sale.gross == 2000
        assert sale.royalty == 200
        assert sale.proceeds == 1800
        assert sale.royalty_receiver == ARTIST

    def test_quote_sale_without_royalty(self):
        sale = settlement_engine.quote_sale(1000, 1, 0, 5000, None, 0)
        assert sale.royalty == 0
        assert sale.royalty_receiver is None
        assert sale.proceeds == 1000

    def test_quote_sale_min_price_after_royalty(self):
        settlement_engine.quote_sale(1000, 1, 900, 5000, ARTIST, 100)
        with pytest.raises(SlippageExceeded):
            settlement_engine.quote_sale(1000, 1, 901, 5000, ARTIST, 100)

    def test_quote_sale_needs_locked_collateral(self):
        settlement_engine.quote_sale(1000, 2, 0, 2000)
        with pytest.raises(InsufficientLockedCollateral):
            settlement_engine.quote_sale(1000, 2, 0, 1999)

    def test_quote_purchase(self):
        purchase = settlement_engine.quote_purchase(1000, 3, 1000, 3)
        assert purchase.cost == 3000
        with pytest.raises(SlippageExceeded):
            settlement_engine.quote_purchase(1000, 1, 999, 3)
        with pytest.raises(InvalidAmount):
            settlement_engine.quote_purchase(1000, 4, 1000, 3)


# ============================================================================
#  MARKET SETTLEMENT
# ============================================================================

class TestSellNFT:

    def test_gate_open(self, settlement_world):
        w = settlement_world
        assert w.market.swap_enabled()
        assert w.market.locked_collateral() > w.market.asset_value_accumulated() > 0

    def test_sell(self, settlement_world):
        w = settlement_world
        value = w.market.asset_value_accumulated()
        royalty = value * 1000 // 10_000
        before = w.balance(ALICE, TokenType.COLLATERAL)
        locked_before = w.market.locked_collateral()

        proceeds = w.market.sell_nft(ALICE, 1, deadline=w.deadline)

        assert proceeds == value - royalty
        assert w.balance(ALICE, TokenType.COLLATERAL) == before + proceeds
        assert w.balance(ARTIST, TokenType.COLLATERAL) == royalty
        assert w.nft.owner_of(TOKEN_ID) == w.market_address
        assert w.market.inventory() == 1
        assert w.market._state.settlement_balance == -value
        assert w.market.locked_collateral() < locked_before

    def test_sell_events(self, settlement_world):
        w = settlement_world
        proceeds = w.market.sell_nft(ALICE, 1, deadline=w.deadline)
        sold = [e for e in w.registry.events if isinstance(e, NFTSold)]
        paid = [e for e in w.registry.events if isinstance(e, RoyaltyPaid)]
        assert len(sold) == 1 and sold[0].proceeds == proceeds
        assert len(paid) == 1 and paid[0].receiver == ARTIST
        assert sold[0].to_dict()["event"] == "NFTSold"

    def test_sell_to_recipient(self, settlement_world):
        w = settlement_world
        before = w.balance(CAROL, TokenType.COLLATERAL)
        proceeds = w.market.sell_nft(ALICE, 1, deadline=w.deadline, recipient=CAROL)
        assert w.balance(CAROL, TokenType.COLLATERAL) == before + proceeds

    def test_sell_without_royalty(self):
        w = _open_world()
        value = w.market.asset_value_accumulated()
        assert w.market.sell_nft(ALICE, 1, deadline=w.deadline) == value
        assert not [e for e in w.registry.events if isinstance(e, RoyaltyPaid)]

    def test_sell_min_price(self, settlement_world):
        w = settlement_world
        value = w.market.asset_value_accumulated()
        with pytest.raises(SlippageExceeded):
            w.market.sell_nft(ALICE, 1, deadline=w.deadline, min_price=value)
        assert w.nft.owner_of(TOKEN_ID) == ALICE

    def test_sell_two_single_owner_units(self, settlement_world):
        w = settlement_world
        with pytest.raises(InvalidAmount):
            w.market.sell_nft(ALICE, 2, deadline=w.deadline)

    def test_sell_without_collection_approval(self, settlement_world):
        w = settlement_world
        w.nft.set_approval_for_all(ALICE, w.market_address, False)
        before = w.balance(ALICE, TokenType.COLLATERAL)
        with pytest.raises(Unauthorized):
            w.market.sell_nft(ALICE, 1, deadline=w.deadline)
        assert w.balance(ALICE, TokenType.COLLATERAL) == before
        assert w.market._state.settlement_balance == 0

    def test_sell_not_owned(self, settlement_world):
        w = settlement_world
        w.nft.set_approval_for_all(BOB, w.market_address, True)
        w.next_block()
        with pytest.raises(InsufficientBalance):
            w.market.sell_nft(BOB, 1, deadline=w.deadline)
        assert w.nft.owner_of(TOKEN_ID) == ALICE

    def test_sell_expired(self, settlement_world):
        w = settlement_world
        with pytest.raises(ExpiredDeadline):
            w.market.sell_nft(ALICE, 1, deadline=w.chain.timestamp - 1)


class TestBuyNFT:

    def test_buy_back(self, settlement_world):
        w = settlement_world
        gross = w.market.asset_value_accumulated()
        w.market.sell_nft(ALICE, 1, deadline=w.deadline)
        w.next_block()

        price = w.market.asset_value_accumulated()
        before = w.balance(BOB, TokenType.COLLATERAL)
        cost = w.market.buy_nft(BOB, 1, deadline=w.deadline, max_price=price)

        assert cost == price
        assert w.balance(BOB, TokenType.COLLATERAL) == before - cost
        assert w.nft.owner_of(TOKEN_ID) == BOB
        assert w.market.inventory() == 0
        assert w.market._state.settlement_balance == cost - gross
        purchased = [e for e in w.registry.events if isinstance(e, NFTPurchased)]
        assert purchased[-1].cost == cost

    def test_buy_to_recipient(self, settlement_world):
        w = settlement_world
        w.market.sell_nft(ALICE, 1, deadline=w.deadline)
        w.next_block()
        price = w.market.asset_value_accumulated()
        w.market.buy_nft(BOB, 1, deadline=w.deadline, max_price=price, recipient=CAROL)
        assert w.nft.owner_of(TOKEN_ID) == CAROL

    def test_buy_max_price(self, settlement_world):
        w = settlement_world
        w.market.sell_nft(ALICE, 1, deadline=w.deadline)
        w.next_block()
        price = w.market.asset_value_accumulated()
        with pytest.raises(SlippageExceeded):
            w.market.buy_nft(BOB, 1, deadline=w.deadline, max_price=price - 1)
        assert w.market.inventory() == 1

    def test_buy_empty_inventory(self, settlement_world):
        w = settlement_world
        with pytest.raises(InvalidAmount):
            w.market.buy_nft(BOB, 1, deadline=w.deadline, max_price=10 * ONE)

    def test_buy_pays_no_royalty(self, settlement_world):
        w = settlement_world
        w.market.sell_nft(ALICE, 1, deadline=w.deadline)
        artist = w.balance(ARTIST, TokenType.COLLATERAL)
        w.next_block()
        w.market.buy_nft(BOB, 1, deadline=w.deadline, max_price=ONE)
        assert w.balance(ARTIST, TokenType.COLLATERAL) == artist


class TestSettlementGate:

    def test_disabled_without_liquidity(self, world):
        world.nft.set_approval_for_all(ALICE, world.market_address, True)
        assert not world.market.swap_enabled()
        with pytest.raises(SettlementDisabled):
            world.market.sell_nft(ALICE, 1, deadline=world.deadline)

    def test_disabled_until_window_full(self):
        w = World()
        w.seed_pool(10 * ONE, 1000 * ONE, 10 * ONE)
        w.open_settlement(swaps=4)
        w.next_block()
        w.nft.set_approval_for_all(ALICE, w.market_address, True)
        with pytest.raises(SettlementDisabled):
            w.market.sell_nft(ALICE, 1, deadline=w.deadline)
        assert w.nft.owner_of(TOKEN_ID) == ALICE

    def test_disabled_by_margin(self):
        w = _open_world(margin=1_000)
        assert not w.market.swap_enabled()
        with pytest.raises(SettlementDisabled):
            w.market.sell_nft(ALICE, 1, deadline=w.deadline)

    def test_sale_larger_than_locked_collateral(self):
        w = _open_world(model=AssetModel.MULTI_BALANCE, nft_units=200)
        value = w.market.asset_value_accumulated()
        assert 200 * value > w.market.locked_collateral()
        with pytest.raises(InsufficientLockedCollateral):
            w.market.sell_nft(ALICE, 200, deadline=w.deadline)
        assert w.nft.balance_of(ALICE, TOKEN_ID) == 200


class TestGuardedSettlement:

    def test_same_block_trade_then_sell(self, settlement_world):
        w = settlement_world
        w.market.mint(ALICE, ONE, deadline=w.deadline)
        with pytest.raises(FlashloanGuardTriggered):
            w.market.sell_nft(ALICE, 1, deadline=w.deadline)
        w.next_block()
        assert w.market.sell_nft(ALICE, 1, deadline=w.deadline) > 0

    def test_origin_is_guarded(self, settlement_world):
        w = settlement_world
        w.market.mint(BOB, ONE, deadline=w.deadline, origin=ALICE)
        with pytest.raises(FlashloanGuardTriggered):
            w.market.sell_nft(ALICE, 1, deadline=w.deadline)

    def test_sell_then_buy_same_block(self, settlement_world):
        w = settlement_world
        w.market.sell_nft(ALICE, 1, deadline=w.deadline)
        with pytest.raises(FlashloanGuardTriggered):
            w.market.buy_nft(ALICE, 1, deadline=w.deadline, max_price=ONE)

    def test_other_callers_unaffected(self, settlement_world):
        w = settlement_world
        w.market.mint(CAROL, ONE, deadline=w.deadline)
        assert w.market.sell_nft(ALICE, 1, deadline=w.deadline) > 0


class TestMultiBalanceSettlement:

    def test_sell_and_buy_units(self):
        w = _open_world(model=AssetModel.MULTI_BALANCE, nft_units=10)
        value = w.market.asset_value_accumulated()
        proceeds = w.market.sell_nft(ALICE, 2, deadline=w.deadline)
        assert proceeds == 2 * value
        assert w.market.inventory() == 2
        assert w.nft.balance_of(ALICE, TOKEN_ID) == 8

        w.next_block()
        price = w.market.asset_value_accumulated()
        cost = w.market.buy_nft(BOB, 1, deadline=w.deadline, max_price=price)
        assert cost == price
        assert w.nft.balance_of(BOB, TOKEN_ID) == 1
        assert w.market.inventory() == 1
