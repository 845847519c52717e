"""
Test suite for the PiSwap secondary market.

Covers:
  - Pricing reserves (virtual collateral) and pair validation
  - Given-in / given-out quotes against execution
  - Fee retention in the pool
  - Protocol-owned liquidity minted on collateral trades
  - Reverts leave every balance and reserve untouched
"""

import pytest

from piswap.constants import ONE
from piswap.exceptions import (
    DisallowedAssetSwap,
    ExpiredDeadline,
    InsufficientBalance,
    MaxReserveExceeded,
    ReserveUninitialized,
    SlippageExceeded,
    ZeroAmount,
)
from piswap.market import swap as swap_engine
from piswap.market.events import Swapped
from piswap.market.types import Reserves, SwapKind, TokenType

from conftest import ALICE, BOB, CAROL, World


def _pool():
    return Reserves(collateral=3 * ONE // 2, bull=200 * ONE, bear=1000 * ONE)


# ============================================================================
#  PURE ENGINE
# ============================================================================

class TestSwapEngine:

    def test_virtual_collateral(self):
        pool = _pool()
        assert swap_engine.virtual_collateral(pool, TokenType.BULL) == 5 * ONE // 4
        assert swap_engine.virtual_collateral(pool, TokenType.BEAR) == ONE // 4

    def test_pricing_reserves_collateral_in(self):
        r_in, r_out = swap_engine.pricing_reserves(_pool(), TokenType.COLLATERAL, TokenType.BULL)
        assert (r_in, r_out) == (5 * ONE // 4, 200 * ONE)

    def test_pricing_reserves_collateral_out(self):
        r_in, r_out = swap_engine.pricing_reserves(_pool(), TokenType.BEAR, TokenType.COLLATERAL)
        assert (r_in, r_out) == (1000 * ONE, ONE // 4)

    def test_pricing_reserves_claims(self):
        r_in, r_out = swap_engine.pricing_reserves(_pool(), TokenType.BULL, TokenType.BEAR)
        assert (r_in, r_out) == (200 * ONE, 1000 * ONE)

    @pytest.mark.parametrize("token_in,token_out", [
        (TokenType.BULL, TokenType.BULL),
        (TokenType.COLLATERAL, TokenType.COLLATERAL),
        (TokenType.LIQUIDITY, TokenType.BULL),
        (TokenType.BEAR, TokenType.LIQUIDITY),
    ])
    def test_disallowed_pairs(self, token_in, token_out):
        with pytest.raises(DisallowedAssetSwap):
            swap_engine.pricing_reserves(_pool(), token_in, token_out)

    def test_uninitialized_pool(self):
        with pytest.raises(ReserveUninitialized):
            swap_engine.pricing_reserves(Reserves(), TokenType.BULL, TokenType.BEAR)
        with pytest.raises(ReserveUninitialized):
            swap_engine.pricing_reserves(
                Reserves(collateral=ONE, bull=ONE, bear=0), TokenType.BULL, TokenType.BEAR
            )

    def test_out_given_in_claims(self):
        out = swap_engine.out_given_in(200 * ONE, 1000 * ONE, 10 * ONE)
        assert 45_45 * ONE // 100 < out < 45_46 * ONE // 100

    def test_in_given_out_covers_output(self):
        r_in, r_out = 200 * ONE, 1000 * ONE
        needed = swap_engine.in_given_out(r_in, r_out, 50 * ONE)
        assert swap_engine.out_given_in(r_in, r_out, needed) >= 50 * ONE

    def test_in_given_out_whole_reserve(self):
        with pytest.raises(MaxReserveExceeded):
            swap_engine.in_given_out(200 * ONE, 1000 * ONE, 1000 * ONE)

    def test_quote_fee_given_in(self):
        q = swap_engine.quote(
            _pool(), 10 * ONE, TokenType.BULL, TokenType.BEAR, SwapKind.GIVEN_IN, 100, 10_000
        )
        assert q.amount_in == 10 * ONE
        assert q.fee == ONE // 10
        assert q.amount_out == swap_engine.out_given_in(200 * ONE, 1000 * ONE, 10 * ONE - ONE // 10)

    def test_quote_fee_given_out(self):
        q = swap_engine.quote(
            _pool(), 40 * ONE, TokenType.BULL, TokenType.BEAR, SwapKind.GIVEN_OUT, 100, 10_000
        )
        net = swap_engine.in_given_out(200 * ONE, 1000 * ONE, 40 * ONE)
        assert q.amount_out == 40 * ONE
        assert q.amount_in - q.fee == net
        assert q.fee > 0

    def test_quote_zero(self):
        with pytest.raises(ZeroAmount):
            swap_engine.quote(_pool(), 0, TokenType.BULL, TokenType.BEAR, SwapKind.GIVEN_IN, 0, 10_000)

    def test_quote_output_rounds_to_zero(self):
        with pytest.raises(ZeroAmount):
            swap_engine.quote(_pool(), 1, TokenType.BEAR, TokenType.COLLATERAL, SwapKind.GIVEN_IN, 0, 10_000)

    def test_apply_keeps_gross_input(self):
        pool = _pool()
        q = swap_engine.quote(pool, 10 * ONE, TokenType.BULL, TokenType.BEAR, SwapKind.GIVEN_IN, 100, 10_000)
        after = swap_engine.apply(pool, q)
        assert after.bull == pool.bull + 10 * ONE
        assert after.bear == pool.bear - q.amount_out
        assert pool.bull == 200 * ONE

    def test_constant_product_never_decreases(self):
        pool = _pool()
        for amount in (ONE, 10 * ONE, 150 * ONE):
            q = swap_engine.quote(pool, amount, TokenType.BULL, TokenType.BEAR, SwapKind.GIVEN_IN, 0, 10_000)
            after = swap_engine.apply(pool, q)
            assert after.bull * after.bear >= pool.bull * pool.bear


# ============================================================================
#  MARKET SWAPS
# ============================================================================

class TestMarketSwap:

    def test_liquidity_has_no_pooled_reserve(self, pool_world):
        with pytest.raises(DisallowedAssetSwap):
            pool_world.market.get_reserve(TokenType.LIQUIDITY)
        assert pool_world.market.get_reserve(TokenType.BEAR) == 1000 * ONE

    def test_swap_on_empty_pool(self, world):
        world.mint_pairs(ALICE, 10 * ONE)
        with pytest.raises(ReserveUninitialized):
            world.market.swap(ALICE, ONE, TokenType.BULL, TokenType.BEAR, deadline=world.deadline)

    def test_collateral_for_bull(self, pool_world):
        w = pool_world
        quoted = w.market.swap_out_given_in(ONE // 10, TokenType.COLLATERAL, TokenType.BULL)
        amount_in, amount_out = w.market.swap(
            BOB, ONE // 10, TokenType.COLLATERAL, TokenType.BULL, deadline=w.deadline
        )
        assert amount_in == ONE // 10
        assert amount_out == quoted
        assert w.balance(BOB, TokenType.BULL) == quoted
        assert w.market.reserves.collateral == 3 * ONE // 2 + ONE // 10
        assert w.market.reserves.bull == 200 * ONE - quoted

    def test_bull_for_bear(self, pool_world):
        w = pool_world
        before = w.market.reserves
        amount_in, amount_out = w.market.swap(
            ALICE, 10 * ONE, TokenType.BULL, TokenType.BEAR, deadline=w.deadline
        )
        assert amount_in == 10 * ONE
        assert 45_45 * ONE // 100 < amount_out < 45_46 * ONE // 100
        after = w.market.reserves
        assert after.bull * after.bear >= before.bull * before.bear
        assert after.collateral == before.collateral

    def test_bull_for_bear_locks_nothing(self, pool_world):
        w = pool_world
        supply = w.market.liquidity_supply
        w.market.swap(ALICE, 10 * ONE, TokenType.BULL, TokenType.BEAR, deadline=w.deadline)
        assert w.market.liquidity_supply == supply
        swapped = [e for e in w.registry.events if isinstance(e, Swapped)][-1]
        assert swapped.locked_liquidity == 0

    def test_collateral_swap_locks_market_owned_liquidity(self, pool_world):
        w = pool_world
        supply = w.market.liquidity_supply
        w.market.swap(BOB, ONE // 10, TokenType.COLLATERAL, TokenType.BULL, deadline=w.deadline)
        owned = w.balance(w.market_address, TokenType.LIQUIDITY)
        assert owned > 0
        assert w.market.liquidity_supply == supply + owned
        swapped = [e for e in w.registry.events if isinstance(e, Swapped)][-1]
        assert swapped.locked_liquidity == owned
        assert w.market.locked_collateral() > 0

    def test_given_out(self, pool_world):
        w = pool_world
        quoted_in = w.market.swap_in_given_out(50 * ONE, TokenType.BULL, TokenType.BEAR)
        amount_in, amount_out = w.market.swap(
            ALICE, 50 * ONE, TokenType.BULL, TokenType.BEAR, SwapKind.GIVEN_OUT, deadline=w.deadline
        )
        assert amount_out == 50 * ONE
        assert amount_in == quoted_in

    def test_given_out_whole_reserve(self, pool_world):
        w = pool_world
        with pytest.raises(MaxReserveExceeded):
            w.market.swap(
                BOB, 200 * ONE, TokenType.COLLATERAL, TokenType.BULL, SwapKind.GIVEN_OUT,
                deadline=w.deadline,
            )

    def test_fee_stays_in_pool(self):
        w = World(fee=100)
        w.seed_pool(3 * ONE // 2, 200 * ONE, 1000 * ONE)
        beneficiary_before = w.balance(w.registry.beneficiary, TokenType.COLLATERAL)
        w.market.swap(ALICE, 10 * ONE, TokenType.BULL, TokenType.BEAR, deadline=w.deadline)
        assert w.market.reserves.bull == 210 * ONE
        assert w.balance(w.registry.beneficiary, TokenType.COLLATERAL) == beneficiary_before

    def test_recipient(self, pool_world):
        w = pool_world
        _, out = w.market.swap(
            ALICE, 10 * ONE, TokenType.BULL, TokenType.BEAR, deadline=w.deadline, recipient=BOB
        )
        assert w.balance(BOB, TokenType.BEAR) == out

    def test_slippage_given_in(self, pool_world):
        w = pool_world
        quoted = w.market.swap_out_given_in(10 * ONE, TokenType.BULL, TokenType.BEAR)
        with pytest.raises(SlippageExceeded):
            w.market.swap(
                ALICE, 10 * ONE, TokenType.BULL, TokenType.BEAR,
                deadline=w.deadline, slippage=quoted + 1,
            )

    def test_slippage_given_out(self, pool_world):
        w = pool_world
        quoted = w.market.swap_in_given_out(50 * ONE, TokenType.BULL, TokenType.BEAR)
        with pytest.raises(SlippageExceeded):
            w.market.swap(
                ALICE, 50 * ONE, TokenType.BULL, TokenType.BEAR, SwapKind.GIVEN_OUT,
                deadline=w.deadline, slippage=quoted - 1,
            )

    def test_liquidity_swap_rejected(self, pool_world):
        w = pool_world
        with pytest.raises(DisallowedAssetSwap):
            w.market.swap(ALICE, ONE, TokenType.LIQUIDITY, TokenType.BULL, deadline=w.deadline)

    def test_expired_deadline(self, pool_world):
        w = pool_world
        with pytest.raises(ExpiredDeadline):
            w.market.swap(
                ALICE, ONE, TokenType.BULL, TokenType.BEAR, deadline=w.chain.timestamp - 1
            )

    def test_failed_swap_reverts_everything(self, pool_world):
        w = pool_world
        reserves = w.market.reserves
        events = len(w.registry.events)
        with pytest.raises(InsufficientBalance):
            w.market.swap(CAROL, ONE, TokenType.BULL, TokenType.BEAR, deadline=w.deadline)
        assert w.market.reserves == reserves
        assert len(w.registry.events) == events
        assert w.balance(CAROL, TokenType.BEAR) == 0

    def test_failed_swap_does_not_sample_oracle(self, pool_world):
        w = pool_world
        w.next_block()
        count = w.market.oracle_length()
        with pytest.raises(InsufficientBalance):
            w.market.swap(CAROL, ONE, TokenType.BULL, TokenType.BEAR, deadline=w.deadline)
        assert w.market.oracle_length() == count


