"""
Shared fixtures for the PiSwap test suite.

``World`` wires a chain, a registry, an NFT collection and one market with
funded accounts; tests drive it block by block.
"""

import pytest
from eth_utils import to_checksum_address

from piswap.chain import Chain
from piswap.config import PiSwapConfig
from piswap.constants import ONE
from piswap.market.types import AssetModel, SwapKind, TokenType
from piswap.tokens.nft import MultiBalanceCollection, SingleOwnerCollection
from piswap.tokens.registry import COLLATERAL_ID, TokenRegistry

OWNER = to_checksum_address("0x" + "0a" * 20)
BENEFICIARY = to_checksum_address("0x" + "0b" * 20)
ALICE = to_checksum_address("0x" + "a1" * 20)
BOB = to_checksum_address("0x" + "b2" * 20)
CAROL = to_checksum_address("0x" + "c3" * 20)
ARTIST = to_checksum_address("0x" + "d4" * 20)
NFT_ADDRESS = to_checksum_address("0x" + "e5" * 20)
TOKEN_ID = 1

START_BLOCK = 100
START_TIME = 1_700_000_000


class World:
    """A chain with one market on ``NFT_ADDRESS`` #``TOKEN_ID``."""

    def __init__(
        self,
        fee: int = 0,
        oracle_length: int = 5,
        margin: int = 1,
        model: AssetModel = AssetModel.SINGLE_OWNER,
        royalty_bps: int = 0,
        nft_units: int = 1,
    ):
        self.chain = Chain(chain_id=1, block_number=START_BLOCK, timestamp=START_TIME)
        config = PiSwapConfig()
        config.fees.fee = fee
        config.oracle.length = oracle_length
        config.settlement.margin = margin
        self.registry = TokenRegistry(self.chain, OWNER, beneficiary=BENEFICIARY, config=config)

        if model == AssetModel.SINGLE_OWNER:
            self.nft = SingleOwnerCollection(
                self.chain, NFT_ADDRESS, "Pieces",
                royalty_receiver=ARTIST if royalty_bps else None, royalty_bps=royalty_bps,
            )
            self.nft.mint(ALICE, TOKEN_ID)
        else:
            self.nft = MultiBalanceCollection(
                self.chain, NFT_ADDRESS, "Editions",
                royalty_receiver=ARTIST if royalty_bps else None, royalty_bps=royalty_bps,
            )
            self.nft.mint(ALICE, TOKEN_ID, nft_units)

        self.market_address = self.registry.create_market(NFT_ADDRESS, TOKEN_ID)

        for user in (ALICE, BOB, CAROL):
            self.chain.fund(user, 10_000 * ONE)
            self.registry.deposit(user, 1_000 * ONE)

    @property
    def market(self):
        return self.registry.get_market(self.market_address)

    @property
    def deadline(self) -> int:
        return self.chain.timestamp + 3600

    def next_block(self) -> int:
        return self.chain.mine()

    def balance(self, holder: str, kind: TokenType) -> int:
        if kind == TokenType.COLLATERAL:
            return self.registry.balance_of(holder, COLLATERAL_ID)
        return self.registry.balance_of(holder, self.market.asset_id(kind))

    def mint_pairs(self, user: str, pairs: int) -> None:
        self.market.mint(user, pairs, SwapKind.GIVEN_OUT, deadline=self.deadline)

    def seed_pool(self, collateral: int, bull: int, bear: int, provider: str = ALICE) -> int:
        """Mint the claims a provider needs and make the first deposit."""
        self.mint_pairs(provider, max(bull, bear))
        liquidity, _, _, _ = self.market.add_liquidity(
            provider, collateral, bull, bear, deadline=self.deadline
        )
        return liquidity

    def open_settlement(self, swaps: int = 5, trader: str = BOB) -> None:
        """One collateral -> bear swap per block until the oracle is full."""
        for _ in range(swaps):
            self.next_block()
            self.market.swap(
                trader, ONE // 10, TokenType.COLLATERAL, TokenType.BEAR,
                deadline=self.deadline,
            )


@pytest.fixture
def world() -> World:
    return World()


@pytest.fixture
def pool_world() -> World:
    """Pool seeded with 1.5 collateral / 200 bull / 1000 bear."""
    w = World()
    w.seed_pool(3 * ONE // 2, 200 * ONE, 1000 * ONE)
    return w


@pytest.fixture
def settlement_world() -> World:
    """Cheap asset (value 1e14) with settlement open, 25% declared royalty."""
    w = World(royalty_bps=2500)
    w.seed_pool(10 * ONE, 1000 * ONE, 10 * ONE)
    w.open_settlement()
    w.next_block()
    w.nft.set_approval_for_all(ALICE, w.market_address, True)
    return w
