"""
PiSwap Token Registry

Multi-asset ledger and market factory shared by every market:

    - balance_of(holder, asset_id) / total_supply(asset_id)
    - transfer(caller, sender, recipient, asset_id, amount)
    - mint / burn of market claims (registered markets only)
    - deposit / withdraw: wrap native currency into the shared collateral id
    - create_market(nft_contract, token_id) with deterministic addresses
    - fee, beneficiary and oracle window administration (owner only)
    - two-phase ownership transfer
    - upgrade_to(implementation): markets resolve their logic class here
      on every call, so an upgrade applies to all markets at once

Asset ids: collateral is the shared id 0; every other claim id is
keccak(chain_id || market || kind) so ids never collide across chains or
markets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, List, Optional, Tuple, Type

from eth_utils import keccak, to_canonical_address, to_checksum_address

from ..chain import Chain
from ..config import PiSwapConfig
from ..constants import FEE_DENOMINATOR
from ..exceptions import (
    ConfigurationError,
    InsufficientBalance,
    InvalidAmount,
    MarketAlreadyExists,
    SelfReferential,
    Unauthorized,
    UnsupportedUnderlyingAsset,
    ZeroAmount,
)
from ..logger import get_logger
from ..market.market import Market, MarketProxy, MarketState
from ..market.oracle import PriceOracle
from ..market.types import AssetModel, TokenType, UnderlyingAsset

logger = get_logger(__name__)

COLLATERAL_ID = 0
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TransferSingle:
    """Emitted on every ledger movement, including mint and burn."""
    operator: str
    sender: str
    recipient: str
    asset_id: int
    amount: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "TransferSingle",
            "operator": self.operator,
            "from": self.sender,
            "to": self.recipient,
            "id": hex(self.asset_id),
            "amount": str(self.amount),
            "block": self.block,
        }


@dataclass(frozen=True)
class Deposit:
    sender: str
    recipient: str
    amount: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Deposit",
            "from": self.sender,
            "to": self.recipient,
            "amount": str(self.amount),
            "block": self.block,
        }


@dataclass(frozen=True)
class Withdrawal:
    sender: str
    recipient: str
    amount: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Withdrawal",
            "from": self.sender,
            "to": self.recipient,
            "amount": str(self.amount),
            "block": self.block,
        }


@dataclass(frozen=True)
class MarketCreated:
    market: str
    nft_contract: str
    token_id: int
    model: AssetModel
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "MarketCreated",
            "market": self.market,
            "nftContract": self.nft_contract,
            "tokenId": self.token_id,
            "model": self.model.name,
            "block": self.block,
        }


@dataclass(frozen=True)
class FeeUpdated:
    fee: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "FeeUpdated", "fee": self.fee, "block": self.block}


@dataclass(frozen=True)
class BeneficiaryUpdated:
    beneficiary: str
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "BeneficiaryUpdated", "beneficiary": self.beneficiary, "block": self.block}


@dataclass(frozen=True)
class OracleLengthUpdated:
    length: int
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "OracleLengthUpdated", "length": self.length, "block": self.block}


@dataclass(frozen=True)
class OwnershipProposed:
    owner: str
    pending_owner: str
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "OwnershipProposed",
            "owner": self.owner,
            "pendingOwner": self.pending_owner,
            "block": self.block,
        }


@dataclass(frozen=True)
class OwnershipTransferred:
    previous_owner: str
    new_owner: str
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "OwnershipTransferred",
            "previousOwner": self.previous_owner,
            "newOwner": self.new_owner,
            "block": self.block,
        }


@dataclass(frozen=True)
class Upgraded:
    implementation: str
    block: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "Upgraded", "implementation": self.implementation, "block": self.block}


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

@dataclass
class _LedgerState:
    balances: Dict[Tuple[str, int], int] = field(default_factory=dict)
    supply: Dict[int, int] = field(default_factory=dict)
    approvals: Dict[Tuple[str, str], bool] = field(default_factory=dict)


class TokenRegistry:
    """
    Ledger and factory for PiSwap markets.

    Every state-changing method takes the acting address as *caller* (or
    *sender*) explicitly; the registry checks it against owner and market
    permissions.
    """

    def __init__(
        self,
        chain: Chain,
        owner: str,
        beneficiary: Optional[str] = None,
        config: Optional[PiSwapConfig] = None,
        address: Optional[str] = None,
    ):
        """
        Args:
            chain: Host chain the registry and its markets live on
            owner: Administrator address
            beneficiary: Receiver of curve fees (defaults to *owner*)
            config: Protocol parameters (defaults to built-in constants)
            address: Registry address (derived from *owner* when omitted)
        """
        self.config = config or PiSwapConfig()
        self.config.validate()
        if self.config.node.chain_id != chain.chain_id:
            raise ConfigurationError(
                f"Config chain_id {self.config.node.chain_id} does not match "
                f"chain {chain.chain_id}"
            )

        self.chain = chain
        if address is None:
            address = keccak(b"piswap.registry" + to_canonical_address(owner))[-20:]
        self.address = chain.register(to_checksum_address(address), self)

        self._ledger = _LedgerState()
        self._markets: Dict[str, MarketState] = {}
        self._market_by_asset: Dict[Tuple[str, int], str] = {}
        self._events: List[Any] = []

        self._owner = owner
        self._pending_owner: Optional[str] = None
        self._beneficiary = beneficiary or owner
        self._fee = self.config.fees.fee
        self._oracle_length = self.config.oracle.length
        self._implementation: Type[Market] = Market

        logger.info(
            f"Registry deployed at {self.address} on chain {chain.chain_id}, "
            f"owner={owner}, fee={self._fee}"
        )

    # ── Journaled writes (atomic execution) ───────────────────────────

    def _assign(self, name: str, value: Any) -> None:
        self.chain.journal(partial(setattr, self, name, getattr(self, name)))
        setattr(self, name, value)

    def _set_supply(self, asset_id: int, value: int) -> None:
        self.chain.journal_key(self._ledger.supply, asset_id)
        self._ledger.supply[asset_id] = value

    def _truncate_events(self, length: int) -> None:
        del self._events[length:]

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def pending_owner(self) -> Optional[str]:
        return self._pending_owner

    @property
    def beneficiary(self) -> str:
        return self._beneficiary

    @property
    def fee(self) -> int:
        return self._fee

    @property
    def oracle_length(self) -> int:
        return self._oracle_length

    @property
    def settlement_margin(self) -> int:
        return self.config.settlement.margin

    @property
    def royalty_cap_bps(self) -> int:
        return self.config.settlement.royalty_cap_bps

    @property
    def implementation(self) -> Type[Market]:
        return self._implementation

    @property
    def events(self) -> List[Any]:
        return list(self._events)

    def emit(self, event: Any) -> None:
        self.chain.journal(partial(self._truncate_events, len(self._events)))
        self._events.append(event)

    def balance_of(self, holder: str, asset_id: int) -> int:
        return self._ledger.balances.get((holder, asset_id), 0)

    def total_supply(self, asset_id: int) -> int:
        return self._ledger.supply.get(asset_id, 0)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self._ledger.approvals.get((owner, operator), False)

    def asset_id(self, market: str, kind: TokenType) -> int:
        """Ledger id of *kind* for *market*. Collateral is shared."""
        if kind == TokenType.COLLATERAL:
            return COLLATERAL_ID
        payload = (
            self.chain.chain_id.to_bytes(32, "big")
            + to_canonical_address(market)
            + bytes([int(kind)])
        )
        return int.from_bytes(keccak(payload), "big")

    def is_market(self, address: str) -> bool:
        return address in self._markets

    def markets(self, nft_contract: str, token_id: int) -> Optional[str]:
        """Market address for an asset, or None."""
        return self._market_by_asset.get((to_checksum_address(nft_contract), token_id))

    @property
    def all_markets(self) -> List[str]:
        return list(self._markets)

    def get_market(self, address: str) -> Market:
        """Market logic bound to its state, using the current implementation."""
        state = self._markets.get(address)
        if state is None:
            raise UnsupportedUnderlyingAsset(f"No market at {address}")
        return self._implementation(state, self)

    # ── Ledger movements ──────────────────────────────────────────────

    def _credit(self, holder: str, asset_id: int, amount: int) -> None:
        key = (holder, asset_id)
        self.chain.journal_key(self._ledger.balances, key)
        self._ledger.balances[key] = self._ledger.balances.get(key, 0) + amount

    def _debit(self, holder: str, asset_id: int, amount: int) -> None:
        key = (holder, asset_id)
        balance = self._ledger.balances.get(key, 0)
        if balance < amount:
            raise InsufficientBalance(
                f"{holder} holds {balance} of asset {asset_id:#x}, {amount} required"
            )
        self.chain.journal_key(self._ledger.balances, key)
        self._ledger.balances[key] = balance - amount

    def _require_market(self, caller: str) -> None:
        if caller not in self._markets:
            raise Unauthorized(f"{caller} is not a registered market")

    def transfer(self, caller: str, sender: str, recipient: str, asset_id: int, amount: int) -> None:
        """
        Move *amount* of *asset_id* from *sender* to *recipient*.

        Allowed for the sender itself, an approved operator, or a market.
        """
        if caller != sender and caller not in self._markets and not self.is_approved_for_all(sender, caller):
            raise Unauthorized(f"{caller} may not move funds of {sender}")
        if amount == 0:
            return
        self._debit(sender, asset_id, amount)
        self._credit(recipient, asset_id, amount)
        self.emit(
            TransferSingle(caller, sender, recipient, asset_id, amount, self.chain.block_number)
        )
        logger.debug(f"Transfer {amount} of {asset_id:#x}: {sender} -> {recipient}")

    def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        self.chain.journal_key(self._ledger.approvals, (owner, operator))
        self._ledger.approvals[(owner, operator)] = approved

    def mint(self, caller: str, account: str, kind: TokenType, amount: int) -> int:
        """Issue a claim of the calling market. Returns the asset id."""
        self._require_market(caller)
        if kind == TokenType.COLLATERAL:
            raise Unauthorized("Collateral is only issued through deposit")
        asset_id = self.asset_id(caller, kind)
        self._credit(account, asset_id, amount)
        self._set_supply(asset_id, self.total_supply(asset_id) + amount)
        self.emit(
            TransferSingle(caller, ZERO_ADDRESS, account, asset_id, amount, self.chain.block_number)
        )
        return asset_id

    def burn(self, caller: str, account: str, kind: TokenType, amount: int) -> int:
        """Destroy a claim of the calling market. Returns the asset id."""
        self._require_market(caller)
        if kind == TokenType.COLLATERAL:
            raise Unauthorized("Collateral is only redeemed through withdraw")
        asset_id = self.asset_id(caller, kind)
        self._debit(account, asset_id, amount)
        self._set_supply(asset_id, self.total_supply(asset_id) - amount)
        self.emit(
            TransferSingle(caller, account, ZERO_ADDRESS, asset_id, amount, self.chain.block_number)
        )
        return asset_id

    # ── Native collateral ─────────────────────────────────────────────

    def deposit(self, sender: str, amount: int, recipient: Optional[str] = None) -> None:
        """Wrap *amount* native currency of *sender* into collateral."""
        if amount == 0:
            raise ZeroAmount("Deposit amount must be greater than zero")
        recipient = recipient or sender
        with self.chain.atomic():
            self.chain.transfer_native(sender, self.address, amount)
            self._credit(recipient, COLLATERAL_ID, amount)
            self._set_supply(COLLATERAL_ID, self.total_supply(COLLATERAL_ID) + amount)
            block = self.chain.block_number
            self.emit(TransferSingle(sender, ZERO_ADDRESS, recipient, COLLATERAL_ID, amount, block))
            self.emit(Deposit(sender, recipient, amount, block))

    def withdraw(self, sender: str, amount: int, recipient: Optional[str] = None) -> None:
        """Unwrap *amount* collateral of *sender* into native currency."""
        if amount == 0:
            raise ZeroAmount("Withdraw amount must be greater than zero")
        recipient = recipient or sender
        with self.chain.atomic():
            self._debit(sender, COLLATERAL_ID, amount)
            self._set_supply(COLLATERAL_ID, self.total_supply(COLLATERAL_ID) - amount)
            self.chain.transfer_native(self.address, recipient, amount)
            block = self.chain.block_number
            self.emit(TransferSingle(sender, sender, ZERO_ADDRESS, COLLATERAL_ID, amount, block))
            self.emit(Withdrawal(sender, recipient, amount, block))

    # ── Market factory ────────────────────────────────────────────────

    def market_address(self, nft_contract: str, token_id: int) -> str:
        """Deterministic market address: keccak(0xff || registry || salt)[-20:]."""
        salt = keccak(to_canonical_address(nft_contract) + token_id.to_bytes(32, "big"))
        digest = keccak(b"\xff" + to_canonical_address(self.address) + salt)
        return to_checksum_address(digest[-20:])

    def create_market(self, nft_contract: str, token_id: int) -> str:
        """
        Create the market for (*nft_contract*, *token_id*).

        Raises:
            SelfReferential: the contract is this registry or a market
            UnsupportedUnderlyingAsset: the contract is not a known collection
            MarketAlreadyExists: the asset already has a market
        """
        nft_contract = to_checksum_address(nft_contract)
        if nft_contract == self.address or nft_contract in self._markets:
            raise SelfReferential("Markets cannot be created on the registry or a market")
        if token_id < 0 or token_id.bit_length() > 256:
            raise InvalidAmount(f"Invalid token id {token_id}")

        collection = self.chain.lookup(nft_contract)
        model = getattr(collection, "asset_model", None)
        if model not in (AssetModel.SINGLE_OWNER, AssetModel.MULTI_BALANCE):
            raise UnsupportedUnderlyingAsset(f"{nft_contract} is not a supported collection")

        key = (nft_contract, token_id)
        if key in self._market_by_asset:
            raise MarketAlreadyExists(
                f"Market for {nft_contract} #{token_id} exists at {self._market_by_asset[key]}"
            )

        address = self.market_address(nft_contract, token_id)
        with self.chain.atomic():
            self.chain.register(address, MarketProxy(self, address))
            self.chain.journal_key(self._markets, address)
            self._markets[address] = MarketState(
                address=address,
                underlying=UnderlyingAsset(nft_contract, token_id, model),
                max_supply=self.config.curve.max_supply,
                curve_offset=self.config.curve.offset,
                oracle=PriceOracle(self.config.oracle.capacity),
                created_block=self.chain.block_number,
            )
            self.chain.journal_key(self._market_by_asset, key)
            self._market_by_asset[key] = address
            self.emit(
                MarketCreated(address, nft_contract, token_id, model, self.chain.block_number)
            )

        logger.info(f"MarketCreated {address} for {nft_contract} #{token_id} ({model.name})")
        return address

    # ── Administration ────────────────────────────────────────────────

    def _require_owner(self, caller: str) -> None:
        if caller != self._owner:
            raise Unauthorized(f"{caller} is not the registry owner")

    def set_fee(self, caller: str, fee: int) -> None:
        self._require_owner(caller)
        if not 0 <= fee <= self.config.fees.max_fee:
            raise InvalidAmount(
                f"Fee {fee} outside 0..{self.config.fees.max_fee} of {FEE_DENOMINATOR}"
            )
        self._assign("_fee", fee)
        self.emit(FeeUpdated(fee, self.chain.block_number))
        logger.info(f"Fee set to {fee} bps")

    def set_beneficiary(self, caller: str, beneficiary: str) -> None:
        self._require_owner(caller)
        self._assign("_beneficiary", beneficiary)
        self.emit(BeneficiaryUpdated(beneficiary, self.chain.block_number))
        logger.info(f"Beneficiary set to {beneficiary}")

    def set_oracle_length(self, caller: str, length: int) -> None:
        self._require_owner(caller)
        oracle = self.config.oracle
        if not oracle.min_length <= length <= oracle.capacity:
            raise InvalidAmount(
                f"Oracle length {length} outside {oracle.min_length}..{oracle.capacity}"
            )
        self._assign("_oracle_length", length)
        self.emit(OracleLengthUpdated(length, self.chain.block_number))
        logger.info(f"Oracle length set to {length}")

    def propose_owner(self, caller: str, new_owner: str) -> None:
        self._require_owner(caller)
        self._assign("_pending_owner", new_owner)
        self.emit(OwnershipProposed(self._owner, new_owner, self.chain.block_number))

    def claim_ownership(self, caller: str) -> None:
        if self._pending_owner is None or caller != self._pending_owner:
            raise Unauthorized(f"{caller} is not the pending owner")
        previous = self._owner
        self._assign("_owner", caller)
        self._assign("_pending_owner", None)
        self.emit(OwnershipTransferred(previous, caller, self.chain.block_number))
        logger.info(f"Ownership transferred from {previous} to {caller}")

    def upgrade_to(self, caller: str, implementation: Type[Market]) -> None:
        """Point every market at a new logic class."""
        self._require_owner(caller)
        if not (isinstance(implementation, type) and issubclass(implementation, Market)):
            raise ConfigurationError(f"{implementation!r} is not a Market implementation")
        self._assign("_implementation", implementation)
        self.emit(Upgraded(implementation.__qualname__, self.chain.block_number))
        logger.info(f"Markets upgraded to {implementation.__qualname__}")
